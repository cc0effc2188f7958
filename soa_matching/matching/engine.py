"""
SOA reconciliation matching engine.

Matches statement of account lines against a vendor's invoice ledger by
running the pass cascade (exact first, partial payment last) and returns
one MatchResult per line. The engine never writes anything; persisting and
acting on results is the reconciliation workflow's job.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from soa_matching.config.validation import ConfigurationValidator
from soa_matching.connectors.base_connector import InvoiceRepository
from soa_matching.models import (
    ConfigurationError, Invoice, MatchingSettings, MatchResult, SOALine, ValidationError
)
from soa_matching.matching.passes import MatchPass, build_passes
from soa_matching.matching.selector import select_best_candidate

import logging
logger = logging.getLogger(__name__)

LineInput = Union[SOALine, Mapping[str, Any]]

NO_INVOICES_REASON = "No invoices available for this vendor"
NO_CANDIDATE_REASON = "No candidate satisfied any matching pass"
MISSING_VENDOR_REASON = "Vendor ID is required"


def _line_id(line: Any) -> Optional[str]:
    if isinstance(line, SOALine):
        return line.id
    if isinstance(line, Mapping):
        line_id = line.get('id', line.get('soa_line_id'))
        return str(line_id) if line_id is not None else None
    return None


class SOAMatchingEngine:
    """
    Runs the five-pass cascade for SOA lines of one vendor.

    The engine is stateless between calls: each line is matched against a
    fresh snapshot of the vendor's eligible invoices.
    """

    def __init__(self, repository: InvoiceRepository,
                 settings: Optional[MatchingSettings] = None):
        """
        Initialize matching engine.

        Args:
            repository: Invoice ledger to read candidates from
            settings: Tolerances and run options (defaults if None)

        Raises:
            ConfigurationError: If the settings do not validate
        """
        self.logger = logging.getLogger(f"{__name__}.SOAMatchingEngine")
        self.repository = repository
        self.settings = settings or MatchingSettings()

        validation = ConfigurationValidator().validate_matching_settings(self.settings)
        if not validation.is_valid:
            raise ConfigurationError(f"Invalid matching settings: {'; '.join(validation.errors)}")
        for warning in validation.warnings:
            self.logger.warning(warning)

        self.passes: Sequence[MatchPass] = build_passes(self.settings)

    def match_soa_line(self, line: LineInput, vendor_id: str,
                       company_id: Optional[str] = None) -> MatchResult:
        """
        Match one SOA line against the vendor's invoices.

        Malformed input never raises; it gives a pass 0 result whose reason
        says what was wrong. Errors from the invoice repository propagate.

        Args:
            line: SOALine or raw statement line record
            vendor_id: Vendor whose ledger is searched
            company_id: Optional buyer company scope

        Returns:
            MatchResult for the first pass that found a candidate, or pass 0
        """
        line_id = _line_id(line)

        if not vendor_id:
            self.logger.warning(f"Rejected SOA line {line_id}: {MISSING_VENDOR_REASON}")
            return MatchResult.no_match(line_id, MISSING_VENDOR_REASON)

        try:
            soa_line = line if isinstance(line, SOALine) else SOALine.from_dict(line)
        except ValidationError as e:
            self.logger.warning(f"Rejected SOA line {line_id}: {e}")
            return MatchResult.no_match(line_id, f"Invalid SOA line: {e}")

        missing = soa_line.missing_fields()
        if missing:
            reason = f"SOA line is missing required fields: {', '.join(missing)}"
            self.logger.warning(f"Rejected SOA line {line_id}: {reason}")
            return MatchResult.no_match(line_id, reason)

        invoices = self.repository.list_eligible_invoices(vendor_id, company_id)
        pool = self._eligible_pool(invoices, vendor_id)
        if not pool:
            self.logger.info(f"SOA line {line_id}: no invoices for vendor {vendor_id}")
            return MatchResult.no_match(line_id, NO_INVOICES_REASON)

        return self._evaluate(soa_line, pool)

    def _eligible_pool(self, invoices: Optional[Iterable[Invoice]], vendor_id: str) -> List[Invoice]:
        # Ledgers without a status column leave status None; those stay eligible
        statuses = {status.strip().lower() for status in self.settings.eligible_statuses}
        pool = []
        for invoice in invoices or []:
            status = (invoice.status or '').strip().lower()
            if not invoice.is_eligible or (status and status not in statuses):
                self.logger.debug(f"Skipping {invoice.status} invoice {invoice.id}")
                continue
            if invoice.vendor_id is not None and invoice.vendor_id != vendor_id:
                self.logger.warning(f"Repository returned invoice {invoice.id} of vendor "
                                    f"{invoice.vendor_id} for vendor {vendor_id}; skipping")
                continue
            pool.append(invoice)
        return pool

    def _evaluate(self, line: SOALine, pool: Sequence[Invoice]) -> MatchResult:
        for match_pass in self.passes:
            candidates = [invoice for invoice in pool if match_pass.matches(line, invoice)]
            self.logger.debug(f"SOA line {line.id} pass {match_pass.number} ({match_pass.name}): "
                              f"{len(candidates)} candidates")
            if not candidates:
                continue

            invoice = select_best_candidate(line, candidates)
            result = MatchResult.matched(line.id, invoice, match_pass.number,
                                         match_pass.describe(line, invoice))
            self.logger.info(f"SOA line {line.id} matched invoice {invoice.id} at pass "
                             f"{match_pass.number} ({match_pass.name}, confidence {result.confidence:.2f})")
            return result

        self.logger.info(f"SOA line {line.id}: {NO_CANDIDATE_REASON}")
        return MatchResult.no_match(line.id, NO_CANDIDATE_REASON)

    def batch_match_soa_lines(self, lines: Optional[Iterable[LineInput]], vendor_id: str,
                              company_id: Optional[str] = None) -> List[MatchResult]:
        """
        Match a list of SOA lines, isolating failures per line.

        An exception raised while matching one line becomes a pass 0 result
        for that line only. Results keep the input order and length.

        Args:
            lines: SOA lines or raw statement line records
            vendor_id: Vendor whose ledger is searched
            company_id: Optional buyer company scope

        Returns:
            One MatchResult per input line
        """
        lines = list(lines or [])
        if not lines:
            return []

        workers = min(self.settings.max_workers, len(lines))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(
                    lambda line: self._match_isolated(line, vendor_id, company_id), lines
                ))
        else:
            results = [self._match_isolated(line, vendor_id, company_id) for line in lines]

        matched = sum(1 for result in results if result.is_matched)
        self.logger.info(f"Batch matched {matched}/{len(results)} SOA lines for vendor {vendor_id}")
        return results

    def _match_isolated(self, line: LineInput, vendor_id: str,
                        company_id: Optional[str]) -> MatchResult:
        line_id = _line_id(line)
        try:
            return self.match_soa_line(line, vendor_id, company_id)
        except Exception as e:
            self.logger.error(f"Error matching SOA line {line_id}: {e}", exc_info=True)
            return MatchResult.no_match(line_id, f"Error during matching: {e}", error=str(e))
