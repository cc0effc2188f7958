"""
The five-pass matching cascade.

Each pass is an immutable rule record holding a predicate and its fixed
confidence/score. Passes are evaluated strictly in order, from exact to
partial payment; the first pass with a satisfying invoice wins.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from soa_matching.models import Invoice, MatchingSettings, PASS_SCORES, SOALine
from soa_matching.matching.normalizer import exact_document_key, normalize
from soa_matching.matching.tolerance_matcher import ToleranceMatcher, days_between

import logging
logger = logging.getLogger(__name__)

Predicate = Callable[[SOALine, Invoice], bool]
Describer = Callable[[SOALine, Invoice], Dict[str, Any]]


@dataclass(frozen=True)
class MatchPass:
    """One tier of the cascade."""
    number: int
    name: str
    predicate: Predicate
    describe: Describer

    @property
    def confidence(self) -> float:
        return PASS_SCORES[self.number][0]

    @property
    def score(self) -> int:
        return PASS_SCORES[self.number][1]

    def matches(self, line: SOALine, invoice: Invoice) -> bool:
        return self.predicate(line, invoice)


def _currency_key(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def currencies_equal(line: SOALine, invoice: Invoice) -> bool:
    """Same ISO-4217 code on both sides; never true across currencies."""
    soa_currency = _currency_key(line.currency_code)
    return bool(soa_currency) and soa_currency == _currency_key(invoice.currency_code)


def documents_equal(line: SOALine, invoice: Invoice) -> bool:
    """Raw invoice numbers equal after trimming."""
    soa_doc = exact_document_key(line.invoice_number)
    return bool(soa_doc) and soa_doc == exact_document_key(invoice.invoice_number)


def documents_equal_normalized(line: SOALine, invoice: Invoice) -> bool:
    """Invoice numbers equal once case and punctuation are ignored."""
    soa_doc = normalize(line.invoice_number)
    return bool(soa_doc) and soa_doc == normalize(invoice.invoice_number)


def dates_identical(line: SOALine, invoice: Invoice) -> bool:
    """Same calendar date, or no date on either side."""
    if line.invoice_date is None and invoice.invoice_date is None:
        return True
    return days_between(line.invoice_date, invoice.invoice_date) == 0


def build_passes(settings: Optional[MatchingSettings] = None) -> Tuple[MatchPass, ...]:
    """
    Build the ordered cascade for a set of tolerances.

    Args:
        settings: Tolerances to bind into the date/amount passes

    Returns:
        Tuple of passes 1 to 5, in evaluation order
    """
    tolerance = ToleranceMatcher(settings)

    def exact(line: SOALine, invoice: Invoice) -> bool:
        return (documents_equal(line, invoice)
                and tolerance.amounts_equal(line.amount, invoice.total_amount)
                and currencies_equal(line, invoice)
                and dates_identical(line, invoice))

    def exact_criteria(line: SOALine, invoice: Invoice) -> Dict[str, Any]:
        return {'invoiceNumber': 'exact', 'amount': 'exact', 'currency': 'exact', 'date': 'exact'}

    def date_tolerant(line: SOALine, invoice: Invoice) -> bool:
        return (documents_equal(line, invoice)
                and tolerance.amounts_equal(line.amount, invoice.total_amount)
                and currencies_equal(line, invoice)
                and tolerance.match_date(line.invoice_date, invoice.invoice_date).matches)

    def date_tolerant_criteria(line: SOALine, invoice: Invoice) -> Dict[str, Any]:
        diff = days_between(line.invoice_date, invoice.invoice_date)
        return {'invoiceNumber': 'exact', 'amount': 'exact', 'currency': 'exact',
                'date': f'within:{diff}d', 'dateDifferenceDays': diff}

    def fuzzy_document(line: SOALine, invoice: Invoice) -> bool:
        return (documents_equal_normalized(line, invoice)
                and tolerance.amounts_equal(line.amount, invoice.total_amount)
                and currencies_equal(line, invoice))

    def fuzzy_document_criteria(line: SOALine, invoice: Invoice) -> Dict[str, Any]:
        return {'invoiceNumber': 'normalized', 'amount': 'exact', 'currency': 'exact',
                'date': 'unconstrained'}

    def amount_tolerant(line: SOALine, invoice: Invoice) -> bool:
        return (documents_equal_normalized(line, invoice)
                and currencies_equal(line, invoice)
                and tolerance.match_amount(line.amount, invoice.total_amount).matches)

    def amount_tolerant_criteria(line: SOALine, invoice: Invoice) -> Dict[str, Any]:
        amount = tolerance.match_amount(line.amount, invoice.total_amount)
        return {'invoiceNumber': 'normalized', 'amount': f'tolerant:{amount.actual_variance:+.2f}',
                'currency': 'exact', 'date': 'unconstrained',
                'amountTolerance': str(amount.tolerance_value)}

    def partial_payment(line: SOALine, invoice: Invoice) -> bool:
        if not line.allow_partial:
            return False
        if line.amount is None or invoice.total_amount is None:
            return False
        return (documents_equal_normalized(line, invoice)
                and currencies_equal(line, invoice)
                and 0 < line.amount < invoice.total_amount)

    def partial_payment_criteria(line: SOALine, invoice: Invoice) -> Dict[str, Any]:
        remaining = invoice.total_amount - line.amount
        return {'invoiceNumber': 'normalized', 'amount': 'partial', 'currency': 'exact',
                'date': 'unconstrained', 'remainingAmount': str(remaining)}

    return (
        MatchPass(1, 'exact', exact, exact_criteria),
        MatchPass(2, 'date_tolerant', date_tolerant, date_tolerant_criteria),
        MatchPass(3, 'fuzzy_document', fuzzy_document, fuzzy_document_criteria),
        MatchPass(4, 'amount_tolerant', amount_tolerant, amount_tolerant_criteria),
        MatchPass(5, 'partial_payment', partial_payment, partial_payment_criteria),
    )
