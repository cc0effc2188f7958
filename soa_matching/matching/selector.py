"""
Deterministic selection among invoices that satisfy the same pass.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from soa_matching.models import Invoice, SOALine
from soa_matching.matching.tolerance_matcher import days_between

import logging
logger = logging.getLogger(__name__)

_NO_DATE = float('inf')
_NO_AMOUNT = Decimal('Infinity')


def _sort_key(line: SOALine, invoice: Invoice, position: int) -> Tuple:
    diff_days = days_between(line.invoice_date, invoice.invoice_date)
    if line.amount is not None and invoice.total_amount is not None:
        diff_amount = abs(line.amount - invoice.total_amount)
    else:
        diff_amount = _NO_AMOUNT
    # Invoices without a creation timestamp sort after those with one
    created = invoice.created_at.timestamp() if isinstance(invoice.created_at, datetime) else _NO_DATE
    return (
        diff_days if diff_days is not None else _NO_DATE,
        diff_amount,
        created,
        position,
    )


def select_best_candidate(line: SOALine, candidates: Sequence[Invoice]) -> Optional[Invoice]:
    """
    Pick exactly one invoice from the candidates of a single pass.

    Ties are broken lexicographically by: smallest absolute date difference,
    smallest absolute amount difference, earliest creation (created_at, then
    position in the pool).

    Args:
        line: SOA line being matched
        candidates: Invoices satisfying the pass, in pool order

    Returns:
        The winning invoice, or None if there are no candidates
    """
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]

    ranked: List[Tuple[Tuple, Invoice]] = [
        (_sort_key(line, invoice, position), invoice)
        for position, invoice in enumerate(candidates)
    ]
    ranked.sort(key=lambda item: item[0])

    winner = ranked[0][1]
    logger.debug(f"Selected invoice {winner.id} for line {line.id} out of {len(candidates)} candidates")
    return winner
