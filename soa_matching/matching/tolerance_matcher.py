"""
Tolerance-based comparisons for dates and amounts.

Provides the "close enough" predicates used by the looser matching passes,
plus a matcher that reports the variance found so a reviewer can see how far
apart the statement line and the invoice were.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union

from soa_matching.models import MatchingSettings, parse_amount

import logging
logger = logging.getLogger(__name__)

AmountLike = Union[Decimal, float, int, str]
DateLike = Union[date, datetime]


def _as_date(value: Optional[DateLike]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(a: Optional[DateLike], b: Optional[DateLike]) -> Optional[int]:
    """Absolute difference in calendar days, or None if either date is missing."""
    a_date, b_date = _as_date(a), _as_date(b)
    if a_date is None or b_date is None:
        return None
    return abs((a_date - b_date).days)


def date_within_window(a: Optional[DateLike], b: Optional[DateLike],
                       window_days: int = 7) -> bool:
    """
    Check whether two dates are at most window_days calendar days apart.

    Args:
        a: First date
        b: Second date
        window_days: Allowed difference in days (inclusive)

    Returns:
        True if both dates are present and within the window
    """
    diff = days_between(a, b)
    return diff is not None and diff <= window_days


def amount_within_tolerance(soa_amount: AmountLike, invoice_amount: AmountLike,
                            absolute: AmountLike = Decimal('1.00'),
                            relative_percent: AmountLike = Decimal('0.005')) -> bool:
    """
    Check whether a statement amount is close enough to an invoice amount.

    The allowed deviation is the larger of the absolute tolerance and
    relative_percent of the invoice amount. Both amounts must be in the same
    currency; no conversion happens here.

    Args:
        soa_amount: Amount reported on the statement line
        invoice_amount: Invoice total from the ledger
        absolute: Absolute tolerance in currency units
        relative_percent: Fraction of the invoice amount (0.005 = 0.5%)

    Returns:
        True if abs(soa_amount - invoice_amount) is within tolerance
    """
    soa = parse_amount(soa_amount)
    invoice = parse_amount(invoice_amount)
    if soa is None or invoice is None:
        return False
    allowed = max(parse_amount(absolute), parse_amount(relative_percent) * abs(invoice))
    return abs(soa - invoice) <= allowed


def quantize_amount(amount: Decimal, precision: int = 2) -> Decimal:
    """Round an amount to the given number of decimal places."""
    return amount.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ToleranceMatchResult:
    """Result of a tolerance-based comparison."""
    field_name: str
    matches: bool
    expected_value: Any
    actual_value: Any
    tolerance_type: str  # 'date_days', 'amount_tolerance', 'amount_exact'
    tolerance_value: Optional[Decimal]
    actual_variance: Optional[Decimal]  # signed for amounts: statement minus invoice

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'field_name': self.field_name,
            'matches': self.matches,
            'expected_value': str(self.expected_value),
            'actual_value': str(self.actual_value),
            'tolerance_type': self.tolerance_type,
            'tolerance_value': str(self.tolerance_value) if self.tolerance_value is not None else None,
            'actual_variance': str(self.actual_variance) if self.actual_variance is not None else None
        }


class ToleranceMatcher:
    """
    Compares statement and ledger values using a tenant's MatchingSettings.

    All comparisons are pure: the same inputs always give the same result.
    """

    def __init__(self, settings: Optional[MatchingSettings] = None):
        """
        Initialize tolerance matcher.

        Args:
            settings: Tolerances to apply (defaults if None)
        """
        self.settings = settings or MatchingSettings()
        self.logger = logging.getLogger(f"{__name__}.ToleranceMatcher")

    def amounts_equal(self, soa_amount: Optional[Decimal], invoice_amount: Optional[Decimal]) -> bool:
        """Equal to the cent (or the configured precision)."""
        if soa_amount is None or invoice_amount is None:
            return False
        precision = self.settings.amount_precision
        return quantize_amount(soa_amount, precision) == quantize_amount(invoice_amount, precision)

    def match_date(self, soa_date: Optional[date], invoice_date: Optional[date]) -> ToleranceMatchResult:
        """
        Compare dates against the configured window.

        Args:
            soa_date: Date printed on the statement line
            invoice_date: Invoice date from the ledger

        Returns:
            ToleranceMatchResult with the day difference as variance
        """
        window = self.settings.date_window_days
        diff = days_between(soa_date, invoice_date)
        matches = diff is not None and diff <= window

        self.logger.debug(f"Date tolerance match: {soa_date} vs {invoice_date} "
                          f"(±{window} days) = {matches} (variance: {diff})")
        return ToleranceMatchResult(
            field_name='invoice_date',
            matches=matches,
            expected_value=soa_date,
            actual_value=invoice_date,
            tolerance_type='date_days',
            tolerance_value=Decimal(window),
            actual_variance=Decimal(diff) if diff is not None else None
        )

    def match_amount(self, soa_amount: Optional[Decimal],
                     invoice_amount: Optional[Decimal]) -> ToleranceMatchResult:
        """
        Compare amounts against the configured absolute/relative tolerance.

        Args:
            soa_amount: Amount on the statement line
            invoice_amount: Invoice total from the ledger

        Returns:
            ToleranceMatchResult with the signed difference as variance
        """
        if soa_amount is None or invoice_amount is None:
            return ToleranceMatchResult(
                field_name='total_amount',
                matches=False,
                expected_value=soa_amount,
                actual_value=invoice_amount,
                tolerance_type='amount_tolerance',
                tolerance_value=None,
                actual_variance=None
            )

        allowed = max(self.settings.amount_absolute_tolerance,
                      self.settings.amount_relative_tolerance * abs(invoice_amount))
        variance = soa_amount - invoice_amount
        matches = amount_within_tolerance(
            soa_amount, invoice_amount,
            absolute=self.settings.amount_absolute_tolerance,
            relative_percent=self.settings.amount_relative_tolerance
        )

        self.logger.debug(f"Amount tolerance match: {soa_amount} vs {invoice_amount} "
                          f"(±{allowed}) = {matches} (variance: {variance})")
        return ToleranceMatchResult(
            field_name='total_amount',
            matches=matches,
            expected_value=soa_amount,
            actual_value=invoice_amount,
            tolerance_type='amount_tolerance',
            tolerance_value=allowed,
            actual_variance=variance
        )
