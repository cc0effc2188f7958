"""
Core data models for the SOA reconciliation matching engine.

This module defines the value objects exchanged with the engine: statement
of account lines, ledger invoices, match results, matching settings and the
connection configuration used by invoice repositories.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


MATCHED_BY_SYSTEM = "system"

# Fixed (confidence, match score) per matching pass
PASS_SCORES: Dict[int, Tuple[float, int]] = {
    1: (1.00, 100),
    2: (0.95, 95),
    3: (0.90, 90),
    4: (0.85, 85),
    5: (0.75, 75),
}

INELIGIBLE_STATUSES = frozenset({'void', 'voided', 'cancelled', 'canceled'})


class MatchType(Enum):
    """How a match was reached."""
    DETERMINISTIC = "deterministic"
    PROBABILISTIC = "probabilistic"
    NONE = "none"


class ConnectionType(Enum):
    """Types of invoice repositories supported."""
    IN_MEMORY = "in_memory"
    REST_API = "rest_api"


class AuthenticationType(Enum):
    """Authentication methods for API connections."""
    API_KEY = "api_key"
    BEARER_TOKEN = "bearer_token"


# Exceptions
class SOAMatchingError(Exception):
    """Base exception for SOA matching operations."""
    pass


class ConnectorError(SOAMatchingError):
    """Raised when an invoice repository cannot be reached or read."""
    pass


class ConfigurationError(SOAMatchingError):
    """Raised when configuration is invalid or missing."""
    pass


class MatchingError(SOAMatchingError):
    """Raised when a match result would break the pass/score contract."""
    pass


class ValidationError(SOAMatchingError):
    """Raised when a line or invoice payload cannot be parsed."""
    pass


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Convert a monetary value to Decimal.

    Strings may carry a currency symbol and thousands separators.
    Floats go through str() so 1000.1 does not become 1000.0999...

    Raises:
        ValidationError: If the value is not a number
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, float):
            amount = Decimal(str(value))
        elif isinstance(value, int):
            amount = Decimal(value)
        else:
            cleaned = str(value).replace('$', '').replace(',', '').strip()
            if not cleaned:
                return None
            amount = Decimal(cleaned)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def parse_date(value: Any) -> Optional[date]:
    """
    Convert a date-like value to a calendar date.

    Accepts date, datetime (time part dropped) and ISO-8601 strings.

    Raises:
        ValidationError: If the value cannot be read as a date
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        if len(text) > 10:
            return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'y')
    return value is True


@dataclass(frozen=True)
class SOALine:
    """
    One charge reported on a vendor's statement of account.

    The engine only reads lines. Fields that a statement extraction failed to
    fill stay None and are reported by missing_fields().
    """
    id: Optional[str]
    vendor_id: Optional[str]
    invoice_number: Optional[str]
    amount: Optional[Decimal]
    currency_code: Optional[str]
    invoice_date: Optional[date] = None
    allow_partial: bool = False

    def __post_init__(self):
        # Frozen: coerce through object.__setattr__ so float/str amounts compare as Decimal
        object.__setattr__(self, 'amount', parse_amount(self.amount))
        object.__setattr__(self, 'invoice_date', parse_date(self.invoice_date))

    def missing_fields(self) -> List[str]:
        """Names of the fields matching cannot run without."""
        missing = []
        if not self.invoice_number or not str(self.invoice_number).strip():
            missing.append('invoice_number')
        if self.amount is None:
            missing.append('amount')
        if not self.currency_code or not str(self.currency_code).strip():
            missing.append('currency_code')
        return missing

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'vendor_id': self.vendor_id,
            'invoice_number': self.invoice_number,
            'amount': str(self.amount) if self.amount is not None else None,
            'currency_code': self.currency_code,
            'invoice_date': self.invoice_date.isoformat() if self.invoice_date else None,
            'allow_partial': self.allow_partial
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SOALine':
        """
        Create SOALine from a statement line record.

        Accepts both snake_case and camelCase keys. A record with
        match_mode == 'partial' opts in to partial payment matching.

        Raises:
            ValidationError: If the record is not a mapping or a value cannot be parsed
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"SOA line must be a mapping, got {type(data).__name__}")

        allow_partial = _parse_bool(_first_present(data, 'allow_partial', 'allowPartial'))
        if str(data.get('match_mode') or '').lower() == 'partial':
            allow_partial = True

        line_id = _first_present(data, 'id', 'soa_line_id', 'soaLineId')
        vendor_id = _first_present(data, 'vendor_id', 'vendorId')

        return cls(
            id=str(line_id) if line_id is not None else None,
            vendor_id=str(vendor_id) if vendor_id is not None else None,
            invoice_number=_clean_text(_first_present(data, 'invoice_number', 'invoiceNumber', 'doc_no')),
            amount=parse_amount(data.get('amount')),
            currency_code=_clean_text(_first_present(data, 'currency_code', 'currencyCode', 'currency')),
            invoice_date=parse_date(_first_present(data, 'invoice_date', 'invoiceDate', 'doc_date')),
            allow_partial=allow_partial
        )


@dataclass(frozen=True)
class Invoice:
    """
    An internally recorded invoice that is a candidate for matching.

    created_at gives the creation order used as the last tie-break when
    several invoices qualify for the same pass.
    """
    id: str
    vendor_id: Optional[str]
    invoice_number: Optional[str]
    total_amount: Optional[Decimal]
    currency_code: Optional[str]
    invoice_date: Optional[date] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, 'total_amount', parse_amount(self.total_amount))
        object.__setattr__(self, 'invoice_date', parse_date(self.invoice_date))

    @property
    def is_eligible(self) -> bool:
        """Void and cancelled invoices never take part in matching."""
        return (self.status or '').strip().lower() not in INELIGIBLE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'vendor_id': self.vendor_id,
            'invoice_number': self.invoice_number,
            'total_amount': str(self.total_amount) if self.total_amount is not None else None,
            'currency_code': self.currency_code,
            'invoice_date': self.invoice_date.isoformat() if self.invoice_date else None,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Invoice':
        """
        Create Invoice from a ledger record.

        Older ledger rows use invoice_num, amount, currency and date columns;
        those are read when the canonical column is absent.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Invoice must be a mapping, got {type(data).__name__}")

        created_at = data.get('created_at')
        if isinstance(created_at, str) and created_at:
            try:
                created_at = datetime.fromisoformat(created_at.replace('Z', '+00:00'))
            except ValueError:
                raise ValidationError(f"Invalid created_at: {created_at!r}")
        elif not isinstance(created_at, datetime):
            created_at = None

        vendor_id = _first_present(data, 'vendor_id', 'vendorId')

        return cls(
            id=str(data['id']) if data.get('id') is not None else '',
            vendor_id=str(vendor_id) if vendor_id is not None else None,
            invoice_number=_clean_text(_first_present(data, 'invoice_number', 'invoiceNumber', 'invoice_num')),
            total_amount=parse_amount(_first_present(data, 'total_amount', 'totalAmount', 'amount')),
            currency_code=_clean_text(_first_present(data, 'currency_code', 'currencyCode', 'currency')),
            invoice_date=parse_date(_first_present(data, 'invoice_date', 'invoiceDate', 'date')),
            status=_clean_text(data.get('status')),
            created_at=created_at
        )


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of matching one SOA line.

    pass_number 0 means no match; in that case invoice is None and reason
    explains why. Confidence and score always follow PASS_SCORES.
    """
    soa_line_id: Optional[str]
    invoice: Optional[Invoice]
    pass_number: int
    confidence: float
    match_score: int
    match_criteria: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None
    match_type: MatchType = MatchType.NONE
    matched_by: str = MATCHED_BY_SYSTEM
    error: Optional[str] = None

    def __post_init__(self):
        if self.pass_number == 0:
            if self.invoice is not None:
                raise MatchingError("A pass 0 result cannot reference an invoice")
            if self.confidence != 0.0 or self.match_score != 0:
                raise MatchingError("A pass 0 result must have zero confidence and score")
        elif self.pass_number in PASS_SCORES:
            if self.invoice is None:
                raise MatchingError(f"Pass {self.pass_number} result must reference an invoice")
            if (self.confidence, self.match_score) != PASS_SCORES[self.pass_number]:
                raise MatchingError(
                    f"Pass {self.pass_number} must score {PASS_SCORES[self.pass_number]}, "
                    f"got ({self.confidence}, {self.match_score})"
                )
        else:
            raise MatchingError(f"Unknown matching pass: {self.pass_number}")

    @property
    def is_exact_match(self) -> bool:
        return self.pass_number == 1

    @property
    def is_matched(self) -> bool:
        return self.pass_number > 0

    @classmethod
    def matched(cls, soa_line_id: Optional[str], invoice: Invoice, pass_number: int,
                match_criteria: Dict[str, Any]) -> 'MatchResult':
        """Build the result for a winning pass with its fixed scores."""
        confidence, score = PASS_SCORES[pass_number]
        return cls(
            soa_line_id=soa_line_id,
            invoice=invoice,
            pass_number=pass_number,
            confidence=confidence,
            match_score=score,
            match_criteria=dict(match_criteria),
            match_type=MatchType.DETERMINISTIC if pass_number == 1 else MatchType.PROBABILISTIC
        )

    @classmethod
    def no_match(cls, soa_line_id: Optional[str], reason: str,
                 error: Optional[str] = None) -> 'MatchResult':
        """Build a pass 0 result carrying a human-readable reason."""
        return cls(
            soa_line_id=soa_line_id,
            invoice=None,
            pass_number=0,
            confidence=0.0,
            match_score=0,
            reason=reason,
            error=error
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary shape consumed by the reconciliation workflow."""
        return {
            'soaLineId': self.soa_line_id,
            'invoice': self.invoice.to_dict() if self.invoice else None,
            'pass': self.pass_number,
            'isExactMatch': self.is_exact_match,
            'confidence': self.confidence,
            'matchScore': self.match_score,
            'matchCriteria': dict(self.match_criteria),
            'reason': self.reason,
            'matchedBy': self.matched_by,
            'matchType': self.match_type.value,
            'error': self.error
        }


@dataclass(frozen=True)
class MatchingSettings:
    """
    Tolerances and run options for one matching engine.

    Injected at engine construction so tenants can be tuned independently.
    """
    date_window_days: int = 7
    amount_absolute_tolerance: Decimal = Decimal('1.00')
    amount_relative_tolerance: Decimal = Decimal('0.005')  # 0.5% of the invoice amount
    amount_precision: int = 2
    auto_confirm_min_confidence: float = 1.0
    max_workers: int = 1
    eligible_statuses: Tuple[str, ...] = ('pending', 'approved', 'paid')

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'date_window_days': self.date_window_days,
            'amount_absolute_tolerance': str(self.amount_absolute_tolerance),
            'amount_relative_tolerance': str(self.amount_relative_tolerance),
            'amount_precision': self.amount_precision,
            'auto_confirm_min_confidence': self.auto_confirm_min_confidence,
            'max_workers': self.max_workers,
            'eligible_statuses': list(self.eligible_statuses)
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'MatchingSettings':
        """Create MatchingSettings from dictionary; unknown keys are ignored."""
        defaults = cls()
        try:
            return cls(
                date_window_days=int(data.get('date_window_days', defaults.date_window_days)),
                amount_absolute_tolerance=Decimal(str(data.get('amount_absolute_tolerance',
                                                               defaults.amount_absolute_tolerance))),
                amount_relative_tolerance=Decimal(str(data.get('amount_relative_tolerance',
                                                               defaults.amount_relative_tolerance))),
                amount_precision=int(data.get('amount_precision', defaults.amount_precision)),
                auto_confirm_min_confidence=float(data.get('auto_confirm_min_confidence',
                                                           defaults.auto_confirm_min_confidence)),
                max_workers=int(data.get('max_workers', defaults.max_workers)),
                eligible_statuses=tuple(data.get('eligible_statuses', defaults.eligible_statuses))
            )
        except (InvalidOperation, ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid matching settings: {e}")


@dataclass
class APIConnectionConfig:
    """Configuration for a REST invoice ledger endpoint."""
    connection_id: str
    base_url: str
    authentication_type: AuthenticationType = AuthenticationType.API_KEY
    api_key: Optional[str] = None  # never written to disk
    api_key_env: Optional[str] = None
    invoices_path: str = '/invoices'
    timeout: int = 30
    rate_limit: int = 100  # requests per minute
    retry_attempts: int = 3
    page_size: int = 1000
    additional_headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self, include_api_key: bool = False) -> Dict[str, Any]:
        """Convert to dictionary, optionally including the API key."""
        data = {
            'connection_id': self.connection_id,
            'base_url': self.base_url,
            'authentication_type': self.authentication_type.value,
            'api_key_env': self.api_key_env,
            'invoices_path': self.invoices_path,
            'timeout': self.timeout,
            'rate_limit': self.rate_limit,
            'retry_attempts': self.retry_attempts,
            'page_size': self.page_size,
            'additional_headers': self.additional_headers
        }
        if include_api_key:
            data['api_key'] = self.api_key
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'APIConnectionConfig':
        """Create APIConnectionConfig from dictionary."""
        try:
            return cls(
                connection_id=data['connection_id'],
                base_url=data['base_url'],
                authentication_type=AuthenticationType(data.get('authentication_type', 'api_key')),
                api_key=data.get('api_key'),
                api_key_env=data.get('api_key_env'),
                invoices_path=data.get('invoices_path', '/invoices'),
                timeout=data.get('timeout', 30),
                rate_limit=data.get('rate_limit', 100),
                retry_attempts=data.get('retry_attempts', 3),
                page_size=data.get('page_size', 1000),
                additional_headers=dict(data.get('additional_headers') or {})
            )
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid API connection config: {e}")


@dataclass
class ConnectionTestResult:
    """Result of testing an invoice repository connection."""
    success: bool
    connection_id: str
    connection_type: ConnectionType
    response_time: float
    error_message: Optional[str] = None
    additional_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'success': self.success,
            'connection_id': self.connection_id,
            'connection_type': self.connection_type.value,
            'response_time': self.response_time,
            'error_message': self.error_message,
            'additional_info': self.additional_info
        }
