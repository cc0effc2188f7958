"""
SOA Reconciliation Matching Engine

Pairs vendor statement of account (SOA) lines with a company's invoice
ledger using a deterministic five-pass cascade, and grades each pairing so
only low-confidence or unmatched lines need human review.

This package provides:
- Core data models (SOA lines, invoices, match results, settings)
- The matching cascade and engine
- Invoice ledger connectors
- Configuration management
- Result summaries and review sheet export
"""

import logging
import sys

from .models import (
    # Core data models
    SOALine,
    Invoice,
    MatchResult,

    # Configuration models
    MatchingSettings,
    APIConnectionConfig,
    ConnectionTestResult,

    # Enums
    MatchType,
    ConnectionType,
    AuthenticationType,

    # Exceptions
    SOAMatchingError,
    ConnectorError,
    ConfigurationError,
    MatchingError,
    ValidationError
)
from .matching import SOAMatchingEngine, amount_within_tolerance, date_within_window, normalize
from .connectors import APIInvoiceRepository, InMemoryInvoiceRepository, InvoiceRepository

__version__ = "1.0.0"


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Attach a stdout handler to the package logger."""
    package_logger = logging.getLogger(__name__)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger


__all__ = [
    # Core data models
    "SOALine",
    "Invoice",
    "MatchResult",

    # Configuration models
    "MatchingSettings",
    "APIConnectionConfig",
    "ConnectionTestResult",

    # Enums
    "MatchType",
    "ConnectionType",
    "AuthenticationType",

    # Exceptions
    "SOAMatchingError",
    "ConnectorError",
    "ConfigurationError",
    "MatchingError",
    "ValidationError",

    # Engine
    "SOAMatchingEngine",
    "normalize",
    "amount_within_tolerance",
    "date_within_window",

    # Connectors
    "InvoiceRepository",
    "InMemoryInvoiceRepository",
    "APIInvoiceRepository",

    "configure_logging"
]
