"""
Invoice ledger connectors for the SOA matching engine.

This package provides the read-only invoice repositories the engine
pulls candidate invoices from:
- In-memory snapshots handed over by the workflow layer
- REST ledgers reached over HTTP
"""

from .api_connector import APIInvoiceRepository, APIResponse, RateLimiter
from .base_connector import InvoiceRepository
from .memory_connector import InMemoryInvoiceRepository

__all__ = [
    "APIInvoiceRepository",
    "APIResponse",
    "RateLimiter",
    "InvoiceRepository",
    "InMemoryInvoiceRepository"
]
