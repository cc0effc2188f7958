"""
In-memory invoice ledger.

Holds a snapshot of invoices, e.g. loaded by the workflow layer for one
reconciliation case, and serves vendor-scoped eligible subsets from it.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from soa_matching.models import ConnectionTestResult, ConnectionType, Invoice
from .base_connector import InvoiceRepository


class InMemoryInvoiceRepository(InvoiceRepository):
    """Invoice repository backed by a list of invoices."""

    def __init__(self, invoices: Iterable[Union[Invoice, Mapping[str, Any]]] = (),
                 connection_id: str = 'in-memory',
                 eligible_statuses: Optional[Sequence[str]] = None,
                 company_ids: Optional[Mapping[str, str]] = None):
        """
        Initialize in-memory repository.

        Args:
            invoices: Invoice objects or ledger records
            connection_id: Identifier used in logs
            eligible_statuses: If given, only invoices in these statuses are listed
            company_ids: Optional invoice id -> company id map for company scoping
        """
        super().__init__(connection_id)
        self._invoices: List[Invoice] = [
            invoice if isinstance(invoice, Invoice) else Invoice.from_dict(invoice)
            for invoice in invoices
        ]
        self.eligible_statuses = (
            {status.lower() for status in eligible_statuses} if eligible_statuses else None
        )
        self.company_ids = dict(company_ids or {})

    def add_invoice(self, invoice: Union[Invoice, Mapping[str, Any]]) -> Invoice:
        """Add an invoice to the snapshot."""
        if not isinstance(invoice, Invoice):
            invoice = Invoice.from_dict(invoice)
        self._invoices.append(invoice)
        return invoice

    def list_eligible_invoices(self, vendor_id: str,
                               company_id: Optional[str] = None) -> List[Invoice]:
        """List vendor invoices that are not void/cancelled, in insertion order."""
        invoices = []
        for invoice in self._invoices:
            if invoice.vendor_id != vendor_id or not invoice.is_eligible:
                continue
            if self.eligible_statuses is not None and (invoice.status or '').lower() not in self.eligible_statuses:
                continue
            if company_id is not None and self.company_ids.get(invoice.id) != company_id:
                continue
            invoices.append(invoice)

        self.logger.debug(f"Listed {len(invoices)} eligible invoices for vendor {vendor_id}")
        return invoices

    def test_connection(self) -> ConnectionTestResult:
        result = ConnectionTestResult(
            success=True,
            connection_id=self.connection_id,
            connection_type=ConnectionType.IN_MEMORY,
            response_time=0.0,
            additional_info={'invoice_count': len(self._invoices)}
        )
        self._last_connection_test = result
        return result

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            'connection_id': self.connection_id,
            'connection_type': ConnectionType.IN_MEMORY.value,
            'invoice_count': len(self._invoices),
            'healthy': self.is_healthy()
        }
