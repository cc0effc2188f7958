"""
Base connector interface for invoice ledgers.

Every source the engine reads invoices from implements InvoiceRepository.
Repositories are read-only: they list a vendor's eligible invoices and
nothing else.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from soa_matching.models import ConnectionTestResult, ConnectorError, Invoice

logger = logging.getLogger(__name__)


class InvoiceRepository(ABC):
    """
    Abstract base class for invoice ledgers consumed by the matching engine.

    Provides common logging and error wrapping for concrete repositories.
    """

    def __init__(self, connection_id: str):
        """
        Initialize base repository.

        Args:
            connection_id: Unique identifier for this ledger connection
        """
        self.connection_id = connection_id
        self.logger = logging.getLogger(f"{__name__}.{connection_id}")
        self._last_connection_test: Optional[ConnectionTestResult] = None
        self._connection_healthy = True

    @abstractmethod
    def list_eligible_invoices(self, vendor_id: str,
                               company_id: Optional[str] = None) -> List[Invoice]:
        """
        List the invoices of a vendor that may take part in matching.

        Must return only invoices belonging to vendor_id that are not
        void or cancelled.

        Args:
            vendor_id: Vendor whose invoices are requested
            company_id: Optional buyer company scope

        Returns:
            List of eligible invoices

        Raises:
            ConnectorError: If the ledger cannot be read
        """
        pass

    @abstractmethod
    def test_connection(self) -> ConnectionTestResult:
        """
        Test the connection to the ledger.

        Returns:
            ConnectionTestResult with success status and details
        """
        pass

    @abstractmethod
    def get_connection_info(self) -> Dict[str, Any]:
        """
        Get information about the current connection.

        Returns:
            Dictionary containing connection metadata
        """
        pass

    def is_healthy(self) -> bool:
        """True unless the last operation failed."""
        return self._connection_healthy

    def get_last_test_result(self) -> Optional[ConnectionTestResult]:
        """Result of the last connection test, or None if never tested."""
        return self._last_connection_test

    def _log_operation(self, operation: str, duration: float, success: bool,
                       details: Optional[str] = None):
        """
        Log repository operation with timing and status.

        Args:
            operation: Name of the operation
            duration: Time taken in seconds
            success: Whether operation succeeded
            details: Additional details to log
        """
        status = "SUCCESS" if success else "FAILED"
        message = f"{operation} {status} in {duration:.3f}s"

        if details:
            message += f" - {details}"

        if success:
            self.logger.info(message)
        else:
            self.logger.error(message)

    def _handle_error(self, operation: str, error: Exception) -> ConnectorError:
        """
        Log a failure and wrap it in ConnectorError.

        Args:
            operation: Name of the operation that failed
            error: The original exception

        Returns:
            ConnectorError with appropriate message
        """
        error_msg = f"{operation} failed for connection '{self.connection_id}': {str(error)}"
        self.logger.error(error_msg, exc_info=True)
        self._connection_healthy = False
        return ConnectorError(error_msg)
