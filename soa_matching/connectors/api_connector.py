"""
REST invoice ledger connector.

Reads a vendor's invoices from a PostgREST-style HTTP endpoint with
API key or bearer authentication, rate limiting, retries and paging.
"""

import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import requests

from soa_matching.models import (
    APIConnectionConfig, AuthenticationType, ConnectionTestResult, ConnectionType,
    ConnectorError, Invoice, ValidationError
)
from .base_connector import InvoiceRepository

import logging
logger = logging.getLogger(__name__)


@dataclass
class APIResponse:
    """Response from API connector operations."""
    success: bool
    status_code: int
    data: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]] = None
    error_message: Optional[str] = None
    response_time: float = 0.0
    headers: Optional[Dict[str, str]] = None


class RateLimiter:
    """Simple token bucket rate limiter."""

    def __init__(self, rate_limit: int):
        """
        Initialize rate limiter.

        Args:
            rate_limit: Maximum requests per minute
        """
        self.rate_limit = rate_limit
        self.tokens = rate_limit
        self.last_update = time.time()

    def acquire(self) -> bool:
        """
        Try to acquire a token for making a request.

        Returns:
            True if token acquired, False if rate limited
        """
        now = time.time()
        time_passed = now - self.last_update
        self.last_update = now

        self.tokens = min(self.rate_limit, self.tokens + time_passed * (self.rate_limit / 60.0))

        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False

    def wait_time(self) -> float:
        """Seconds to wait before the next request is allowed."""
        if self.tokens >= 1:
            return 0.0
        return (1 - self.tokens) * (60.0 / self.rate_limit)


class APIInvoiceRepository(InvoiceRepository):
    """
    Invoice repository backed by a REST API.

    Filters are sent PostgREST style (vendor_id=eq.<id>), and pages are
    fetched with limit/offset until a short page is returned.
    """

    RETRY_BACKOFF_SECONDS = 0.5

    def __init__(self, config: APIConnectionConfig,
                 eligible_statuses: Optional[List[str]] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize API repository.

        Args:
            config: API connection configuration
            eligible_statuses: Statuses to request (all non-void if None)
            session: Optional preconfigured requests session
        """
        super().__init__(config.connection_id)
        self.config = config
        self.eligible_statuses = list(eligible_statuses) if eligible_statuses else None
        self.rate_limiter = RateLimiter(config.rate_limit)
        self.session = session or requests.Session()
        self.session.headers.update(self._auth_headers())
        if config.additional_headers:
            self.session.headers.update(config.additional_headers)

        self.logger.info(f"API invoice repository initialized for {config.base_url}")

    def _api_key(self) -> str:
        api_key = self.config.api_key
        if not api_key and self.config.api_key_env:
            api_key = os.environ.get(self.config.api_key_env)
        if not api_key:
            raise ConnectorError(f"No API key configured for connection '{self.connection_id}'")
        return api_key

    def _auth_headers(self) -> Dict[str, str]:
        api_key = self._api_key()
        if self.config.authentication_type == AuthenticationType.BEARER_TOKEN:
            return {'Authorization': f'Bearer {api_key}'}
        return {'apikey': api_key, 'Authorization': f'Bearer {api_key}'}

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def list_eligible_invoices(self, vendor_id: str,
                               company_id: Optional[str] = None) -> List[Invoice]:
        """
        Fetch all eligible invoices of a vendor.

        Raises:
            ConnectorError: If the API fails or returns malformed records
        """
        params: Dict[str, Any] = {
            'vendor_id': f'eq.{vendor_id}',
            'order': 'created_at.asc',
            'limit': self.config.page_size,
        }
        if company_id is not None:
            params['company_id'] = f'eq.{company_id}'
        if self.eligible_statuses:
            params['status'] = f"in.({','.join(self.eligible_statuses)})"

        url = self._url(self.config.invoices_path)
        start_time = time.time()
        records: List[Dict[str, Any]] = []
        offset = 0

        while True:
            response = self._make_request('GET', url, params={**params, 'offset': offset})
            if not response.success:
                self._connection_healthy = False
                raise ConnectorError(f"Invoice lookup failed for vendor {vendor_id}: {response.error_message}")

            page = self._extract_records(response.data)
            records.extend(page)
            if len(page) < self.config.page_size:
                break
            offset += self.config.page_size

        try:
            invoices = [Invoice.from_dict(record) for record in records]
        except ValidationError as e:
            raise self._handle_error("Invoice parsing", e)

        eligible = [
            invoice for invoice in invoices
            if invoice.is_eligible and (invoice.vendor_id is None or invoice.vendor_id == vendor_id)
        ]
        self._log_operation("Invoice lookup", time.time() - start_time, True,
                            f"{len(eligible)} eligible invoices for vendor {vendor_id}")
        return eligible

    def _extract_records(self, data: Any) -> List[Dict[str, Any]]:
        if data is None:
            return []
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            for key in ('invoices', 'results', 'data'):
                if isinstance(data.get(key), list):
                    return data[key]
        raise ConnectorError(f"Unexpected invoice payload from '{self.connection_id}': {type(data).__name__}")

    def _wait_for_rate_limit(self):
        if self.rate_limiter.acquire():
            return
        wait_time = self.rate_limiter.wait_time()
        self.logger.warning(f"Rate limited, waiting {wait_time:.2f} seconds")
        time.sleep(wait_time)
        if not self.rate_limiter.acquire():
            raise ConnectorError("Rate limit exceeded")

    def _make_request(self, method: str, url: str, **kwargs) -> APIResponse:
        """
        Make an HTTP request, retrying connection errors and 5xx responses.

        Args:
            method: HTTP method
            url: Request URL
            **kwargs: Passed through to requests

        Returns:
            APIResponse with request results
        """
        attempts = max(1, self.config.retry_attempts)
        last_error = None

        for attempt in range(1, attempts + 1):
            self._wait_for_rate_limit()
            start_time = time.time()
            try:
                response = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = str(e)
                self._log_operation(f"{method} {url}", time.time() - start_time, False,
                                    f"attempt {attempt}/{attempts}: {last_error}")
                if attempt < attempts:
                    time.sleep(self.RETRY_BACKOFF_SECONDS * attempt)
                continue
            except requests.RequestException as e:
                return APIResponse(success=False, status_code=0, error_message=str(e),
                                   response_time=time.time() - start_time)

            duration = time.time() - start_time
            if response.status_code >= 500 and attempt < attempts:
                last_error = f"HTTP {response.status_code}"
                self._log_operation(f"{method} {url}", duration, False,
                                    f"attempt {attempt}/{attempts}: {last_error}")
                time.sleep(self.RETRY_BACKOFF_SECONDS * attempt)
                continue

            success = response.status_code < 400
            try:
                data = response.json() if response.content else None
            except ValueError:
                data = {'raw_response': response.text}

            self._log_operation(f"{method} {url}", duration, success,
                                f"Status: {response.status_code}")
            return APIResponse(
                success=success,
                status_code=response.status_code,
                data=data,
                error_message=None if success else f"HTTP {response.status_code}: {response.text[:200]}",
                response_time=duration,
                headers=dict(response.headers)
            )

        return APIResponse(success=False, status_code=0,
                           error_message=f"Request failed after {attempts} attempts: {last_error}")

    def test_connection(self) -> ConnectionTestResult:
        """
        Request one invoice row to check reachability and credentials.

        Returns:
            ConnectionTestResult with test status and details
        """
        start_time = time.time()
        response = self._make_request('GET', self._url(self.config.invoices_path), params={'limit': 1})
        duration = time.time() - start_time

        result = ConnectionTestResult(
            success=response.success,
            connection_id=self.connection_id,
            connection_type=ConnectionType.REST_API,
            response_time=duration,
            error_message=response.error_message,
            additional_info={
                'status_code': response.status_code,
                'base_url': self.config.base_url,
                'authentication_type': self.config.authentication_type.value
            }
        )
        self._last_connection_test = result
        self._connection_healthy = response.success
        self._log_operation("Connection test", duration, response.success,
                            f"Status: {response.status_code}")
        return result

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            'connection_id': self.connection_id,
            'connection_type': ConnectionType.REST_API.value,
            'base_url': self.config.base_url,
            'authentication_type': self.config.authentication_type.value,
            'rate_limit': self.config.rate_limit,
            'timeout': self.config.timeout,
            'retry_attempts': self.config.retry_attempts,
            'healthy': self.is_healthy(),
            'last_test': self._last_connection_test.to_dict() if self._last_connection_test else None
        }
