"""
Unit tests for API invoice repository with mock HTTP responses.

Tests authentication headers, PostgREST filters, paging, rate limiting
and retry logic.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from soa_matching.models import (
    APIConnectionConfig, AuthenticationType, ConnectionType, ConnectorError
)
from soa_matching.connectors.api_connector import APIInvoiceRepository, APIResponse, RateLimiter


def invoice_row(invoice_id, vendor_id="vendor-1", status="pending", amount="100.00"):
    return {
        'id': invoice_id,
        'vendor_id': vendor_id,
        'invoice_number': f'INV-{invoice_id}',
        'total_amount': amount,
        'currency_code': 'USD',
        'invoice_date': '2025-01-01',
        'status': status,
        'created_at': '2025-01-01T08:00:00Z'
    }


def mock_response(status_code=200, payload=None, text=''):
    response = Mock()
    response.status_code = status_code
    response.content = b'x' if payload is not None else b''
    response.json.return_value = payload
    response.text = text
    response.headers = {'Content-Type': 'application/json'}
    return response


def mock_session(*responses):
    session = Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


class TestRateLimiter:
    """Test cases for RateLimiter class."""

    def test_rate_limiter_creation(self):
        """Test creating rate limiter with specified rate."""
        limiter = RateLimiter(rate_limit=60)

        assert limiter.rate_limit == 60
        assert limiter.tokens == 60
        assert limiter.acquire() is True

    def test_rate_limiter_token_consumption(self):
        """Test that tokens are consumed on acquire."""
        limiter = RateLimiter(rate_limit=2)

        assert limiter.acquire() is True
        assert limiter.acquire() is True
        assert limiter.acquire() is False

    def test_rate_limiter_token_replenishment(self):
        """Test that tokens are replenished over time."""
        limiter = RateLimiter(rate_limit=60)

        for _ in range(60):
            limiter.acquire()
        assert limiter.acquire() is False

        limiter.last_update -= 1.0  # one second ago
        assert limiter.acquire() is True

    def test_wait_time_calculation(self):
        limiter = RateLimiter(rate_limit=60)

        for _ in range(60):
            limiter.acquire()

        wait_time = limiter.wait_time()
        assert 0 < wait_time <= 1.0


class TestAPIInvoiceRepository:
    """Test cases for APIInvoiceRepository."""

    def setup_method(self):
        """Setup test environment."""
        self.config = APIConnectionConfig(
            connection_id="ledger",
            base_url="https://ledger.example.com/rest/v1/",
            authentication_type=AuthenticationType.API_KEY,
            api_key="test_api_key_123",
            page_size=2
        )

    def test_api_key_headers(self):
        session = mock_session()
        APIInvoiceRepository(self.config, session=session)

        assert session.headers['apikey'] == 'test_api_key_123'
        assert session.headers['Authorization'] == 'Bearer test_api_key_123'

    def test_bearer_token_headers(self):
        self.config.authentication_type = AuthenticationType.BEARER_TOKEN
        session = mock_session()
        APIInvoiceRepository(self.config, session=session)

        assert session.headers == {'Authorization': 'Bearer test_api_key_123'}

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv('LEDGER_API_KEY', 'env_key_456')
        self.config.api_key = None
        self.config.api_key_env = 'LEDGER_API_KEY'
        session = mock_session()
        APIInvoiceRepository(self.config, session=session)

        assert session.headers['apikey'] == 'env_key_456'

    def test_missing_api_key(self):
        self.config.api_key = None

        with pytest.raises(ConnectorError):
            APIInvoiceRepository(self.config, session=mock_session())

    def test_list_eligible_invoices_filters(self):
        session = mock_session(mock_response(payload=[invoice_row('1')]))
        repository = APIInvoiceRepository(self.config, eligible_statuses=['pending', 'approved'],
                                          session=session)

        invoices = repository.list_eligible_invoices('vendor-1', company_id='company-9')

        assert [invoice.id for invoice in invoices] == ['1']
        method, url = session.request.call_args[0]
        params = session.request.call_args[1]['params']
        assert method == 'GET'
        assert url == 'https://ledger.example.com/rest/v1/invoices'
        assert params['vendor_id'] == 'eq.vendor-1'
        assert params['company_id'] == 'eq.company-9'
        assert params['status'] == 'in.(pending,approved)'
        assert params['order'] == 'created_at.asc'
        assert params['offset'] == 0

    def test_paging_until_short_page(self):
        session = mock_session(
            mock_response(payload=[invoice_row('1'), invoice_row('2')]),
            mock_response(payload={'data': [invoice_row('3')]})
        )
        repository = APIInvoiceRepository(self.config, session=session)

        invoices = repository.list_eligible_invoices('vendor-1')

        assert [invoice.id for invoice in invoices] == ['1', '2', '3']
        assert session.request.call_count == 2
        assert session.request.call_args[1]['params']['offset'] == 2

    def test_void_and_foreign_rows_dropped(self):
        session = mock_session(
            mock_response(payload=[
                invoice_row('1', status='void'),
                invoice_row('2', vendor_id='someone-else'),
            ]),
            mock_response(payload=[])
        )
        repository = APIInvoiceRepository(self.config, session=session)

        assert repository.list_eligible_invoices('vendor-1') == []
        assert session.request.call_count == 2

    def test_full_last_page_fetches_empty_page(self):
        session = mock_session(
            mock_response(payload=[invoice_row('1'), invoice_row('2')]),
            mock_response(payload=[])
        )
        repository = APIInvoiceRepository(self.config, session=session)

        invoices = repository.list_eligible_invoices('vendor-1')

        assert [invoice.id for invoice in invoices] == ['1', '2']
        assert session.request.call_count == 2
        assert session.request.call_args[1]['params']['offset'] == 2

    def test_http_error_raises(self):
        session = mock_session(mock_response(status_code=401, payload={'message': 'JWT expired'},
                                             text='JWT expired'))
        repository = APIInvoiceRepository(self.config, session=session)

        with pytest.raises(ConnectorError) as exc_info:
            repository.list_eligible_invoices('vendor-1')

        assert 'HTTP 401' in str(exc_info.value)
        assert repository.is_healthy() is False

    def test_malformed_payload_raises(self):
        session = mock_session(mock_response(payload={'unexpected': True}))
        repository = APIInvoiceRepository(self.config, session=session)

        with pytest.raises(ConnectorError):
            repository.list_eligible_invoices('vendor-1')

    def test_unparseable_row_raises(self):
        session = mock_session(mock_response(payload=[dict(invoice_row('1'), total_amount='n/a')]))
        repository = APIInvoiceRepository(self.config, session=session)

        with pytest.raises(ConnectorError):
            repository.list_eligible_invoices('vendor-1')

    @patch('soa_matching.connectors.api_connector.time.sleep')
    def test_retries_server_errors(self, mock_sleep):
        session = mock_session(
            mock_response(status_code=503, text='unavailable'),
            mock_response(payload=[invoice_row('1')])
        )
        repository = APIInvoiceRepository(self.config, session=session)

        invoices = repository.list_eligible_invoices('vendor-1')

        assert len(invoices) == 1
        assert session.request.call_count == 2
        mock_sleep.assert_called_once_with(APIInvoiceRepository.RETRY_BACKOFF_SECONDS)

    @patch('soa_matching.connectors.api_connector.time.sleep')
    def test_retries_exhausted(self, mock_sleep):
        self.config.retry_attempts = 2
        session = mock_session(requests.ConnectionError("refused"), requests.Timeout("slow"))
        repository = APIInvoiceRepository(self.config, session=session)

        response = repository._make_request('GET', 'https://ledger.example.com/invoices')

        assert isinstance(response, APIResponse)
        assert response.success is False
        assert 'after 2 attempts' in response.error_message
        assert session.request.call_count == 2

    def test_non_json_body(self):
        response = mock_response(payload={})
        response.json.side_effect = ValueError("not json")
        response.text = '<html>'
        repository = APIInvoiceRepository(self.config, session=mock_session(response))

        result = repository._make_request('GET', 'https://ledger.example.com/invoices')

        assert result.success is True
        assert result.data == {'raw_response': '<html>'}

    def test_connection_success(self):
        session = mock_session(mock_response(payload=[invoice_row('1')]))
        repository = APIInvoiceRepository(self.config, session=session)

        result = repository.test_connection()

        assert result.success is True
        assert result.connection_type == ConnectionType.REST_API
        assert result.additional_info['status_code'] == 200
        assert repository.get_last_test_result() is result
        assert session.request.call_args[1]['params'] == {'limit': 1}

    def test_connection_failure(self):
        session = mock_session(mock_response(status_code=403, payload={}, text='forbidden'))
        repository = APIInvoiceRepository(self.config, session=session)

        result = repository.test_connection()

        assert result.success is False
        assert 'HTTP 403' in result.error_message
        assert repository.is_healthy() is False

    def test_connection_info(self):
        repository = APIInvoiceRepository(self.config, session=mock_session())

        info = repository.get_connection_info()

        assert info['connection_type'] == 'rest_api'
        assert info['base_url'] == self.config.base_url
        assert info['last_test'] is None
        assert 'api_key' not in info
