"""
Unit tests for SOA matching data models.

Tests parsing of statement lines and ledger invoices, the match result
contract, and settings serialization.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from soa_matching.models import (
    SOALine, Invoice, MatchResult, MatchingSettings, APIConnectionConfig,
    ConnectionTestResult, MatchType, ConnectionType, AuthenticationType,
    SOAMatchingError, ConnectorError, ConfigurationError, MatchingError,
    ValidationError, parse_amount, parse_date
)


def make_invoice(invoice_id="inv-1"):
    return Invoice(id=invoice_id, vendor_id="vendor-1", invoice_number="INV-001",
                   total_amount=Decimal("1000.00"), currency_code="USD",
                   invoice_date=date(2025, 1, 1), status="pending")


class TestParsing:
    """Test cases for amount and date parsing helpers."""

    def test_parse_amount_strings(self):
        assert parse_amount("1,234.50") == Decimal("1234.50")
        assert parse_amount("$99") == Decimal("99")
        assert parse_amount("") is None
        assert parse_amount(None) is None

    def test_parse_amount_float_keeps_decimal_digits(self):
        assert parse_amount(1000.1) == Decimal("1000.1")

    def test_parse_amount_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_amount("abc")
        with pytest.raises(ValidationError):
            parse_amount(True)
        with pytest.raises(ValidationError):
            parse_amount(float('nan'))

    def test_parse_date(self):
        assert parse_date("2025-01-15") == date(2025, 1, 15)
        assert parse_date("2025-01-15T10:30:00Z") == date(2025, 1, 15)
        assert parse_date(datetime(2025, 1, 15, 8)) == date(2025, 1, 15)
        assert parse_date("") is None

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValidationError):
            parse_date("15/01/2025")


class TestSOALine:
    """Test cases for SOALine model."""

    def test_from_dict_snake_case(self):
        line = SOALine.from_dict({
            'id': 'line-1', 'vendor_id': 'vendor-1', 'invoice_number': ' INV-001 ',
            'amount': '1000.00', 'currency_code': 'USD', 'invoice_date': '2025-01-01'
        })

        assert line.id == 'line-1'
        assert line.invoice_number == 'INV-001'
        assert line.amount == Decimal('1000.00')
        assert line.invoice_date == date(2025, 1, 1)
        assert line.allow_partial is False

    def test_from_dict_camel_case(self):
        line = SOALine.from_dict({
            'soaLineId': 7, 'vendorId': 'vendor-1', 'invoiceNumber': 'INV-002',
            'amount': 12.5, 'currency': 'EUR', 'allowPartial': 'true'
        })

        assert line.id == '7'
        assert line.invoice_number == 'INV-002'
        assert line.currency_code == 'EUR'
        assert line.invoice_date is None
        assert line.allow_partial is True

    def test_partial_match_mode(self):
        line = SOALine.from_dict({'id': 'x', 'amount': '1', 'match_mode': 'PARTIAL'})

        assert line.allow_partial is True

    def test_missing_fields(self):
        line = SOALine.from_dict({'id': 'x', 'invoice_number': '  '})

        assert line.missing_fields() == ['invoice_number', 'amount', 'currency_code']

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            SOALine.from_dict(["INV-001", 100])

    def test_direct_construction_coerces_values(self):
        line = SOALine(id='l', vendor_id='v', invoice_number='INV-1', amount=1000.1,
                       currency_code='USD', invoice_date='2025-03-01')

        assert line.amount == Decimal('1000.1')
        assert isinstance(line.amount, Decimal)
        assert line.invoice_date == date(2025, 3, 1)

    def test_direct_construction_rejects_bad_amount(self):
        with pytest.raises(ValidationError):
            SOALine(id='l', vendor_id='v', invoice_number='INV-1', amount='lots', currency_code='USD')

    def test_to_dict(self):
        line = SOALine(id='l', vendor_id='v', invoice_number='INV-1', amount=Decimal('5.00'),
                       currency_code='USD', invoice_date=date(2025, 3, 1))

        assert line.to_dict() == {
            'id': 'l', 'vendor_id': 'v', 'invoice_number': 'INV-1', 'amount': '5.00',
            'currency_code': 'USD', 'invoice_date': '2025-03-01', 'allow_partial': False
        }


class TestInvoice:
    """Test cases for Invoice model."""

    def test_from_dict_with_legacy_columns(self):
        invoice = Invoice.from_dict({
            'id': 42, 'vendor_id': 'vendor-1', 'invoice_num': 'INV-9', 'amount': '250.00',
            'currency': 'GBP', 'date': '2025-02-01', 'status': 'approved',
            'created_at': '2025-02-01T09:00:00Z'
        })

        assert invoice.id == '42'
        assert invoice.invoice_number == 'INV-9'
        assert invoice.total_amount == Decimal('250.00')
        assert invoice.currency_code == 'GBP'
        assert invoice.invoice_date == date(2025, 2, 1)
        assert invoice.created_at.year == 2025

    def test_eligibility(self):
        assert make_invoice().is_eligible is True
        for status in ['void', 'VOIDED', 'cancelled', ' canceled ']:
            invoice = Invoice(id='i', vendor_id='v', invoice_number='1', total_amount=Decimal('1'),
                              currency_code='USD', status=status)
            assert invoice.is_eligible is False

    def test_direct_construction_coerces_values(self):
        invoice = Invoice(id='i', vendor_id='v', invoice_number='1', total_amount=250,
                          currency_code='USD', invoice_date=datetime(2025, 2, 1, 14, 30))

        assert invoice.total_amount == Decimal('250')
        assert isinstance(invoice.total_amount, Decimal)
        assert invoice.invoice_date == date(2025, 2, 1)

    def test_missing_status_is_eligible(self):
        invoice = Invoice(id='i', vendor_id='v', invoice_number='1', total_amount=Decimal('1'),
                          currency_code='USD')
        assert invoice.is_eligible is True

    def test_bad_created_at(self):
        with pytest.raises(ValidationError):
            Invoice.from_dict({'id': '1', 'created_at': 'yesterday'})


class TestMatchResult:
    """Test cases for MatchResult contract."""

    def test_matched_uses_fixed_scores(self):
        for pass_number, expected in [(1, (1.0, 100)), (2, (0.95, 95)), (3, (0.90, 90)),
                                      (4, (0.85, 85)), (5, (0.75, 75))]:
            result = MatchResult.matched('line-1', make_invoice(), pass_number, {})
            assert (result.confidence, result.match_score) == expected
            assert result.is_exact_match is (pass_number == 1)
            assert result.is_matched is True

    def test_match_type(self):
        assert MatchResult.matched('l', make_invoice(), 1, {}).match_type == MatchType.DETERMINISTIC
        assert MatchResult.matched('l', make_invoice(), 3, {}).match_type == MatchType.PROBABILISTIC
        assert MatchResult.no_match('l', 'none').match_type == MatchType.NONE

    def test_no_match(self):
        result = MatchResult.no_match('line-1', 'nothing found', error='boom')

        assert result.pass_number == 0
        assert result.invoice is None
        assert result.confidence == 0.0
        assert result.match_score == 0
        assert result.is_matched is False
        assert result.reason == 'nothing found'
        assert result.error == 'boom'

    def test_pass_zero_cannot_carry_invoice(self):
        with pytest.raises(MatchingError):
            MatchResult(soa_line_id='l', invoice=make_invoice(), pass_number=0,
                        confidence=0.0, match_score=0)

    def test_wrong_scores_rejected(self):
        with pytest.raises(MatchingError):
            MatchResult(soa_line_id='l', invoice=make_invoice(), pass_number=2,
                        confidence=1.0, match_score=100)

    def test_unknown_pass_rejected(self):
        with pytest.raises(MatchingError):
            MatchResult(soa_line_id='l', invoice=make_invoice(), pass_number=6,
                        confidence=0.5, match_score=50)

    def test_matched_requires_invoice(self):
        with pytest.raises(MatchingError):
            MatchResult(soa_line_id='l', invoice=None, pass_number=1,
                        confidence=1.0, match_score=100)

    def test_criteria_copied(self):
        criteria = {'amount': 'exact'}
        result = MatchResult.matched('l', make_invoice(), 1, criteria)
        criteria['amount'] = 'changed'

        assert result.match_criteria == {'amount': 'exact'}

    def test_to_dict_no_match(self):
        data = MatchResult.no_match('l', 'why').to_dict()

        assert data['pass'] == 0
        assert data['invoice'] is None
        assert data['isExactMatch'] is False
        assert data['matchType'] == 'none'
        assert data['reason'] == 'why'


class TestMatchingSettings:
    """Test cases for MatchingSettings model."""

    def test_defaults(self):
        settings = MatchingSettings()

        assert settings.date_window_days == 7
        assert settings.amount_absolute_tolerance == Decimal('1.00')
        assert settings.amount_relative_tolerance == Decimal('0.005')
        assert settings.max_workers == 1

    def test_round_trip(self):
        settings = MatchingSettings(date_window_days=3, amount_absolute_tolerance=Decimal('0.50'),
                                    max_workers=4)

        assert MatchingSettings.from_dict(settings.to_dict()) == settings

    def test_from_dict_rejects_bad_values(self):
        with pytest.raises(ConfigurationError):
            MatchingSettings.from_dict({'amount_absolute_tolerance': 'lots'})
        with pytest.raises(ConfigurationError):
            MatchingSettings.from_dict({'date_window_days': 'week'})


class TestAPIConnectionConfig:
    """Test cases for APIConnectionConfig model."""

    def test_to_dict_hides_api_key(self):
        config = APIConnectionConfig(connection_id='ledger', base_url='https://example.com',
                                     api_key='secret')

        assert 'api_key' not in config.to_dict()
        assert config.to_dict(include_api_key=True)['api_key'] == 'secret'

    def test_from_dict(self):
        config = APIConnectionConfig.from_dict({
            'connection_id': 'ledger', 'base_url': 'https://example.com',
            'authentication_type': 'bearer_token', 'api_key_env': 'LEDGER_KEY'
        })

        assert config.authentication_type == AuthenticationType.BEARER_TOKEN
        assert config.api_key_env == 'LEDGER_KEY'
        assert config.page_size == 1000

    def test_from_dict_missing_fields(self):
        with pytest.raises(ConfigurationError):
            APIConnectionConfig.from_dict({'connection_id': 'ledger'})
        with pytest.raises(ConfigurationError):
            APIConnectionConfig.from_dict({'connection_id': 'ledger', 'base_url': 'x',
                                           'authentication_type': 'oauth'})


class TestConnectionTestResult:
    """Test cases for ConnectionTestResult model."""

    def test_to_dict(self):
        result = ConnectionTestResult(success=False, connection_id='ledger',
                                      connection_type=ConnectionType.REST_API,
                                      response_time=0.2, error_message='HTTP 500')

        data = result.to_dict()
        assert data['connection_type'] == 'rest_api'
        assert data['error_message'] == 'HTTP 500'


class TestExceptions:
    """Test cases for the exception hierarchy."""

    def test_hierarchy(self):
        for error in [ConnectorError, ConfigurationError, MatchingError, ValidationError]:
            assert issubclass(error, SOAMatchingError)
