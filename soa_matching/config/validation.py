"""
Configuration validation utilities.

Checks matching tolerances and ledger connection settings and reports
errors, warnings and suggestions in one result object.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List
from urllib.parse import urlparse

from soa_matching.models import APIConnectionConfig, AuthenticationType, MatchingSettings

import logging
logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning message."""
        self.warnings.append(message)

    def add_suggestion(self, message: str):
        """Add a suggestion message."""
        self.suggestions.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'suggestions': self.suggestions
        }


class ConfigurationValidator:
    """Validates matching and connection configuration with detailed error reporting."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.ConfigurationValidator")

    def validate_matching_settings(self, settings: MatchingSettings) -> ValidationResult:
        """
        Validate matching tolerances.

        Args:
            settings: Matching settings to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult()

        if settings.date_window_days < 0:
            result.add_error("Date window cannot be negative")
        elif settings.date_window_days == 0:
            result.add_warning("Date window of 0 days makes the date-tolerant pass identical to the exact pass")
        elif settings.date_window_days > 31:
            result.add_warning("Date window is very wide (>31 days)")

        if settings.amount_absolute_tolerance < 0:
            result.add_error("Absolute amount tolerance cannot be negative")
        elif settings.amount_absolute_tolerance > Decimal('100'):
            result.add_warning("Absolute amount tolerance is very high (>100 currency units)")

        if settings.amount_relative_tolerance < 0:
            result.add_error("Relative amount tolerance cannot be negative")
        elif settings.amount_relative_tolerance >= 1:
            result.add_error("Relative amount tolerance must be a fraction below 1 (0.005 = 0.5%)")
        elif settings.amount_relative_tolerance > Decimal('0.05'):
            result.add_warning("Relative amount tolerance is very high (>5%)")

        if not 0 <= settings.amount_precision <= 4:
            result.add_error("Amount precision must be between 0 and 4 decimal places")

        if not 0.0 <= settings.auto_confirm_min_confidence <= 1.0:
            result.add_error("Auto-confirm confidence must be between 0.0 and 1.0")
        elif settings.auto_confirm_min_confidence < 0.9:
            result.add_suggestion("Auto-confirming below 0.90 confidence lets amount-tolerant and partial matches skip review")

        if settings.max_workers < 1:
            result.add_error("Max workers must be at least 1")
        elif settings.max_workers > 32:
            result.add_warning("Max workers is very high (>32)")

        if not settings.eligible_statuses:
            result.add_error("At least one eligible invoice status is required")
        else:
            excluded = {'void', 'voided', 'cancelled', 'canceled'}
            for status in settings.eligible_statuses:
                if status.lower() in excluded:
                    result.add_error(f"Status '{status}' can never be eligible for matching")

        self.logger.debug(f"Matching settings validation completed: {len(result.errors)} errors, "
                          f"{len(result.warnings)} warnings")
        return result

    def validate_api_config(self, config: APIConnectionConfig) -> ValidationResult:
        """
        Validate API connection configuration.

        Args:
            config: API connection configuration to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult()

        if not config.connection_id:
            result.add_error("Connection ID is required")
        elif not re.match(r'^[a-zA-Z0-9_-]+$', config.connection_id):
            result.add_error("Connection ID can only contain letters, numbers, hyphens, and underscores")

        if not config.base_url:
            result.add_error("Base URL is required")
        else:
            parsed_url = urlparse(config.base_url)

            if not parsed_url.scheme:
                result.add_error("Base URL must include protocol (http:// or https://)")
            elif parsed_url.scheme not in ['http', 'https']:
                result.add_error("Base URL must use HTTP or HTTPS protocol")
            elif parsed_url.scheme == 'http':
                result.add_warning("HTTP is not secure - consider using HTTPS")

            if not parsed_url.netloc:
                result.add_error("Base URL must include hostname")

            if parsed_url.netloc.endswith('.supabase.co') and '/rest/v1' not in parsed_url.path:
                result.add_suggestion("Supabase ledgers are usually served under /rest/v1")

        if not config.api_key and not config.api_key_env:
            result.add_error("Either an API key or the name of an environment variable holding it is required")
        elif config.api_key_env and not re.match(r'^[A-Z_][A-Z0-9_]*$', config.api_key_env):
            result.add_warning("API key environment variable name is not upper snake case")

        if config.api_key:
            if config.authentication_type == AuthenticationType.BEARER_TOKEN and len(config.api_key) < 10:
                result.add_warning("Bearer token appears to be very short")
            elif config.authentication_type == AuthenticationType.API_KEY and len(config.api_key) < 8:
                result.add_warning("API key appears to be very short")

        if not config.invoices_path:
            result.add_error("Invoices path is required")

        if config.timeout <= 0:
            result.add_error("Timeout must be positive")
        elif config.timeout > 300:
            result.add_warning("Timeout is very high (>5 minutes)")
        elif config.timeout < 5:
            result.add_warning("Timeout is very low (<5 seconds)")

        if config.rate_limit <= 0:
            result.add_error("Rate limit must be positive")
        elif config.rate_limit > 10000:
            result.add_warning("Rate limit is very high (>10,000 requests/minute)")

        if config.retry_attempts < 0:
            result.add_error("Retry attempts cannot be negative")
        elif config.retry_attempts > 10:
            result.add_warning("Retry attempts is very high (>10)")

        if config.page_size <= 0:
            result.add_error("Page size must be positive")

        for header_name, header_value in (config.additional_headers or {}).items():
            if not header_name or not header_value:
                result.add_warning("Empty header name or value found in additional headers")
            elif header_name.lower() in ['authorization', 'apikey']:
                result.add_warning(f"Header '{header_name}' may conflict with authentication")

        self.logger.debug(f"API config validation completed: {len(result.errors)} errors, "
                          f"{len(result.warnings)} warnings")
        return result
