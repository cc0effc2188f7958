"""
Configuration management for the SOA matching engine.

Provides per-tenant storage of matching tolerances and invoice ledger
connections, plus validation of both.
"""

from .config_manager import ConfigManager, get_config_manager
from .validation import ConfigurationValidator, ValidationResult

__all__ = [
    "ConfigManager",
    "get_config_manager",
    "ConfigurationValidator",
    "ValidationResult"
]
