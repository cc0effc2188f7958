"""
Configuration manager for the SOA matching engine.

Stores per-tenant matching tolerances and invoice ledger connection
settings as JSON files, with environment variable overrides and backups.
API keys are never written to disk; a connection names the environment
variable that holds its key instead.
"""

import json
import os
import re
import time
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from soa_matching.models import APIConnectionConfig, ConfigurationError, MatchingSettings

import logging
logger = logging.getLogger(__name__)

DEFAULT_TENANT = 'default'

# Environment variable -> (settings field, parser)
ENV_OVERRIDES = {
    'SOA_MATCH_DATE_WINDOW_DAYS': ('date_window_days', int),
    'SOA_MATCH_AMOUNT_ABSOLUTE': ('amount_absolute_tolerance', Decimal),
    'SOA_MATCH_AMOUNT_RELATIVE': ('amount_relative_tolerance', Decimal),
    'SOA_MATCH_MAX_WORKERS': ('max_workers', int),
}


class ConfigManager:
    """
    Manages configuration storage and retrieval for the matching engine.

    Layout under config_dir:
        settings/<tenant>.json  matching settings per tenant
        connections.json        ledger connection configurations
        backups/                snapshots taken before destructive changes
    """

    def __init__(self, config_dir: Optional[str] = None, use_env_overrides: bool = True):
        """
        Initialize configuration manager.

        Args:
            config_dir: Directory to store configuration files. If None, uses
                SOA_MATCHING_CONFIG_DIR or ~/.soa_matching/config.
            use_env_overrides: Whether SOA_MATCH_* variables override stored settings
        """
        self.logger = logging.getLogger(f"{__name__}.ConfigManager")

        if config_dir:
            self.config_dir = Path(config_dir)
        elif os.environ.get('SOA_MATCHING_CONFIG_DIR'):
            self.config_dir = Path(os.environ['SOA_MATCHING_CONFIG_DIR'])
        else:
            self.config_dir = Path.home() / '.soa_matching' / 'config'

        self.use_env_overrides = use_env_overrides
        self.settings_dir = self.config_dir / 'settings'
        self.connections_file = self.config_dir / 'connections.json'
        self.backup_dir = self.config_dir / 'backups'
        self.settings_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(exist_ok=True)

        self.logger.info(f"Configuration manager initialized with directory: {self.config_dir}")

    def _settings_file(self, tenant_id: str) -> Path:
        if not re.match(r'^[a-zA-Z0-9_-]+$', tenant_id):
            raise ConfigurationError(f"Invalid tenant id: {tenant_id!r}")
        return self.settings_dir / f"{tenant_id}.json"

    def save_matching_settings(self, settings: MatchingSettings,
                               tenant_id: str = DEFAULT_TENANT) -> bool:
        """
        Save matching settings for a tenant.

        Args:
            settings: Matching settings to save
            tenant_id: Tenant the settings apply to

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            settings_data = settings.to_dict()
            settings_data['updated_at'] = time.time()

            with open(self._settings_file(tenant_id), 'w') as f:
                json.dump(settings_data, f, indent=2)

            self.logger.info(f"Saved matching settings for tenant '{tenant_id}'")
            return True

        except (OSError, ConfigurationError) as e:
            self.logger.error(f"Failed to save matching settings for tenant '{tenant_id}': {e}")
            return False

    def load_matching_settings(self, tenant_id: str = DEFAULT_TENANT) -> MatchingSettings:
        """
        Load matching settings for a tenant.

        Falls back to the default tenant's file, then to built-in defaults.
        Environment overrides are applied last.

        Raises:
            ConfigurationError: If a stored file or override is invalid
        """
        settings = MatchingSettings()
        for candidate in dict.fromkeys([tenant_id, DEFAULT_TENANT]):
            settings_file = self._settings_file(candidate)
            if not settings_file.exists():
                continue
            try:
                with open(settings_file, 'r') as f:
                    settings_data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Cannot read settings file {settings_file}: {e}")
            settings_data.pop('updated_at', None)
            settings = MatchingSettings.from_dict(settings_data)
            self.logger.debug(f"Loaded matching settings for tenant '{tenant_id}' from {settings_file}")
            break
        else:
            self.logger.info(f"No matching settings found for tenant '{tenant_id}', using defaults")

        if self.use_env_overrides:
            settings = self._apply_env_overrides(settings)
        return settings

    def _apply_env_overrides(self, settings: MatchingSettings) -> MatchingSettings:
        overrides: Dict[str, Any] = {}
        for env_name, (field_name, parser) in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == '':
                continue
            try:
                overrides[field_name] = parser(raw)
            except (ValueError, InvalidOperation):
                raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}")
        if overrides:
            self.logger.info(f"Applying environment overrides: {sorted(overrides)}")
            settings = replace(settings, **overrides)
        return settings

    def list_tenants(self) -> List[str]:
        """Tenants with stored matching settings."""
        return sorted(path.stem for path in self.settings_dir.glob('*.json'))

    def save_connection_config(self, config: APIConnectionConfig) -> bool:
        """
        Save a ledger connection configuration without its API key.

        Args:
            config: Connection configuration to save

        Returns:
            True if saved successfully, False otherwise
        """
        try:
            connections = self._load_connections_file()

            config_data = config.to_dict(include_api_key=False)
            config_data['updated_at'] = time.time()
            config_data['created_at'] = connections.get(config.connection_id, {}).get('created_at', time.time())
            connections[config.connection_id] = config_data

            self._save_connections_file(connections)

            if config.api_key and not config.api_key_env:
                self.logger.warning(f"Connection '{config.connection_id}' has an API key but no api_key_env; "
                                    f"the key was not stored")
            self.logger.info(f"Saved connection configuration: {config.connection_id}")
            return True

        except OSError as e:
            self.logger.error(f"Failed to save connection config '{config.connection_id}': {e}")
            return False

    def load_connection_config(self, connection_id: str) -> Optional[APIConnectionConfig]:
        """
        Load a ledger connection configuration.

        The API key is resolved from the configured environment variable.

        Returns:
            Connection configuration or None if not found
        """
        connections = self._load_connections_file()

        if connection_id not in connections:
            self.logger.warning(f"Connection configuration not found: {connection_id}")
            return None

        config_data = dict(connections[connection_id])
        config_data.pop('created_at', None)
        config_data.pop('updated_at', None)

        api_key_env = config_data.get('api_key_env')
        if api_key_env:
            config_data['api_key'] = os.environ.get(api_key_env)
            if not config_data['api_key']:
                self.logger.warning(f"Environment variable {api_key_env} for connection '{connection_id}' is not set")

        return APIConnectionConfig.from_dict(config_data)

    def list_connections(self) -> List[Dict[str, Any]]:
        """List connection configurations (keys are never stored)."""
        connections = self._load_connections_file()
        return [
            {
                'connection_id': connection_id,
                'base_url': config_data.get('base_url'),
                'authentication_type': config_data.get('authentication_type'),
                'api_key_env': config_data.get('api_key_env'),
                'created_at': config_data.get('created_at'),
                'updated_at': config_data.get('updated_at')
            }
            for connection_id, config_data in connections.items()
        ]

    def delete_connection_config(self, connection_id: str) -> bool:
        """
        Delete a connection configuration, taking a backup first.

        Returns:
            True if deleted, False if it did not exist
        """
        connections = self._load_connections_file()

        if connection_id not in connections:
            self.logger.warning(f"Connection configuration not found for deletion: {connection_id}")
            return False

        self._create_backup("before_delete_" + connection_id)
        del connections[connection_id]
        self._save_connections_file(connections)

        self.logger.info(f"Deleted connection configuration: {connection_id}")
        return True

    def create_backup(self, backup_name: Optional[str] = None) -> str:
        """
        Create a backup of all configuration files.

        Args:
            backup_name: Optional name for the backup. If None, uses timestamp.

        Returns:
            Path to the created backup file
        """
        return self._create_backup(backup_name)

    def restore_backup(self, backup_path: str) -> bool:
        """
        Restore configuration from a backup file.

        Returns:
            True if restored successfully, False otherwise
        """
        try:
            backup_file = Path(backup_path)
            if not backup_file.exists():
                raise ConfigurationError(f"Backup file not found: {backup_path}")

            self._create_backup("before_restore")

            with open(backup_file, 'r') as f:
                backup_data = json.load(f)

            if 'connections' in backup_data:
                self._save_connections_file(backup_data['connections'])

            for tenant_id, settings_data in backup_data.get('settings', {}).items():
                with open(self._settings_file(tenant_id), 'w') as f:
                    json.dump(settings_data, f, indent=2)

            self.logger.info(f"Restored configuration from backup: {backup_path}")
            return True

        except (OSError, json.JSONDecodeError, ConfigurationError) as e:
            self.logger.error(f"Failed to restore backup '{backup_path}': {e}")
            return False

    def get_config_info(self) -> Dict[str, Any]:
        """Summary of what is stored where."""
        return {
            'config_directory': str(self.config_dir),
            'tenants': self.list_tenants(),
            'connections_count': len(self._load_connections_file()),
            'connections_file_exists': self.connections_file.exists(),
            'backup_directory': str(self.backup_dir),
            'backup_count': len(list(self.backup_dir.glob('*.json')))
        }

    def _load_connections_file(self) -> Dict[str, Any]:
        if not self.connections_file.exists():
            return {}
        try:
            with open(self.connections_file, 'r') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read connections file {self.connections_file}: {e}")

    def _save_connections_file(self, connections: Dict[str, Any]):
        with open(self.connections_file, 'w') as f:
            json.dump(connections, f, indent=2)

    def _create_backup(self, backup_name: Optional[str] = None) -> str:
        try:
            if backup_name is None:
                backup_name = f"backup_{int(time.time())}"

            backup_file = self.backup_dir / f"{backup_name}.json"

            settings = {}
            for settings_file in self.settings_dir.glob('*.json'):
                with open(settings_file, 'r') as f:
                    settings[settings_file.stem] = json.load(f)

            backup_data = {
                'created_at': time.time(),
                'connections': self._load_connections_file(),
                'settings': settings
            }

            with open(backup_file, 'w') as f:
                json.dump(backup_data, f, indent=2)

            self.logger.info(f"Created backup: {backup_file}")
            return str(backup_file)

        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to create backup: {e}")
            raise ConfigurationError(f"Backup creation failed: {e}")


# Global configuration manager instance
_global_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """
    Get the global configuration manager instance.

    Returns:
        Global ConfigManager instance
    """
    global _global_config_manager
    if _global_config_manager is None:
        _global_config_manager = ConfigManager()
    return _global_config_manager
