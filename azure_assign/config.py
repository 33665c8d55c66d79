"""
Configuration loading and management for Azure Assign.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for tenant and credentials
    ENV_OVERRIDES = {
        'tenant': 'AZURE_TENANT_ID',
        'credentials.client_id': 'AZURE_CLIENT_ID',
        'credentials.client_secret': 'AZURE_CLIENT_SECRET',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses AZURE_ASSIGN_CONFIG env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('AZURE_ASSIGN_CONFIG', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration must be a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for tenant and credentials."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        if not self.config.get('tenant'):
            errors.append("Missing required field: tenant")

        credentials = self.config.get('credentials') or {}
        for field in ['client_id', 'client_secret']:
            if not credentials.get(field):
                errors.append(f"Missing required credentials field: {field}")

        applications = self.config.get('applications') or []
        if not applications:
            errors.append("At least one application must be configured")

        seen_client_ids = set()
        for i, app in enumerate(applications):
            app_prefix = f"applications[{i}]"
            if not isinstance(app, dict):
                errors.append(f"{app_prefix} must be a mapping")
                continue

            client_id = app.get('client_id')
            if not client_id:
                errors.append(f"Missing required field {app_prefix}.client_id")
            elif client_id in seen_client_ids:
                errors.append(f"Duplicate client_id {client_id} in {app_prefix}")
            else:
                seen_client_ids.add(client_id)

            assignments = app.get('assignments')
            if assignments is None:
                # An empty list is allowed: it removes every group assignment
                errors.append(f"Missing required field {app_prefix}.assignments")
                continue
            if not isinstance(assignments, list):
                errors.append(f"{app_prefix}.assignments must be a list")
                continue

            for j, entry in enumerate(assignments):
                entry_prefix = f"{app_prefix}.assignments[{j}]"
                if not isinstance(entry, dict):
                    errors.append(f"{entry_prefix} must be a mapping")
                    continue
                if not entry.get('group_id'):
                    errors.append(f"Missing group_id for {entry_prefix}")
                # An empty list removes every role the group holds
                if not isinstance(entry.get('roles'), list):
                    errors.append(f"Missing roles list for {entry_prefix}")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        graph_defaults = {
            'base_url': 'https://graph.windows.net',
            'login_url': 'https://login.microsoftonline.com',
            'api_version': '1.6',
            'timeout_seconds': 30,
            'verify_ssl': True
        }
        graph_config = self.config.setdefault('graph', {})
        for key, value in graph_defaults.items():
            graph_config.setdefault(key, value)

        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'WARNING'
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5,
            'retry_backoff': 1.0
        }
        error_config = self.config.setdefault('error_handling', {})
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)

        concurrency_config = self.config.setdefault('concurrency', {})
        concurrency_config.setdefault('max_workers', 8)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
