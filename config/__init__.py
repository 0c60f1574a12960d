"""
Configuration Module for the AP Assist Pipeline.

This module provides centralized configuration management using YAML files.
Defaults live in settings.yaml; deployment-specific values (mailbox
credentials, API keys, document store tokens) come from environment
variables, optionally loaded from a .env file.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from dotenv import load_dotenv

from ap_assist.utils.exceptions import ConfigurationError


# Environment variable -> dotted configuration key
ENV_OVERRIDES: Dict[str, str] = {
    # Mailbox
    "IMAP_HOST": "mailbox.host",
    "IMAP_PORT": "mailbox.port",
    "IMAP_USER": "mailbox.user",
    "IMAP_PASSWORD": "mailbox.password",
    "IMAP_TLS": "mailbox.use_ssl",
    "IMAP_MAILBOX": "mailbox.folder",
    "SEARCH_CRITERIA": "mailbox.search_criteria",
    "MARK_AS_READ": "mailbox.mark_as_read",
    "POLL_INTERVAL_MS": "mailbox.poll_interval_ms",
    # Oracle
    "ANTHROPIC_API_KEY": "oracle.api_key",
    "CLAUDE_MODEL": "oracle.model",
    "CLAUDE_VALIDATION_MODEL": "oracle.validation_model",
    "CLAUDE_MAX_TOKENS": "oracle.max_tokens",
    # Document store
    "NETSUITE_ENABLED": "document_store.enabled",
    "NETSUITE_RESTLET_URL": "document_store.restlet_url",
    "NETSUITE_ACCOUNT_ID": "document_store.account_id",
    "NETSUITE_CONSUMER_KEY": "document_store.consumer_key",
    "NETSUITE_CONSUMER_SECRET": "document_store.consumer_secret",
    "NETSUITE_TOKEN_ID": "document_store.token_id",
    "NETSUITE_TOKEN_SECRET": "document_store.token_secret",
    "NETSUITE_PDF_FOLDER_ID": "document_store.default_primary_folder_id",
    "NETSUITE_JSON_FOLDER_ID": "document_store.default_secondary_folder_id",
    # Local output
    "SAVE_PDFS": "output.save_pdfs",
    "OUTPUT_DIR": "output.pdf_dir",
    "SAVE_RESULTS": "output.save_results",
    "RESULTS_DIR": "output.results_dir",
    # Validation report delivery
    "VALIDATION_EMAIL": "transaction_validation.email_recipient",
    "SMTP_HOST": "email.smtp_host",
    "SMTP_PORT": "email.smtp_port",
    "SMTP_USER": "email.username",
    "SMTP_PASSWORD": "email.password",
    "SMTP_SENDER": "email.sender",
    "LOG_LEVEL": "logging.level",
}


class ConfigurationManager:
    """
    Centralized configuration management for the AP Assist pipeline.

    This class handles loading settings.yaml, applying environment
    variable overrides, and providing access to all configuration
    parameters.

    Attributes:
        config_path (Path): Path to the configuration file.
        config (Dict): Loaded configuration dictionary.

    Example:
        >>> config = ConfigurationManager()
        >>> host = config.get("mailbox.host")
        >>> group_size = config.get("batch.group_size", 3)
    """

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        """
        Singleton pattern to ensure only one configuration instance exists.

        Args:
            config_path: Optional path to configuration file.

        Returns:
            ConfigurationManager instance.
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        Defaults to config/settings.yaml.
        """
        if self._initialized:
            return

        if config_path is None:
            self.config_path = Path(__file__).parent / "settings.yaml"
        else:
            self.config_path = Path(config_path)

        # Values already present in the environment win over .env
        load_dotenv(override=False)

        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """
        Load configuration from YAML file and apply overrides.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            yaml.YAMLError: If configuration file is invalid.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = yaml.safe_load(f) or {}

        self._apply_env_overrides()
        self._resolve_paths()

    def _apply_env_overrides(self) -> None:
        """
        Overlay environment variables listed in ENV_OVERRIDES.

        Values are coerced to the type of the YAML default so that
        "false" disables a boolean flag and "60000" stays an integer.
        """
        for env_name, key in ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            current = self.get(key)
            self.set(key, _coerce(raw, current))

    def _resolve_paths(self) -> None:
        """
        Resolve relative paths in configuration to absolute paths.
        Uses project root as base directory.
        """
        project_root = Path(__file__).parent.parent

        if 'paths' in self._config:
            for key, value in self._config['paths'].items():
                if value and not Path(value).is_absolute():
                    self._config['paths'][key] = str(project_root / value)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "mailbox.host").
            default: Default value if key doesn't exist.

        Returns:
            Configuration value or default.

        Example:
            >>> config.get("oracle.model")
            "claude-haiku-4-5-20251001"
            >>> config.get("nonexistent.key", "default_value")
            "default_value"
        """
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value using dot notation.

        Intermediate sections are created as needed.

        Args:
            key: Configuration key in dot notation.
            value: Value to store.
        """
        keys = key.split('.')
        section = self._config
        for k in keys[:-1]:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]
        section[keys[-1]] = value

    def require(self, env_names: Iterable[str]) -> None:
        """
        Ensure the given environment-backed settings have values.

        Args:
            env_names: Environment variable names from ENV_OVERRIDES.

        Raises:
            ConfigurationError: Listing every missing variable.
        """
        missing = [
            name for name in env_names
            if self.get(ENV_OVERRIDES.get(name, name)) in (None, "")
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing=missing
            )

    def get_all(self) -> Dict[str, Any]:
        """
        Get the complete configuration dictionary.

        Returns:
            Complete configuration dictionary.
        """
        return self._config.copy()

    def reload(self) -> None:
        """
        Reload configuration from file.
        Useful for dynamic configuration updates.
        """
        self._load_config()

    @classmethod
    def reset(cls) -> None:
        """
        Reset the singleton instance.
        Useful for testing or configuration changes.
        """
        cls._instance = None


def _coerce(raw: str, current: Any) -> Any:
    """Convert an environment string to the type of the existing value."""
    if isinstance(current, bool):
        return raw.strip().lower() not in ("false", "0", "no", "off")
    if isinstance(current, int):
        try:
            return int(raw)
        except ValueError:
            return current
    if isinstance(current, float):
        try:
            return float(raw)
        except ValueError:
            return current
    return raw


# Convenience function for quick access
def get_config(key: str, default: Any = None) -> Any:
    """
    Convenience function to get configuration values.

    Args:
        key: Configuration key in dot notation.
        default: Default value if key doesn't exist.

    Returns:
        Configuration value or default.
    """
    return ConfigurationManager().get(key, default)


# Export public API
__all__ = ['ConfigurationManager', 'ConfigurationError', 'ENV_OVERRIDES', 'get_config']
