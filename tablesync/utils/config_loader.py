"""Configuration loader for the table sync system."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from tablesync.models.config import AppConfig, StreamConfig

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables."""

    def __init__(self) -> None:
        """Initialize the ConfigLoader."""
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses default.yaml

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration file is missing or invalid
        """
        # Default to config/<APP_ENV>.yaml
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        # Read the YAML, then resolve ${VAR} placeholders from the environment
        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        # pydantic enforces structure, including the per-stream field guards
        try:
            app_config = AppConfig(**config_dict)
            log.info("configuration_loaded_successfully", streams=sorted(app_config.streams))
            return app_config
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def get_stream(self, config: AppConfig, stream_name: str) -> StreamConfig:
        """Look up a configured stream by name.

        Raises:
            ConfigurationError: If the stream is not configured
        """
        try:
            return config.streams[stream_name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown stream '{stream_name}'. Configured streams: {sorted(config.streams)}"
            ) from None

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path based on environment.

        Returns:
            str: Path to the configuration file
        """
        env = os.getenv("APP_ENV", "default")
        config_dir = Path(__file__).parent.parent.parent / "config"
        config_file = config_dir / f"{env}.yaml"

        # Unknown environments use default.yaml
        if not config_file.exists():
            config_file = config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set APP_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}")

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} environment variables in configuration.

        Raises:
            ConfigurationError: If a required environment variable is not set
        """
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        matches = self.env_var_pattern.findall(value)

        for var_name in matches:
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment or .env file."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Validate configuration and return any warnings.

        Pydantic handles structural validation; this covers settings that are
        legal but probably unintended.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []

        for name, stream in config.streams.items():
            # Disabled certificate checks
            if not stream.verify_tls:
                warnings.append(f"stream '{name}': TLS certificate verification is disabled")

            # Renames that can never fire because the source field is filtered first
            overlap = set(stream.filter) & set(stream.mapping_replace)
            if overlap:
                warnings.append(
                    f"stream '{name}': fields {sorted(overlap)} are discarded before renaming, "
                    f"so their mapping_replace entries never apply"
                )

            # Isolation without a per-record timestamp cannot advance past a failure
            if stream.isolate_record_failures and not stream.record_timestamp_field:
                warnings.append(
                    f"stream '{name}': isolate_record_failures without record_timestamp_field "
                    f"holds the checkpoint whenever a record fails"
                )

        if not config.streams:
            warnings.append("no sync streams configured")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
