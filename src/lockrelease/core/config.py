"""
lockrelease Configuration Manager

Centralized configuration management supporting:
- Environment-based configs (development/staging/production/test)
- Config file loading (YAML/JSON)
- Command-line override support
- Environment variable support (LOCKRELEASE_*)
- Config validation
"""

import os
import json
import logging
import yaml
from typing import Any, Dict, Optional, Union
from pathlib import Path
from dataclasses import dataclass, asdict
from enum import Enum
from dotenv import load_dotenv

from lockrelease.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
ENV_PREFIX = "LOCKRELEASE_"


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


@dataclass
class LedgerConfig:
    """Ledger behaviour settings"""
    event_page_size: int = 10000
    default_custodian: str = "0x" + "1" * 40

    def validate(self):
        if self.event_page_size < 1:
            raise ConfigurationError(
                f"Invalid event_page_size: {self.event_page_size}. Must be >= 1"
            )
        if not self.default_custodian:
            raise ConfigurationError("default_custodian cannot be empty")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    log_file: str = ""
    enable_file_logging: bool = False
    enable_console_logging: bool = True
    max_log_size: int = 10485760  # 10MB
    backup_count: int = 5

    def validate(self):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        if self.max_log_size < 1024:
            raise ConfigurationError(f"Invalid max_log_size: {self.max_log_size}. Must be >= 1024")
        if self.enable_file_logging and not self.log_file:
            raise ConfigurationError("log_file is required when file logging is enabled")


@dataclass
class StorageConfig:
    """Snapshot storage settings"""
    state_path: str = "lockrelease_state.json"

    def validate(self):
        if not self.state_path:
            raise ConfigurationError("state_path cannot be empty")


@dataclass
class ApiConfig:
    """HTTP query surface settings"""
    host: str = "127.0.0.1"
    port: int = 8780
    prefix: str = "/api/v1"

    def validate(self):
        if not (1 <= self.port <= 65535):
            raise ConfigurationError(f"Invalid port: {self.port}. Must be between 1-65535")
        if not self.prefix.startswith("/"):
            raise ConfigurationError(f"Invalid prefix: {self.prefix}. Must start with '/'")


@dataclass
class MetricsConfig:
    """Prometheus metrics settings"""
    enabled: bool = True

    def validate(self):
        pass


class ConfigManager:
    """
    Configuration Manager for lockrelease

    Sources, highest priority first:
    1. Command-line arguments
    2. Environment variables (LOCKRELEASE_SECTION_KEY)
    3. Environment-specific config file
    4. Default config file
    5. Built-in defaults
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        load_dotenv()

        self.environment = self._determine_environment(environment)
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = cli_overrides or {}

        self.ledger: LedgerConfig = None
        self.logging: LoggingConfig = None
        self.storage: StorageConfig = None
        self.api: ApiConfig = None
        self.metrics: MetricsConfig = None

        self._raw_config: Dict[str, Any] = {}

        self._load_configuration()

    def _determine_environment(self, environment: Optional[str]) -> Environment:
        if environment:
            env_str = environment.lower()
        else:
            env_str = os.getenv(f"{ENV_PREFIX}ENVIRONMENT", "development").lower()

        env_mapping = {
            "dev": Environment.DEVELOPMENT,
            "development": Environment.DEVELOPMENT,
            "staging": Environment.STAGING,
            "stage": Environment.STAGING,
            "prod": Environment.PRODUCTION,
            "production": Environment.PRODUCTION,
            "test": Environment.TEST,
            "testing": Environment.TEST,
        }

        return env_mapping.get(env_str, Environment.DEVELOPMENT)

    def _load_configuration(self):
        default_config = self._load_config_file("default")
        env_config = self._load_config_file(self.environment.value)

        merged_config = self._merge_configs(default_config, env_config)
        merged_config = self._apply_env_variables(merged_config)
        merged_config = self._apply_cli_overrides(merged_config)

        self._raw_config = merged_config

        self._parse_configuration(merged_config)
        self._validate_configuration()

        logger.debug(
            "Configuration loaded",
            extra={"event": "config.loaded", "environment": self.environment.value},
        )

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        """Load a YAML or JSON config file, or {} if neither exists."""
        yaml_path = self.config_dir / f"{filename}.yaml"
        if yaml_path.exists():
            with open(yaml_path, 'r', encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            json_path = self.config_dir / f"{filename}.json"
            if not json_path.exists():
                return {}
            with open(json_path, 'r', encoding="utf-8") as f:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {filename} must contain a mapping")
        return data

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides

        Format: LOCKRELEASE_SECTION_KEY=value, e.g.
        LOCKRELEASE_API_PORT=9000
        LOCKRELEASE_LEDGER_EVENT_PAGE_SIZE=500
        """
        result = config.copy()
        sections = {"ledger", "logging", "storage", "api", "metrics"}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            if key == f"{ENV_PREFIX}ENVIRONMENT":
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_")
            if len(parts) < 2:
                continue

            section = parts[0]
            config_key = "_".join(parts[1:])
            if section not in sections:
                continue

            section_values = result.get(section)
            section_values = dict(section_values) if isinstance(section_values, dict) else {}
            section_values[config_key] = self._parse_env_value(value)
            result[section] = section_values

        return result

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool]:
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _apply_cli_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        result = config.copy()

        for key, value in self.cli_overrides.items():
            if value is None:
                continue
            parts = key.split(".")

            if len(parts) == 1:
                result[key] = value
            elif len(parts) == 2:
                section, config_key = parts
                section_values = dict(result.get(section) or {})
                section_values[config_key] = value
                result[section] = section_values

        return result

    def _parse_configuration(self, config: Dict[str, Any]):
        try:
            self.ledger = LedgerConfig(**config.get("ledger", {}))
            self.logging = LoggingConfig(**config.get("logging", {}))
            self.storage = StorageConfig(**config.get("storage", {}))
            self.api = ApiConfig(**config.get("api", {}))
            self.metrics = MetricsConfig(**config.get("metrics", {}))
        except TypeError as exc:
            raise ConfigurationError(f"Unknown configuration key: {exc}") from exc

    def _validate_configuration(self):
        self.ledger.validate()
        self.logging.validate()
        self.storage.validate()
        self.api.validate()
        self.metrics.validate()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Configuration key (e.g., "api.port")
            default: Value returned when the key is missing
        """
        section, _, attr = key.partition(".")
        section_obj = getattr(self, section, None)
        if section_obj is None or not attr:
            return default
        return getattr(section_obj, attr, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment.value,
            "ledger": asdict(self.ledger),
            "logging": asdict(self.logging),
            "storage": asdict(self.storage),
            "api": asdict(self.api),
            "metrics": asdict(self.metrics),
        }

    def reload(self):
        """Reload configuration from files"""
        self._load_configuration()

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment.value})"


_config_manager: Optional[ConfigManager] = None


def get_config_manager(
    environment: Optional[str] = None,
    config_dir: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    force_reload: bool = False
) -> ConfigManager:
    """Get or create the ConfigManager singleton"""
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(
            environment=environment,
            config_dir=config_dir,
            cli_overrides=cli_overrides
        )

    return _config_manager
