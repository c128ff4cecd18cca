"""
Configuration Management for bedwatch

Loads alert thresholds, scheduler cadence and message rendering settings
from defaults, an optional YAML/JSON file and ``BEDWATCH_*`` environment
variables, in that order of precedence (later sources win).
"""

import os
import json
import logging
from dataclasses import dataclass, asdict, fields
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models.notifications import ConfigurationException


ENV_PREFIX = "BEDWATCH_"


class ConfigSource(Enum):
    """Configuration sources in order of precedence."""
    ENVIRONMENT = "environment"
    FILE = "file"
    DEFAULT = "default"


@dataclass
class AlertThresholds:
    """Per-variant alert lead times. Clinical policy, so never inlined."""
    iv: timedelta = timedelta(hours=4)
    med: timedelta = timedelta(hours=1)


@dataclass
class BedwatchConfig:
    """Complete bedwatch configuration."""

    # Alert policy
    iv_alert_threshold_hours: float = 4.0
    med_alert_threshold_hours: float = 1.0

    # Scheduler
    scan_interval_seconds: float = 60.0

    # Message rendering
    message_locale: str = "th"
    display_utc_offset_hours: float = 7.0

    # Notification store
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "bedwatch"

    # Environment
    environment: str = "development"
    log_level: str = "INFO"
    metrics_enabled: bool = True

    def thresholds(self) -> AlertThresholds:
        return AlertThresholds(
            iv=timedelta(hours=self.iv_alert_threshold_hours),
            med=timedelta(hours=self.med_alert_threshold_hours),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BedwatchConfig':
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ConfigValidator:
    """Configuration validation with type checking and business rules."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        self.validation_rules = {
            'iv_alert_threshold_hours': {
                'type': (int, float),
                'min': 0.0,
                'max': 72.0,
                'exclusive_min': True,
                'description': 'Lead time before an IV due time that raises an alert'
            },
            'med_alert_threshold_hours': {
                'type': (int, float),
                'min': 0.0,
                'max': 72.0,
                'exclusive_min': True,
                'description': 'Lead time before a medication expiry that raises an alert'
            },
            'scan_interval_seconds': {
                'type': (int, float),
                'min': 0.0,
                'max': 3600.0,
                'exclusive_min': True,
                'description': 'Seconds between scheduler ticks'
            },
            'display_utc_offset_hours': {
                'type': (int, float),
                'min': -12.0,
                'max': 14.0,
                'description': 'UTC offset used to render timestamps in messages'
            },
            'message_locale': {
                'type': str,
                'allowed_values': ['th', 'en'],
                'description': 'Message template language'
            },
            'environment': {
                'type': str,
                'allowed_values': ['development', 'testing', 'staging', 'production'],
                'description': 'Deployment environment'
            },
            'log_level': {
                'type': str,
                'allowed_values': ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                'description': 'Logging level'
            }
        }

    def validate_config(self, config: BedwatchConfig) -> List[str]:
        """
        Validate configuration against rules.

        Args:
            config: Configuration to validate

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for key, value in config.to_dict().items():
            if key in self.validation_rules:
                errors.extend(self._validate_field(key, value, self.validation_rules[key]))

        errors.extend(self._validate_business_rules(config))
        return errors

    def _validate_field(self, field_name: str, value: Any, rules: Dict[str, Any]) -> List[str]:
        """Validate individual field against rules."""
        errors = []

        expected_type = rules.get('type')
        if expected_type and (not isinstance(value, expected_type) or isinstance(value, bool)):
            type_name = getattr(expected_type, '__name__', 'number')
            errors.append(f"{field_name}: Expected {type_name}, got {type(value).__name__}")
            return errors

        if isinstance(value, (int, float)):
            min_val = rules.get('min')
            max_val = rules.get('max')

            if min_val is not None:
                if rules.get('exclusive_min') and value <= min_val:
                    errors.append(f"{field_name}: Value {value} must be greater than {min_val}")
                elif value < min_val:
                    errors.append(f"{field_name}: Value {value} below minimum {min_val}")

            if max_val is not None and value > max_val:
                errors.append(f"{field_name}: Value {value} above maximum {max_val}")

        allowed_values = rules.get('allowed_values')
        if allowed_values and value not in allowed_values:
            errors.append(f"{field_name}: Value '{value}' not in allowed values: {allowed_values}")

        return errors

    def _validate_business_rules(self, config: BedwatchConfig) -> List[str]:
        """Validate business logic rules."""
        errors = []

        if config.environment == "production":
            if config.log_level == "DEBUG":
                errors.append("Debug logging should not be used in production")

            if not config.redis_url:
                errors.append("A notification store URL is required in production")

        return errors


class ConfigManager:
    """
    Loads configuration from defaults, file and environment.

    The resulting configuration is validated before it is returned; a config
    with any validation error is never handed to the rest of the system.
    """

    def __init__(self, config_file_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        self.logger = logging.getLogger(__name__)
        self.validator = ConfigValidator()
        self.config_file_path = config_file_path
        self.environ = environ if environ is not None else os.environ
        self.sources: Dict[str, ConfigSource] = {}

    def load(self) -> BedwatchConfig:
        values = BedwatchConfig().to_dict()
        self.sources = {key: ConfigSource.DEFAULT for key in values}

        if self.config_file_path:
            for key, value in self._load_file_config(self.config_file_path).items():
                if key in values:
                    values[key] = value
                    self.sources[key] = ConfigSource.FILE
                else:
                    self.logger.warning(f"Ignoring unknown configuration key '{key}'")

        for key, value in self._load_environment_config(values).items():
            values[key] = value
            self.sources[key] = ConfigSource.ENVIRONMENT

        config = BedwatchConfig.from_dict(values)
        errors = self.validator.validate_config(config)
        if errors:
            for error in errors:
                self.logger.error(f"Configuration error: {error}")
            raise ConfigurationException(f"Invalid configuration: {'; '.join(errors)}")

        self.logger.info(f"Configuration loaded for environment '{config.environment}'")
        return config

    def _load_file_config(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        path = Path(file_path)
        if not path.exists():
            self.logger.warning(f"Configuration file {file_path} does not exist")
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationException(f"Failed to read configuration file {file_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationException(f"Configuration file {file_path} must contain a mapping")

        self.logger.debug(f"Configuration file {file_path} loaded")
        return data

    def _load_environment_config(self, current: Dict[str, Any]) -> Dict[str, Any]:
        """Collect ``BEDWATCH_<KEY>`` overrides, coerced to the default's type."""
        defaults = BedwatchConfig().to_dict()
        overrides = {}
        for key in current:
            env_key = f"{ENV_PREFIX}{key.upper()}"
            if env_key not in self.environ:
                continue
            raw = self.environ[env_key]
            try:
                overrides[key] = _coerce(raw, defaults[key])
            except ValueError:
                raise ConfigurationException(f"{env_key}: cannot interpret '{raw}'")
        return overrides


def _coerce(raw: str, like: Any) -> Any:
    if isinstance(like, bool):
        return raw.strip().lower() in ('true', '1', 'yes', 'on')
    if isinstance(like, float):
        return float(raw)
    if isinstance(like, int):
        return int(raw)
    return raw


def configure_logging(config: BedwatchConfig) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def load_config(config_file_path: Optional[str] = None) -> BedwatchConfig:
    return ConfigManager(config_file_path).load()
