"""
Unit tests for configuration loading and validation.
"""

from datetime import timedelta

import pytest
import yaml

from bedwatch.config import BedwatchConfig, ConfigManager, ConfigSource, ConfigValidator
from bedwatch.models.notifications import ConfigurationException


class TestConfigValidator:

    def setup_method(self):
        self.validator = ConfigValidator()

    def test_defaults_are_valid(self):
        assert self.validator.validate_config(BedwatchConfig()) == []

    def test_non_positive_threshold_rejected(self):
        errors = self.validator.validate_config(BedwatchConfig(iv_alert_threshold_hours=0))
        assert any("iv_alert_threshold_hours" in e for e in errors)

    def test_non_positive_interval_rejected(self):
        errors = self.validator.validate_config(BedwatchConfig(scan_interval_seconds=-5))
        assert any("scan_interval_seconds" in e for e in errors)

    def test_unknown_locale_rejected(self):
        errors = self.validator.validate_config(BedwatchConfig(message_locale="fr"))
        assert any("message_locale" in e for e in errors)

    def test_wrong_type_rejected(self):
        errors = self.validator.validate_config(BedwatchConfig(med_alert_threshold_hours="1"))
        assert any("Expected" in e for e in errors)

    def test_debug_logging_not_allowed_in_production(self):
        errors = self.validator.validate_config(BedwatchConfig(environment="production", log_level="DEBUG"))
        assert "Debug logging should not be used in production" in errors


class TestConfigManager:

    def test_defaults_only(self):
        manager = ConfigManager(environ={})
        config = manager.load()

        assert config.thresholds().iv == timedelta(hours=4)
        assert config.thresholds().med == timedelta(hours=1)
        assert manager.sources["scan_interval_seconds"] == ConfigSource.DEFAULT

    def test_yaml_file_then_environment(self, tmp_path):
        path = tmp_path / "bedwatch.yaml"
        path.write_text(yaml.safe_dump({
            "iv_alert_threshold_hours": 6,
            "med_alert_threshold_hours": 2.0,
            "message_locale": "en",
        }))
        manager = ConfigManager(str(path), environ={"BEDWATCH_MED_ALERT_THRESHOLD_HOURS": "0.5"})

        config = manager.load()

        assert config.iv_alert_threshold_hours == 6
        assert config.med_alert_threshold_hours == 0.5
        assert config.message_locale == "en"
        assert manager.sources["iv_alert_threshold_hours"] == ConfigSource.FILE
        assert manager.sources["med_alert_threshold_hours"] == ConfigSource.ENVIRONMENT

    def test_json_file(self, tmp_path):
        path = tmp_path / "bedwatch.json"
        path.write_text('{"scan_interval_seconds": 30}')

        assert ConfigManager(str(path), environ={}).load().scan_interval_seconds == 30

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"), environ={}).load()
        assert config == BedwatchConfig()

    def test_boolean_environment_override(self):
        config = ConfigManager(environ={"BEDWATCH_METRICS_ENABLED": "false"}).load()
        assert config.metrics_enabled is False

    def test_invalid_environment_value(self):
        with pytest.raises(ConfigurationException):
            ConfigManager(environ={"BEDWATCH_SCAN_INTERVAL_SECONDS": "soon"}).load()

    def test_invalid_config_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("iv_alert_threshold_hours: -1\n")

        with pytest.raises(ConfigurationException):
            ConfigManager(str(path), environ={}).load()

    def test_non_mapping_file_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationException):
            ConfigManager(str(path), environ={}).load()
