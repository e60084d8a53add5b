"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from grid_watch.config.manager import ConfigManager
from grid_watch.config.schema import AppConfig, EcoFlowConfig, MQTTConfig

REPO_DEFAULTS = Path(__file__).resolve().parents[1] / "config.defaults.yaml"


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.ecoflow.api_host == "api.ecoflow.com"
        assert config.mqtt.qos == 1
        assert config.dashboard.port == 8080
        assert config.db.path == "data/grid_watch.db"

    def test_ecoflow_enabled_needs_all_credentials(self) -> None:
        assert not EcoFlowConfig().enabled
        assert not EcoFlowConfig(email="a@b.c", password="x").enabled
        assert EcoFlowConfig(email="a@b.c", password="x", device_sn="R351").enabled

    def test_reconnect_delay_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MQTTConfig(reconnect_delay_seconds=0)

    def test_qos_range(self) -> None:
        with pytest.raises(ValidationError):
            MQTTConfig(qos=3)

    def test_shipped_defaults_match_schema(self) -> None:
        mgr = ConfigManager(defaults_path=REPO_DEFAULTS, user_path=Path("/nonexistent"), environ={})
        assert mgr.load() == AppConfig()


class TestConfigManager:
    def test_load_defaults_only(self, config_manager: ConfigManager) -> None:
        assert config_manager.config.db.path == ":memory:"
        assert not config_manager.config.ecoflow.enabled

    def test_user_overrides(self, tmp_path: Path) -> None:
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("ecoflow:\n  api_host: api.ecoflow.com\n  device_group: '1.1'\n")
        user = tmp_path / "user.yaml"
        user.write_text("ecoflow:\n  device_group: '3.2'\n")

        config = ConfigManager(defaults, user, environ={}).load()
        assert config.ecoflow.device_group == "3.2"
        assert config.ecoflow.api_host == "api.ecoflow.com"

    def test_environment_overrides(self, tmp_path: Path) -> None:
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("ecoflow:\n  email: file@example.com\n")
        environ = {
            "ECOFLOW_EMAIL": "env@example.com",
            "ECOFLOW_PASSWORD": "pw",
            "ECOFLOW_DEVICE_SN": "R351ZEB4HF4E0484",
            "ECOFLOW_API_HOST": "api-e.ecoflow.com",
            "ECOFLOW_GROUP": "4.1",
            "DEBUG_ECOFLOW": "true",
        }
        config = ConfigManager(defaults, tmp_path / "none.yaml", environ=environ).load()
        assert config.ecoflow.email == "env@example.com"
        assert config.ecoflow.api_host == "api-e.ecoflow.com"
        assert config.ecoflow.device_group == "4.1"
        assert config.ecoflow.debug
        assert config.ecoflow.enabled

    def test_empty_environment_value_ignored(self, tmp_path: Path) -> None:
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("ecoflow:\n  email: file@example.com\n")
        config = ConfigManager(defaults, tmp_path / "none.yaml", environ={"ECOFLOW_EMAIL": ""}).load()
        assert config.ecoflow.email == "file@example.com"

    def test_debug_flag_false(self, tmp_path: Path) -> None:
        config = ConfigManager(
            tmp_path / "d.yaml", tmp_path / "u.yaml", environ={"DEBUG_ECOFLOW": "1"},
        ).load()
        assert not config.ecoflow.debug

    def test_data_dir(self, tmp_path: Path) -> None:
        config = ConfigManager(
            tmp_path / "d.yaml", tmp_path / "u.yaml", environ={"DATA_DIR": "/var/lib/grid"},
        ).load()
        assert config.db.path == str(Path("/var/lib/grid") / "grid_watch.db")

    def test_deep_merge(self) -> None:
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        override = {"a": {"b": 10}}
        assert ConfigManager._deep_merge(base, override) == {"a": {"b": 10, "c": 2}, "d": 3}

    def test_config_before_load(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            _ = ConfigManager(tmp_path / "d.yaml", tmp_path / "u.yaml", environ={}).config
