"""Tests for repair_config.py - defaults, env overrides, YAML loading, validation."""

from __future__ import annotations

import pytest

from noderepair.config.repair_config import (
    CONFIG_PATH_ENV,
    NodeAutoRepairConfig,
    load_config,
)
from noderepair.utils.exceptions import ConfigError

ENV_VARS = [
    "NODE_AUTO_REPAIR_ENABLED",
    "NODE_AUTO_REPAIR_CONCURRENCY",
    "NODE_AUTO_REPAIR_MAX_ATTEMPTS",
    "NODE_AUTO_REPAIR_UNHEALTHY_TIME",
    "NODE_AUTO_REPAIR_REPAIR_TIMEOUT",
    "NODE_AUTO_REPAIR_FEED_RESTART_DELAY",
    "NODE_AUTO_REPAIR_RESYNC_INTERVAL",
    "NODE_AUTO_REPAIR_NODES_FILE",
    "NODE_AUTO_REPAIR_REPAIR_COMMAND",
    "NODE_AUTO_REPAIR_REPAIR_COMMAND_TIMEOUT",
    "NODE_AUTO_REPAIR_KUBECONFIG",
    CONFIG_PATH_ENV,
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = NodeAutoRepairConfig()
        assert config.enabled is True
        assert config.concurrency == 1
        assert config.max_attempts == 3
        assert config.unhealthy_time_seconds == 300.0
        assert config.repair_timeout_seconds == 600.0
        assert config.feed_restart_delay_seconds == 5.0

    def test_to_dict_excludes_private(self):
        data = NodeAutoRepairConfig().to_dict()
        assert data["max_attempts"] == 3
        assert "_env_prefix" not in data


class TestFromEnv:
    """Tests for environment variable overrides."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NODE_AUTO_REPAIR_CONCURRENCY", "4")
        monkeypatch.setenv("NODE_AUTO_REPAIR_UNHEALTHY_TIME", "12.5")
        monkeypatch.setenv("NODE_AUTO_REPAIR_ENABLED", "no")
        monkeypatch.setenv("NODE_AUTO_REPAIR_REPAIR_COMMAND", "  reboot {node}  ")
        monkeypatch.setenv("NODE_AUTO_REPAIR_KUBECONFIG", "/etc/kube/config")

        config = NodeAutoRepairConfig.from_env()

        assert config.concurrency == 4
        assert config.unhealthy_time_seconds == 12.5
        assert config.enabled is False
        assert config.repair_command == "reboot {node}"
        assert config.kubeconfig == "/etc/kube/config"

    def test_bad_number_falls_back(self, monkeypatch):
        monkeypatch.setenv("NODE_AUTO_REPAIR_MAX_ATTEMPTS", "many")
        assert NodeAutoRepairConfig.from_env().max_attempts == 3


class TestFromDict:
    """Tests for mapping-based construction."""

    def test_coerces_types(self):
        config = NodeAutoRepairConfig.from_dict({
            "concurrency": "2",
            "unhealthy_time_seconds": 60,
            "enabled": "true",
        })
        assert config.concurrency == 2
        assert config.unhealthy_time_seconds == 60.0
        assert isinstance(config.unhealthy_time_seconds, float)
        assert config.enabled is True

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError, match="max_attempt"):
            NodeAutoRepairConfig.from_dict({"max_attempt": 3})

    @pytest.mark.parametrize("key,value", [
        ("concurrency", "two"),
        ("concurrency", True),
        ("repair_timeout_seconds", [1]),
        ("enabled", 3),
    ])
    def test_bad_values_rejected(self, key, value):
        with pytest.raises(ConfigError, match=key):
            NodeAutoRepairConfig.from_dict({key: value})


class TestFromYaml:
    """Tests for YAML files."""

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "repair.yaml"
        path.write_text("concurrency: 3\nmax_attempts: 5\nrepair_command: reboot {node}\n")

        config = NodeAutoRepairConfig.from_yaml(path)

        assert config.concurrency == 3
        assert config.max_attempts == 5
        assert config.repair_command == "reboot {node}"

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "repair.yaml"
        path.write_text("")
        assert NodeAutoRepairConfig.from_yaml(path) == NodeAutoRepairConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            NodeAutoRepairConfig.from_yaml(tmp_path / "missing.yaml")

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "repair.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError, match="mapping"):
            NodeAutoRepairConfig.from_yaml(path)


class TestValidate:
    """Tests for range checks."""

    def test_valid_defaults(self):
        config = NodeAutoRepairConfig()
        assert config.validate() is config

    def test_zero_unhealthy_time_allowed(self):
        NodeAutoRepairConfig(unhealthy_time_seconds=0.0, repair_timeout_seconds=0.0).validate()

    @pytest.mark.parametrize("kwargs,field", [
        ({"concurrency": 0}, "concurrency"),
        ({"max_attempts": 0}, "max_attempts"),
        ({"unhealthy_time_seconds": -1.0}, "unhealthy_time_seconds"),
        ({"repair_timeout_seconds": -1.0}, "repair_timeout_seconds"),
        ({"feed_restart_delay_seconds": 0.0}, "feed_restart_delay_seconds"),
        ({"resync_interval_seconds": 0.0}, "resync_interval_seconds"),
    ])
    def test_out_of_range(self, kwargs, field):
        with pytest.raises(ConfigError, match=field):
            NodeAutoRepairConfig(**kwargs).validate()

    def test_all_errors_reported(self):
        with pytest.raises(ConfigError) as exc_info:
            NodeAutoRepairConfig(concurrency=0, max_attempts=0).validate()
        assert "concurrency" in str(exc_info.value)
        assert "max_attempts" in str(exc_info.value)


class TestLoadConfig:
    """Tests for the merged loader."""

    def test_defaults_without_file(self):
        assert load_config() == NodeAutoRepairConfig()

    def test_env_path_and_env_override(self, tmp_path, monkeypatch):
        """Environment variables take precedence over the file."""
        path = tmp_path / "repair.yaml"
        path.write_text("concurrency: 3\nmax_attempts: 5\n")
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
        monkeypatch.setenv("NODE_AUTO_REPAIR_MAX_ATTEMPTS", "7")

        config = load_config()

        assert config.concurrency == 3
        assert config.max_attempts == 7

    def test_invalid_values_raise(self, tmp_path):
        path = tmp_path / "repair.yaml"
        path.write_text("concurrency: 0\n")
        with pytest.raises(ConfigError, match="concurrency"):
            load_config(path)
