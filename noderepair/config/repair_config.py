"""Configuration for the node auto-repair controller.

Values come from, in increasing precedence:
1. Dataclass defaults
2. A YAML file (explicit path or NODE_AUTO_REPAIR_CONFIG_PATH)
3. NODE_AUTO_REPAIR_* environment variables

Example YAML:
    concurrency: 2
    max_attempts: 3
    unhealthy_time_seconds: 300
    repair_timeout_seconds: 600
    nodes_file: /var/run/noderepair/nodes.yaml
    repair_command: "/usr/local/bin/reboot-node {node}"

Environment variables:
    NODE_AUTO_REPAIR_CONCURRENCY: Max simultaneous repair actions (default: 1)
    NODE_AUTO_REPAIR_MAX_ATTEMPTS: Attempts before giving up (default: 3)
    NODE_AUTO_REPAIR_UNHEALTHY_TIME: Debounce before first attempt, seconds (default: 300)
    NODE_AUTO_REPAIR_REPAIR_TIMEOUT: Wait per attempt, seconds (default: 600)
    NODE_AUTO_REPAIR_FEED_RESTART_DELAY: Feed restart delay, seconds (default: 5)
    NODE_AUTO_REPAIR_RESYNC_INTERVAL: Feed poll interval, seconds (default: 30)
    NODE_AUTO_REPAIR_KUBECONFIG: Kubeconfig path used when no nodes_file is set
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, ClassVar

import yaml

from noderepair.config.base_config import TRUE_VALUES, BaseRepairConfig
from noderepair.utils.exceptions import FS_ERRORS, ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "NODE_AUTO_REPAIR_CONFIG_PATH"

# Field name -> environment variable suffix
_ENV_SUFFIXES: dict[str, str] = {
    "enabled": "ENABLED",
    "concurrency": "CONCURRENCY",
    "max_attempts": "MAX_ATTEMPTS",
    "unhealthy_time_seconds": "UNHEALTHY_TIME",
    "repair_timeout_seconds": "REPAIR_TIMEOUT",
    "feed_restart_delay_seconds": "FEED_RESTART_DELAY",
    "resync_interval_seconds": "RESYNC_INTERVAL",
    "nodes_file": "NODES_FILE",
    "repair_command": "REPAIR_COMMAND",
    "repair_command_timeout_seconds": "REPAIR_COMMAND_TIMEOUT",
    "kubeconfig": "KUBECONFIG",
}


@dataclass
class NodeAutoRepairConfig(BaseRepairConfig):
    """Options recognised by NodeAutoRepair."""

    _env_prefix: ClassVar[str] = "NODE_AUTO_REPAIR"

    # Max amount of nodes to repair concurrently
    concurrency: int = 1
    # Max number of repair attempts per unhealthy episode
    max_attempts: int = 3
    # Time a node needs to be unhealthy before the first repair attempt
    unhealthy_time_seconds: float = 300.0
    # Time to wait for a repair attempt to take effect
    repair_timeout_seconds: float = 600.0
    # Delay before restarting a failed health change feed
    feed_restart_delay_seconds: float = 5.0
    # Poll interval for list-based feeds
    resync_interval_seconds: float = 30.0

    # Used by the command-line entry point only
    nodes_file: str = ""
    repair_command: str = ""
    repair_command_timeout_seconds: float = 300.0
    # Kubeconfig for the live cluster source; empty tries in-cluster first
    kubeconfig: str = ""

    @classmethod
    def from_env(cls) -> NodeAutoRepairConfig:
        """Create config from NODE_AUTO_REPAIR_* environment variables."""
        return cls()._apply_env()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeAutoRepairConfig:
        """Create config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls) if not f.name.startswith("_")}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        defaults = cls()
        kwargs: dict[str, Any] = {}
        for name, value in data.items():
            kwargs[name] = _coerce(name, value, type(getattr(defaults, name)))
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> NodeAutoRepairConfig:
        """Load config from a YAML mapping file."""
        path = Path(path).expanduser()
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except FS_ERRORS as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)

    def _apply_env(self) -> NodeAutoRepairConfig:
        """Override fields that have an environment variable set."""
        for name, suffix in _ENV_SUFFIXES.items():
            if not self._has_env(suffix):
                continue
            current = getattr(self, name)
            if isinstance(current, bool):
                value: Any = self._get_env_bool(suffix, current)
            elif isinstance(current, int):
                value = self._get_env_int(suffix, current)
            elif isinstance(current, float):
                value = self._get_env_float(suffix, current)
            else:
                value = self._get_env_str(suffix, current)
            setattr(self, name, value)
        return self

    def validate(self) -> NodeAutoRepairConfig:
        """Check option ranges.

        Raises:
            ConfigError: If any option is out of range
        """
        errors = []
        if self.concurrency < 1:
            errors.append(f"concurrency must be >= 1 (got {self.concurrency})")
        if self.max_attempts < 1:
            errors.append(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.unhealthy_time_seconds < 0:
            errors.append(
                f"unhealthy_time_seconds must be >= 0 (got {self.unhealthy_time_seconds})"
            )
        if self.repair_timeout_seconds < 0:
            errors.append(
                f"repair_timeout_seconds must be >= 0 (got {self.repair_timeout_seconds})"
            )
        if self.feed_restart_delay_seconds <= 0:
            errors.append(
                "feed_restart_delay_seconds must be > 0 "
                f"(got {self.feed_restart_delay_seconds})"
            )
        if self.resync_interval_seconds <= 0:
            errors.append(
                f"resync_interval_seconds must be > 0 (got {self.resync_interval_seconds})"
            )
        if errors:
            raise ConfigError("; ".join(errors))
        return self


def _coerce(name: str, value: Any, expected: type) -> Any:
    """Coerce a YAML value to the type of the field default."""
    if expected is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in TRUE_VALUES
        raise ConfigError(f"{name} must be a boolean (got {value!r})")
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ConfigError(f"{name} must be an integer (got {value!r})")
        try:
            return int(value)
        except ValueError as e:
            raise ConfigError(f"{name} must be an integer (got {value!r})") from e
    if expected is float:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ConfigError(f"{name} must be a number (got {value!r})")
        try:
            return float(value)
        except ValueError as e:
            raise ConfigError(f"{name} must be a number (got {value!r})") from e
    if value is None:
        return ""
    return str(value)


def load_config(path: str | Path | None = None) -> NodeAutoRepairConfig:
    """Load, merge and validate the auto-repair configuration.

    Args:
        path: Optional YAML file. Falls back to NODE_AUTO_REPAIR_CONFIG_PATH.

    Returns:
        Validated NodeAutoRepairConfig

    Raises:
        ConfigError: If the file is unreadable or any option is invalid
    """
    if path is None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if env_path:
            path = env_path

    if path is not None:
        config = NodeAutoRepairConfig.from_yaml(path)
        logger.info(f"[NodeAutoRepairConfig] Loaded config from {path}")
    else:
        config = NodeAutoRepairConfig()

    return config._apply_env().validate()


__all__ = [
    "CONFIG_PATH_ENV",
    "NodeAutoRepairConfig",
    "load_config",
]
