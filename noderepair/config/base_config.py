"""Dataclass config base with typed environment variable getters.

Subclasses set `_env_prefix` and read overrides with the ``_get_env_*``
helpers; a malformed numeric value falls back to the default rather than
failing the process.

Usage:
    @dataclass
    class RepairWebhookConfig(BaseRepairConfig):
        _env_prefix: ClassVar[str] = "NODE_AUTO_REPAIR_WEBHOOK"

        retries: int = 3

        @classmethod
        def from_env(cls) -> RepairWebhookConfig:
            return cls(
                enabled=cls._get_env_bool("ENABLED", True),
                retries=cls._get_env_int("RETRIES", 3),
            )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import Any, ClassVar, TypeVar

T = TypeVar("T", bound="BaseRepairConfig")
N = TypeVar("N", int, float)

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass
class BaseRepairConfig:
    """Fields and env handling shared by node auto-repair configs."""

    _env_prefix: ClassVar[str] = "NODE_AUTO_REPAIR"

    enabled: bool = True

    @classmethod
    def _make_env_key(cls, suffix: str) -> str:
        return f"{cls._env_prefix}_{suffix}"

    @classmethod
    def _env_value(cls, suffix: str) -> str | None:
        return os.environ.get(cls._make_env_key(suffix))

    @classmethod
    def _has_env(cls, suffix: str) -> bool:
        return cls._env_value(suffix) is not None

    @classmethod
    def _get_env_bool(cls, suffix: str, default: bool) -> bool:
        """Read a flag; any value outside TRUE_VALUES is False."""
        raw = cls._env_value(suffix)
        return default if raw is None else raw.strip().lower() in TRUE_VALUES

    @classmethod
    def _get_env_number(cls, suffix: str, default: N, parse: Callable[[str], N]) -> N:
        raw = cls._env_value(suffix)
        if raw is None:
            return default
        try:
            return parse(raw.strip())
        except ValueError:
            return default

    @classmethod
    def _get_env_int(cls, suffix: str, default: int) -> int:
        return cls._get_env_number(suffix, default, int)

    @classmethod
    def _get_env_float(cls, suffix: str, default: float) -> float:
        return cls._get_env_number(suffix, default, float)

    @classmethod
    def _get_env_str(cls, suffix: str, default: str) -> str:
        raw = cls._env_value(suffix)
        return default if raw is None else raw.strip()

    @classmethod
    def from_env(cls: type[T]) -> T:
        return cls(enabled=cls._get_env_bool("ENABLED", True))

    def is_enabled(self) -> bool:
        return self.enabled

    def to_dict(self) -> dict[str, Any]:
        """Public fields as a plain dict, for status output and logs."""
        return {f.name: getattr(self, f.name) for f in fields(self) if not f.name.startswith("_")}


__all__ = [
    "BaseRepairConfig",
    "TRUE_VALUES",
]
