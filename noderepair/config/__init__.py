"""Configuration for node auto-repair."""

from noderepair.config.base_config import BaseRepairConfig
from noderepair.config.repair_config import (
    CONFIG_PATH_ENV,
    NodeAutoRepairConfig,
    load_config,
)

__all__ = [
    "BaseRepairConfig",
    "CONFIG_PATH_ENV",
    "NodeAutoRepairConfig",
    "load_config",
]
