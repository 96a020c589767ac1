"""Automatically detect unhealthy cluster nodes and repair them.

Usage:
    from noderepair import NodeAutoRepair, NodeAutoRepairConfig, YamlNodeSource

    controller = NodeAutoRepair(
        auto_repair=MyAutoRepair(),
        source=YamlNodeSource("nodes.yaml"),
        config=NodeAutoRepairConfig(max_attempts=3),
    )
    await controller.start()
"""

from noderepair.config import NodeAutoRepairConfig, load_config
from noderepair.coordination import (
    AutoRepair,
    CommandAutoRepair,
    InMemoryNodeSource,
    LoggingAutoRepair,
    NodeAutoRepair,
    NodeCondition,
    NodeObject,
    NodeSource,
    YamlNodeSource,
)

__version__ = "1.1.1"

__all__ = [
    "AutoRepair",
    "CommandAutoRepair",
    "InMemoryNodeSource",
    "LoggingAutoRepair",
    "NodeAutoRepair",
    "NodeAutoRepairConfig",
    "NodeCondition",
    "NodeObject",
    "NodeSource",
    "YamlNodeSource",
    "load_config",
]
