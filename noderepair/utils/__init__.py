"""Shared utilities for node auto-repair."""

from noderepair.utils.async_utils import (
    CommandResult,
    fire_and_forget,
    pending_background_tasks,
    run_command,
)
from noderepair.utils.exceptions import (
    CommandTimeoutError,
    ConfigError,
    FeedAbortedError,
    FeedError,
    NodeNotFoundError,
    NodeReadError,
    NodeRepairError,
    RepairCommandError,
)

__all__ = [
    "CommandResult",
    "CommandTimeoutError",
    "ConfigError",
    "FeedAbortedError",
    "FeedError",
    "NodeNotFoundError",
    "NodeReadError",
    "NodeRepairError",
    "RepairCommandError",
    "fire_and_forget",
    "pending_background_tasks",
    "run_command",
]
