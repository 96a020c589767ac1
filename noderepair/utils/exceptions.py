"""Exception types for node auto-repair.

All package errors derive from `NodeRepairError` so callers embedding the
controller can catch them in one place. `FS_ERRORS` is the narrow tuple
used for file reads, so that programming errors (NameError,
AttributeError, etc.) still bubble up.

Usage:
    from noderepair.utils.exceptions import FS_ERRORS, NodeReadError

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FS_ERRORS as e:
        raise NodeReadError(f"Cannot read {path}: {e}") from e
"""

from __future__ import annotations

# =============================================================================
# Error Taxonomy
# =============================================================================


class NodeRepairError(Exception):
    """Base class for all node auto-repair errors."""


class ConfigError(NodeRepairError):
    """Raised when configuration is missing, malformed or out of range."""


class FeedError(NodeRepairError):
    """Raised (or emitted) when the health change feed fails."""


class FeedAbortedError(FeedError):
    """Emitted when the feed is stopped deliberately.

    Supervisors must not restart a feed that reports this error.
    """

    def __init__(self, message: str = "aborted"):
        super().__init__(message)


class NodeReadError(NodeRepairError):
    """Raised when a node cannot be read from its source."""


class NodeNotFoundError(NodeReadError):
    """Raised when a node name is unknown to the source."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Node not found: {name}")


class RepairCommandError(NodeRepairError):
    """Raised when an external repair command exits unsuccessfully."""

    def __init__(self, node_name: str, attempts: int, returncode: int, stderr: str = ""):
        self.node_name = node_name
        self.attempts = attempts
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Repair command for {node_name} (attempt {attempts}) exited with "
            f"code {returncode}: {stderr[:200]}"
        )


class CommandTimeoutError(NodeRepairError):
    """Raised when an external command is killed for running too long."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command {command} timed out after {timeout}s")


# =============================================================================
# Exception Type Tuples
# =============================================================================

# File system exceptions for config and node list reads
FS_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    PermissionError,
    FileNotFoundError,
)


__all__ = [
    "CommandTimeoutError",
    "ConfigError",
    "FeedAbortedError",
    "FeedError",
    "FS_ERRORS",
    "NodeNotFoundError",
    "NodeReadError",
    "NodeRepairError",
    "RepairCommandError",
]
