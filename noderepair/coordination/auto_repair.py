"""Repair action callbacks supplied by the caller.

`AutoRepair.repair` performs one attempt; the three notification methods
report outcomes and default to logging. `CommandAutoRepair` runs an
external command per attempt, e.g. a reboot script or a cloud CLI call.
"""

from __future__ import annotations

import logging
import shlex
from abc import ABC, abstractmethod

from noderepair.coordination.node_health import NodeObject
from noderepair.utils.async_utils import run_command
from noderepair.utils.exceptions import RepairCommandError

logger = logging.getLogger(__name__)


class AutoRepair(ABC):
    """Caller-implemented repair action."""

    @abstractmethod
    async def repair(self, node: NodeObject, attempts: int) -> None:
        """Make one repair attempt.

        Args:
            node: The node to repair
            attempts: 1-based number of this attempt
        """
        ...

    def repair_success(self, node: NodeObject, attempts: int) -> None:
        """Called when a node is healthy again after ``attempts`` repair attempts."""
        logger.info(f"[AutoRepair] {node.name} healthy after {attempts} repair attempt(s)")

    def repair_attempt_failed(self, node: NodeObject, attempts: int) -> None:
        """Called when attempt ``attempts`` did not make the node healthy in time."""
        logger.warning(f"[AutoRepair] Repair attempt {attempts} for {node.name} failed")

    def repair_attempts_failed(self, node: NodeObject, attempts: int) -> None:
        """Called once when all ``attempts`` repair attempts have failed."""
        logger.error(f"[AutoRepair] Giving up on {node.name} after {attempts} attempt(s)")


class LoggingAutoRepair(AutoRepair):
    """Dry-run repair action that only logs what it would do."""

    async def repair(self, node: NodeObject, attempts: int) -> None:
        logger.info(f"[LoggingAutoRepair] Would repair {node.name} (attempt {attempts})")


class CommandAutoRepair(AutoRepair):
    """Runs an external command for each repair attempt.

    ``{node}`` and ``{attempts}`` in the command template are substituted per
    argument after shell-style splitting, so node names are never
    interpreted by a shell.

    Example:
        CommandAutoRepair("ssh {node} sudo systemctl restart kubelet")
    """

    def __init__(self, command: str, timeout: float = 300.0) -> None:
        self.argv_template = shlex.split(command)
        if not self.argv_template:
            raise ValueError("repair command must not be empty")
        self.timeout = timeout

    def build_command(self, node: NodeObject, attempts: int) -> list[str]:
        return [
            arg.replace("{node}", node.name).replace("{attempts}", str(attempts))
            for arg in self.argv_template
        ]

    async def repair(self, node: NodeObject, attempts: int) -> None:
        cmd = self.build_command(node, attempts)
        logger.info(f"[CommandAutoRepair] Running {' '.join(cmd)} (attempt {attempts})")
        result = await run_command(cmd, timeout=self.timeout)
        if not result.success:
            raise RepairCommandError(node.name, attempts, result.returncode, result.stderr)


__all__ = [
    "AutoRepair",
    "CommandAutoRepair",
    "LoggingAutoRepair",
]
