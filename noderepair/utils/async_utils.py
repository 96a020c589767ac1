"""Async helpers: tracked background tasks and external repair commands.

Timer callbacks launch their coroutine work through `fire_and_forget()`,
which keeps a strong reference to each task until it finishes and logs
any exception it raises.

`run_command()` runs a repair command without blocking the event loop
and kills it when the timeout expires.

Usage:
    from noderepair.utils.async_utils import fire_and_forget, run_command

    fire_and_forget(self._verify_and_repair(record), name="verify:node-a")

    result = await run_command(["reboot-node", "node-a"], timeout=300.0)
    if not result.success:
        ...
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Coroutine, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from noderepair.utils.exceptions import CommandTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Strong references so running tasks are not garbage collected
_background_tasks: set[asyncio.Task[Any]] = set()


# =============================================================================
# Background Tasks
# =============================================================================


def fire_and_forget(coro: Coroutine[Any, Any, T], name: str | None = None) -> asyncio.Task[T]:
    """Run ``coro`` as a tracked background task.

    Args:
        coro: Coroutine to run
        name: Task name used in log messages

    Returns:
        The created task
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_background_done)
    return task


def _on_background_done(task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.debug(f"Background task {task.get_name()} cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            f"Background task {task.get_name()} raised: {exc}",
            exc_info=exc,
        )


def pending_background_tasks() -> int:
    """Number of background tasks that have not finished yet."""
    return len(_background_tasks)


# =============================================================================
# Repair Commands
# =============================================================================


@dataclass
class CommandResult:
    """Outcome of one external command run."""

    returncode: int
    stdout: str
    stderr: str
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0


async def run_command(
    argv: Sequence[str],
    *,
    timeout: float = 300.0,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run ``argv`` and capture its output.

    Raises:
        CommandTimeoutError: If the command runs longer than ``timeout``;
            the process is killed first
        OSError: If the executable cannot be started
    """
    start = time.monotonic()
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise CommandTimeoutError(argv[0], timeout) from None

    return CommandResult(
        returncode=proc.returncode or 0,
        stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
        duration=time.monotonic() - start,
    )


__all__ = [
    "CommandResult",
    "fire_and_forget",
    "pending_background_tasks",
    "run_command",
]
