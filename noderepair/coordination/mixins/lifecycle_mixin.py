"""Start/stop lifecycle for long-running repair components.

A component moves through

    CREATED -> STARTING -> RUNNING -> STOPPING -> STOPPED
                    \\                    \\
                     +-> FAILED           +-> FAILED

and may be started again from STOPPED. A hook that raises leaves the
component in FAILED; `start()` and `stop()` report that as ``False``
instead of raising, so callers such as the entry point can exit cleanly.

Usage:
    class RepairController(LifecycleMixin):
        async def _on_start(self) -> None:
            await self._feed.start()

        async def _on_stop(self) -> None:
            await self._feed.stop()

    async with RepairController(name="repair_controller"):
        await shutdown.wait()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """Lifecycle states of a managed component."""

    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


# States from which start() may begin
_STARTABLE = frozenset({LifecycleState.CREATED, LifecycleState.STOPPED})
# States in which stop() has nothing to do
_INERT = frozenset({LifecycleState.CREATED, LifecycleState.STOPPED, LifecycleState.STOPPING})


class LifecycleMixin:
    """Adds ``start()``/``stop()`` state handling around two async hooks."""

    def __init__(self, name: str = "component") -> None:
        self._lifecycle_name = name
        self._lifecycle_state = LifecycleState.CREATED
        self._started_at: float | None = None
        self._stopped_at: float | None = None
        self._last_error: Exception | None = None
        self._error_count = 0

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self._lifecycle_state

    @property
    def is_running(self) -> bool:
        return self._lifecycle_state is LifecycleState.RUNNING

    @property
    def is_stopped(self) -> bool:
        return self._lifecycle_state in (LifecycleState.STOPPED, LifecycleState.FAILED)

    @property
    def uptime(self) -> float | None:
        """Seconds since the last start, frozen once stopped."""
        if self._started_at is None:
            return None
        return (self._stopped_at or time.time()) - self._started_at

    async def start(self) -> bool:
        """Run ``_on_start`` and enter RUNNING.

        Returns:
            True if running afterwards, False if the hook failed or the
            component cannot start from its current state
        """
        if self.is_running:
            return True
        if self._lifecycle_state not in _STARTABLE:
            logger.warning(
                f"[{self._lifecycle_name}] Cannot start while {self._lifecycle_state.value}"
            )
            return False

        self._started_at = time.time()
        self._stopped_at = None
        self._last_error = None
        if not await self._run_hook(LifecycleState.STARTING, self._on_start, "start"):
            return False

        self._lifecycle_state = LifecycleState.RUNNING
        logger.info(f"[{self._lifecycle_name}] Started")
        return True

    async def stop(self) -> bool:
        """Run ``_on_stop`` and enter STOPPED.

        Returns:
            False only if the hook failed
        """
        if self._lifecycle_state in _INERT:
            return True

        if not await self._run_hook(LifecycleState.STOPPING, self._on_stop, "stop"):
            return False

        self._lifecycle_state = LifecycleState.STOPPED
        self._stopped_at = time.time()
        logger.info(f"[{self._lifecycle_name}] Stopped after {self.uptime or 0.0:.1f}s")
        return True

    async def _run_hook(
        self,
        transitional: LifecycleState,
        hook: Callable[[], Awaitable[None]],
        action: str,
    ) -> bool:
        self._lifecycle_state = transitional
        try:
            await hook()
        except Exception as e:
            self._lifecycle_state = LifecycleState.FAILED
            self._last_error = e
            self._error_count += 1
            logger.error(f"[{self._lifecycle_name}] {action} failed: {e}", exc_info=True)
            return False
        return True

    async def _on_start(self) -> None:
        """Override to acquire resources."""

    async def _on_stop(self) -> None:
        """Override to release resources."""

    async def __aenter__(self) -> LifecycleMixin:
        await self.start()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> bool:
        await self.stop()
        return False

    def get_lifecycle_health(self) -> dict[str, Any]:
        return {
            "name": self._lifecycle_name,
            "state": self._lifecycle_state.value,
            "running": self.is_running,
            "uptime_seconds": self.uptime,
            "error_count": self._error_count,
            "last_error": str(self._last_error) if self._last_error else None,
        }


__all__ = [
    "LifecycleMixin",
    "LifecycleState",
]
