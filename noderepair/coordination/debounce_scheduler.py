"""Cancellable delayed actions for the repair controller.

The controller never relies on garbage collection of timer objects: every
delayed action is a `ScheduledAction` handle stored in the node's record,
and cancellation is an explicit operation on that handle.

Usage:
    scheduler = DebounceScheduler()

    wait = DebounceScheduler.compute_wait(
        last_transition_time=snapshot.last_transition_time,
        unhealthy_time=300.0,
    )
    record.pending_timer = scheduler.schedule(
        wait, self._verify_and_repair, record, name=f"verify-{record.name}"
    )

    # Node recovered before the timer fired
    record.cancel_timer()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from noderepair.utils.async_utils import fire_and_forget

logger = logging.getLogger(__name__)


class ScheduledAction:
    """Handle for a callback scheduled on the event loop.

    Coroutine functions are launched as tracked background tasks when the
    timer fires; plain callables run inline on the loop.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[..., Any],
        args: tuple[Any, ...] = (),
        name: str = "action",
        on_done: Callable[[ScheduledAction], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.name = name
        self.delay = max(0.0, delay)
        self._callback = callback
        self._args = args
        self._on_done = on_done
        self._loop = loop or asyncio.get_running_loop()
        self._cancelled = False
        self._fired = False
        self._handle = self._loop.call_later(self.delay, self._fire)

    @property
    def when(self) -> float:
        """Loop time at which the action fires."""
        return self._handle.when()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def active(self) -> bool:
        """True while the action is still waiting to fire."""
        return not (self._cancelled or self._fired)

    def cancel(self) -> bool:
        """Cancel the action. Returns False if it already fired or was cancelled."""
        if not self.active:
            return False
        self._cancelled = True
        self._handle.cancel()
        if self._on_done:
            self._on_done(self)
        return True

    def _fire(self) -> None:
        self._fired = True
        if self._on_done:
            self._on_done(self)
        try:
            if inspect.iscoroutinefunction(self._callback):
                fire_and_forget(self._callback(*self._args), name=self.name)
            else:
                self._callback(*self._args)
        except Exception as e:
            logger.error(f"[DebounceScheduler] Action {self.name} failed: {e}", exc_info=True)

    def __repr__(self) -> str:
        status = "cancelled" if self._cancelled else "fired" if self._fired else "pending"
        return f"ScheduledAction({self.name!r}, delay={self.delay:.3f}, {status})"


class DebounceScheduler:
    """Creates and tracks scheduled actions so they can be cancelled in bulk."""

    def __init__(self) -> None:
        self._active: set[ScheduledAction] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    def schedule(
        self,
        delay: float,
        callback: Callable[..., Any],
        *args: Any,
        name: str = "action",
    ) -> ScheduledAction:
        """Run ``callback(*args)`` after ``delay`` seconds."""
        action = ScheduledAction(
            delay,
            callback,
            args,
            name=name,
            on_done=self._active.discard,
        )
        self._active.add(action)
        logger.debug(f"[DebounceScheduler] Scheduled {name} in {action.delay:.1f}s")
        return action

    def cancel_all(self) -> int:
        """Cancel every pending action and return how many were cancelled."""
        cancelled = 0
        for action in list(self._active):
            if action.cancel():
                cancelled += 1
        self._active.clear()
        return cancelled

    @staticmethod
    def compute_wait(
        last_transition_time: datetime | None,
        unhealthy_time: float,
        now: datetime | None = None,
    ) -> float:
        """Remaining debounce time for a node that went unhealthy at ``last_transition_time``.

        Debouncing by transition time rather than observation time avoids
        a double delay for nodes that were already unhealthy when the feed
        (re)started.
        """
        if last_transition_time is None:
            return max(unhealthy_time, 0.0)
        now = now or datetime.now(timezone.utc)
        down_time = max((now - last_transition_time).total_seconds(), 0.0)
        return max(unhealthy_time - down_time, 0.0)


__all__ = [
    "DebounceScheduler",
    "ScheduledAction",
]
