"""Concurrency-bounded repair queue.

Holds repair tasks for all nodes and runs at most ``concurrency`` of them at
once. The queue starts paused; the controller starts it once the health
feed is active so no repair runs before the system is fully initialised.

The queue never retries. A failed task resolves its future with the
exception and the next task is dispatched; retry pacing belongs to the
controller's timeout timers.

Usage:
    queue = RepairQueue(concurrency=2)
    future = queue.add(lambda: auto_repair.repair(node, 1), name="repair-node-a")
    queue.start()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from noderepair.metrics import REPAIR_QUEUE_PENDING, REPAIR_QUEUE_RUNNING

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


@dataclass
class _QueuedTask:
    name: str
    factory: TaskFactory
    future: asyncio.Future[Any]
    enqueued_at: float = field(default_factory=time.time)


class RepairQueue:
    """Bounded-parallelism work queue for repair tasks."""

    def __init__(self, concurrency: int = 1, name: str = "repair_queue") -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1 (got {concurrency})")
        self.name = name
        self.concurrency = concurrency

        self._pending: deque[_QueuedTask] = deque()
        self._running: set[asyncio.Task[None]] = set()
        self._paused = True
        self._idle: asyncio.Event | None = None

        # Statistics
        self._total_added = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_cleared = 0
        self._max_observed_concurrency = 0

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def max_observed_concurrency(self) -> int:
        return self._max_observed_concurrency

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def add(self, factory: TaskFactory, name: str = "repair") -> asyncio.Future[Any]:
        """Queue a task; returns a future for its outcome.

        The factory is only called once a concurrency slot is free.
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending.append(_QueuedTask(name=name, factory=factory, future=future))
        self._total_added += 1
        self._idle_event().clear()
        self._update_gauges()
        self._dispatch()
        return future

    def start(self) -> None:
        """Unpause the queue and dispatch waiting tasks."""
        if not self._paused:
            return
        self._paused = False
        logger.info(
            f"[RepairQueue] {self.name} started (concurrency={self.concurrency}, "
            f"pending={len(self._pending)})"
        )
        self._dispatch()

    def pause(self) -> None:
        """Stop dispatching new tasks. Running tasks are unaffected."""
        self._paused = True

    def clear(self) -> int:
        """Drop every task that has not started yet.

        Returns:
            Number of tasks dropped
        """
        dropped = 0
        while self._pending:
            item = self._pending.popleft()
            item.future.cancel()
            dropped += 1
        self._total_cleared += dropped
        self._update_gauges()
        self._maybe_idle()
        if dropped:
            logger.info(f"[RepairQueue] {self.name} cleared {dropped} queued tasks")
        return dropped

    async def join(self) -> None:
        """Wait until nothing is queued or running."""
        self._maybe_idle()
        await self._idle_event().wait()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _dispatch(self) -> None:
        while not self._paused and self._pending and len(self._running) < self.concurrency:
            item = self._pending.popleft()
            if item.future.cancelled():
                continue
            task = asyncio.create_task(self._run(item), name=f"{self.name}:{item.name}")
            self._running.add(task)
            task.add_done_callback(self._on_task_done)
            self._max_observed_concurrency = max(
                self._max_observed_concurrency, len(self._running)
            )
        self._update_gauges()

    async def _run(self, item: _QueuedTask) -> None:
        try:
            result = await item.factory()
        except asyncio.CancelledError:
            item.future.cancel()
            raise
        except Exception as e:
            self._total_failed += 1
            logger.warning(f"[RepairQueue] Task {item.name} failed: {e}")
            if not item.future.done():
                item.future.set_exception(e)
            return

        self._total_completed += 1
        if not item.future.done():
            item.future.set_result(result)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        self._dispatch()
        self._maybe_idle()

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
        return self._idle

    def _maybe_idle(self) -> None:
        if not self._pending and not self._running:
            self._idle_event().set()

    def _update_gauges(self) -> None:
        REPAIR_QUEUE_PENDING.set(len(self._pending))
        REPAIR_QUEUE_RUNNING.set(len(self._running))

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "concurrency": self.concurrency,
            "paused": self._paused,
            "pending": len(self._pending),
            "running": len(self._running),
            "total_added": self._total_added,
            "total_completed": self._total_completed,
            "total_failed": self._total_failed,
            "total_cleared": self._total_cleared,
            "max_observed_concurrency": self._max_observed_concurrency,
        }


__all__ = [
    "RepairQueue",
    "TaskFactory",
]
