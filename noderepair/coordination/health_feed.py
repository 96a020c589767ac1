"""Health change feed: node add/update/delete notifications.

The controller consumes a `NodeFeed` and registers handlers per event type.
`PollingNodeFeed` is an informer-style list-and-diff over a `NodeSource`;
`FeedSupervisor` restarts a feed after a fixed delay whenever it reports
an error, except for the `FeedAbortedError` it emits on deliberate stop.

Usage:
    feed = PollingNodeFeed(source, resync_interval=30.0)
    feed.on(FeedEventType.ADD, handle_node)
    feed.on(FeedEventType.UPDATE, handle_node)

    supervisor = FeedSupervisor(feed, restart_delay=5.0)
    await feed.start()
    ...
    supervisor.stop()
    await feed.stop()
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any

from noderepair.coordination.debounce_scheduler import DebounceScheduler, ScheduledAction
from noderepair.coordination.node_health import NodeObject
from noderepair.coordination.node_source import NodeSource
from noderepair.metrics import FEED_ERRORS, FEED_RESTARTS
from noderepair.utils.exceptions import FeedAbortedError

logger = logging.getLogger(__name__)

DEFAULT_RESTART_DELAY_SECONDS = 5.0


class FeedEventType(Enum):
    """Events emitted by a node feed."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    ERROR = "error"


FeedHandler = Callable[[Any], None]


class NodeFeed(ABC):
    """Abstract push feed of node changes.

    Node events carry a `NodeObject`; error events carry the exception.
    Handlers run synchronously on the event loop; a failing handler is
    logged and never affects the feed or other handlers.
    """

    def __init__(self, name: str = "node_feed") -> None:
        self.name = name
        self._handlers: dict[FeedEventType, list[FeedHandler]] = {
            event_type: [] for event_type in FeedEventType
        }

    def on(self, event_type: FeedEventType, handler: FeedHandler) -> None:
        self._handlers[event_type].append(handler)

    def _emit(self, event_type: FeedEventType, payload: Any) -> None:
        for handler in self._handlers[event_type]:
            try:
                handler(payload)
            except Exception as e:
                logger.error(
                    f"[{self.name}] {event_type.value} handler failed: {e}",
                    exc_info=True,
                )

    @property
    @abstractmethod
    def is_running(self) -> bool:
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the feed; returns once the first snapshot has been delivered."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the feed and emit `FeedAbortedError`."""
        ...


class PollingNodeFeed(NodeFeed):
    """Lists nodes periodically and emits the differences.

    Every listed node produces an event on every poll: ``add`` the first
    time its name is seen, ``update`` afterwards (resync). Names that
    disappear produce ``delete``. A failing list emits ``error`` and ends the
    poll loop; the supervisor is responsible for restarting it.
    """

    def __init__(
        self,
        source: NodeSource,
        resync_interval: float = 30.0,
        name: str = "node_feed",
    ) -> None:
        super().__init__(name=name)
        self._source = source
        self._resync_interval = resync_interval
        self._known: dict[str, NodeObject] = {}
        self._running = False
        self._poll_task: asyncio.Task[None] | None = None
        self._poll_count = 0
        self._last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        await self._list_and_dispatch()
        self._running = True
        self._last_error = None
        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"{self.name}-poll")
        logger.info(f"[{self.name}] Started ({len(self._known)} nodes)")

    async def stop(self) -> None:
        self._running = False
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"[{self.name}] Stopped")
        self._emit(FeedEventType.ERROR, FeedAbortedError())

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._resync_interval)
            if not self._running:
                break
            try:
                await self._list_and_dispatch()
            except Exception as e:
                self._running = False
                self._last_error = str(e)
                logger.warning(f"[{self.name}] List failed: {e}")
                self._emit(FeedEventType.ERROR, e)
                return

    async def _list_and_dispatch(self) -> None:
        nodes = await self._source.list_nodes()
        self._poll_count += 1

        current: dict[str, NodeObject] = {}
        for node in nodes:
            current[node.name] = node
            event_type = FeedEventType.UPDATE if node.name in self._known else FeedEventType.ADD
            self._emit(event_type, node)

        for name, node in self._known.items():
            if name not in current:
                self._emit(FeedEventType.DELETE, node)

        self._known = current

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "running": self._running,
            "known_nodes": len(self._known),
            "poll_count": self._poll_count,
            "resync_interval": self._resync_interval,
            "last_error": self._last_error,
        }


class FeedSupervisor:
    """Restarts a feed after a fixed delay when it reports an error."""

    def __init__(
        self,
        feed: NodeFeed,
        restart_delay: float = DEFAULT_RESTART_DELAY_SECONDS,
        scheduler: DebounceScheduler | None = None,
    ) -> None:
        self.feed = feed
        self.restart_delay = restart_delay
        self._scheduler = scheduler or DebounceScheduler()
        self._restart_timer: ScheduledAction | None = None
        self._stopped = False
        self._error_count = 0
        self._restart_count = 0
        feed.on(FeedEventType.ERROR, self._on_error)

    @property
    def restart_pending(self) -> bool:
        return self._restart_timer is not None and self._restart_timer.active

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def error_count(self) -> int:
        return self._error_count

    def start(self) -> None:
        self._stopped = False

    def stop(self) -> None:
        """Stop supervising; cancels a pending restart."""
        self._stopped = True
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    def _on_error(self, error: BaseException) -> None:
        if isinstance(error, FeedAbortedError):
            logger.debug(f"[FeedSupervisor] {self.feed.name} aborted, not restarting")
            return
        if self._stopped:
            return

        self._error_count += 1
        FEED_ERRORS.inc()
        logger.warning(
            f"[FeedSupervisor] {self.feed.name} error: {error}; "
            f"restarting in {self.restart_delay}s"
        )
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if self.restart_pending:
            return
        self._restart_timer = self._scheduler.schedule(
            self.restart_delay,
            self._restart,
            name=f"{self.feed.name}-restart",
        )

    async def _restart(self) -> None:
        self._restart_timer = None
        if self._stopped:
            return
        try:
            await self.feed.start()
        except Exception as e:
            self._error_count += 1
            FEED_ERRORS.inc()
            logger.warning(
                f"[FeedSupervisor] {self.feed.name} restart failed: {e}; "
                f"retrying in {self.restart_delay}s"
            )
            self._schedule_restart()
            return

        self._restart_count += 1
        FEED_RESTARTS.inc()
        logger.info(f"[FeedSupervisor] {self.feed.name} restarted (restart #{self._restart_count})")

    def get_status(self) -> dict[str, Any]:
        return {
            "feed": self.feed.name,
            "feed_running": self.feed.is_running,
            "restart_delay": self.restart_delay,
            "restart_pending": self.restart_pending,
            "restart_count": self._restart_count,
            "error_count": self._error_count,
        }


__all__ = [
    "DEFAULT_RESTART_DELAY_SECONDS",
    "FeedEventType",
    "FeedSupervisor",
    "NodeFeed",
    "PollingNodeFeed",
]
