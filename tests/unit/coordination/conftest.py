"""Shared pytest fixtures for coordination tests.

Provides node factories, a recording AutoRepair, a manually driven feed
and a polling helper for timer-driven assertions.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from noderepair.config.repair_config import NodeAutoRepairConfig
from noderepair.coordination.auto_repair import AutoRepair
from noderepair.coordination.health_feed import FeedEventType, NodeFeed
from noderepair.coordination.node_health import NodeCondition, NodeObject
from noderepair.coordination.node_source import InMemoryNodeSource
from noderepair.utils.exceptions import FeedAbortedError

# =============================================================================
# NODE FACTORIES
# =============================================================================


def make_node(
    name: str,
    ready: bool | None = True,
    transitioned_ago: float = 0.0,
) -> NodeObject:
    """Create a node whose Ready condition changed ``transitioned_ago`` seconds ago.

    ``ready=None`` creates a node without a Ready condition.
    """
    conditions = [NodeCondition(type="MemoryPressure", status="False")]
    if ready is not None:
        conditions.append(
            NodeCondition(
                type="Ready",
                status="True" if ready else "False",
                last_transition_time=datetime.now(timezone.utc)
                - timedelta(seconds=transitioned_ago),
            )
        )
    return NodeObject(name=name, conditions=conditions)


@pytest.fixture
def node_factory() -> Callable[..., NodeObject]:
    return make_node


@pytest.fixture
def source() -> InMemoryNodeSource:
    return InMemoryNodeSource()


@pytest.fixture
def fast_config() -> NodeAutoRepairConfig:
    """Config with short timings for timer-driven tests."""
    return NodeAutoRepairConfig(
        concurrency=1,
        max_attempts=3,
        unhealthy_time_seconds=0.0,
        repair_timeout_seconds=0.1,
        feed_restart_delay_seconds=0.05,
        resync_interval_seconds=60.0,
    )


# =============================================================================
# RECORDING AUTO REPAIR
# =============================================================================


class RecordingAutoRepair(AutoRepair):
    """AutoRepair that records every call in order.

    ``repair_hook`` (sync or async) runs inside ``repair`` and may raise or
    block to simulate slow or failing repairs.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []
        self.repair_hook: Callable[[NodeObject, int], Any] | None = None
        self.active_repairs = 0
        self.max_active_repairs = 0

    def calls_for(self, kind: str) -> list[tuple[str, int]]:
        return [(name, attempts) for k, name, attempts in self.calls if k == kind]

    async def repair(self, node: NodeObject, attempts: int) -> None:
        self.calls.append(("repair", node.name, attempts))
        self.active_repairs += 1
        self.max_active_repairs = max(self.max_active_repairs, self.active_repairs)
        try:
            if self.repair_hook is not None:
                result = self.repair_hook(node, attempts)
                if asyncio.iscoroutine(result):
                    await result
        finally:
            self.active_repairs -= 1

    def repair_success(self, node: NodeObject, attempts: int) -> None:
        self.calls.append(("success", node.name, attempts))

    def repair_attempt_failed(self, node: NodeObject, attempts: int) -> None:
        self.calls.append(("attempt_failed", node.name, attempts))

    def repair_attempts_failed(self, node: NodeObject, attempts: int) -> None:
        self.calls.append(("attempts_failed", node.name, attempts))


@pytest.fixture
def auto_repair() -> RecordingAutoRepair:
    return RecordingAutoRepair()


# =============================================================================
# MANUAL FEED
# =============================================================================


class ManualNodeFeed(NodeFeed):
    """Feed driven directly by the test."""

    def __init__(self) -> None:
        super().__init__(name="manual_feed")
        self._running = False
        self.start_calls = 0
        self.fail_start: Exception | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self.start_calls += 1
        if self.fail_start is not None:
            raise self.fail_start
        self._running = True

    async def stop(self) -> None:
        self._running = False
        self._emit(FeedEventType.ERROR, FeedAbortedError())

    def push(self, node: NodeObject, event_type: FeedEventType = FeedEventType.UPDATE) -> None:
        self._emit(event_type, node)

    def fail(self, error: Exception) -> None:
        self._running = False
        self._emit(FeedEventType.ERROR, error)


@pytest.fixture
def manual_feed() -> ManualNodeFeed:
    return ManualNodeFeed()


# =============================================================================
# ASYNC HELPERS
# =============================================================================


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.005)
    return predicate()


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    return wait_until
