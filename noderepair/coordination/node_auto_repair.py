"""Node Auto Repair - watches node health and drives bounded repair attempts.

Each node that turns unhealthy gets a broken-node record and walks through
an attempt sequence:

    PENDING (debounce) -> VERIFYING (live read) -> AWAITING_OUTCOME (timeout armed)
        -> VERIFYING again on timeout, until healthy or GIVEN_UP

1. A feed event showing the node unhealthy creates the record and arms a
   timer for the rest of the ``unhealthy_time`` window, measured from the
   Ready condition's last transition.
2. When the timer fires the node is re-read. If it is healthy the record is
   removed and ``repair_success`` is reported when attempts were made.
   Otherwise a repair task is queued and a ``repair_timeout`` timer is armed
   right away; the repair itself is never awaited for pacing.
3. When the timeout fires ``repair_attempt_failed`` is reported. Once
   ``max_attempts`` is reached ``repair_attempts_failed`` is reported and
   the record stays in GIVEN_UP until the node is next seen healthy;
   otherwise the node is verified again immediately.

Usage:
    from noderepair.coordination.node_auto_repair import NodeAutoRepair

    controller = NodeAutoRepair(
        auto_repair=MyAutoRepair(),
        source=YamlNodeSource("/var/run/nodes.yaml"),
        config=NodeAutoRepairConfig(concurrency=2, max_attempts=3),
    )
    await controller.start()
    ...
    await controller.stop()
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from noderepair.config.repair_config import NodeAutoRepairConfig
from noderepair.coordination.auto_repair import AutoRepair
from noderepair.coordination.debounce_scheduler import DebounceScheduler
from noderepair.coordination.health_feed import (
    FeedEventType,
    FeedSupervisor,
    NodeFeed,
    PollingNodeFeed,
)
from noderepair.coordination.mixins.lifecycle_mixin import LifecycleMixin
from noderepair.coordination.node_health import (
    NodeHealthSnapshot,
    NodeObject,
    compute_node_health,
)
from noderepair.coordination.node_source import NodeSource
from noderepair.coordination.node_state_store import (
    BrokenNodeRecord,
    NodeStateStore,
    RepairState,
    RepairTaskState,
)
from noderepair.coordination.repair_queue import RepairQueue
from noderepair.metrics import (
    NODE_READ_ERRORS,
    REPAIR_ATTEMPTS,
    REPAIR_DURATION,
    REPAIR_ERRORS,
    record_outcome,
)

logger = logging.getLogger(__name__)

# Consecutive failed live reads after which each failure is logged as an error
READ_FAILURE_ALERT_THRESHOLD = 3


class NodeAutoRepair(LifecycleMixin):
    """Watches node health and repairs unhealthy nodes with bounded retries."""

    def __init__(
        self,
        auto_repair: AutoRepair,
        source: NodeSource,
        config: NodeAutoRepairConfig | None = None,
        feed: NodeFeed | None = None,
        scheduler: DebounceScheduler | None = None,
        queue: RepairQueue | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            auto_repair: Repair action and outcome callbacks
            source: Node source used for live reads (and the default feed)
            config: Options; defaults to NodeAutoRepairConfig()
            feed: Health change feed; defaults to a PollingNodeFeed over source
            scheduler: Timer factory; defaults to a new DebounceScheduler
            queue: Repair queue; defaults to RepairQueue(config.concurrency)
        """
        super().__init__(name="node_auto_repair")
        self._config = (config or NodeAutoRepairConfig()).validate()
        self._auto_repair = auto_repair
        self._source = source

        self._scheduler = scheduler or DebounceScheduler()
        self._queue = queue or RepairQueue(concurrency=self._config.concurrency)
        self._store = NodeStateStore()
        self._feed = feed or PollingNodeFeed(
            source,
            resync_interval=self._config.resync_interval_seconds,
        )
        self._supervisor = FeedSupervisor(
            self._feed,
            restart_delay=self._config.feed_restart_delay_seconds,
        )

        self._feed.on(FeedEventType.ADD, self._handle_node_event)
        self._feed.on(FeedEventType.UPDATE, self._handle_node_event)
        self._feed.on(FeedEventType.DELETE, self._handle_node_deleted)

        # Counters
        self._total_repairs = 0
        self._total_recoveries = 0
        self._total_given_up = 0

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> NodeAutoRepairConfig:
        return self._config

    @property
    def store(self) -> NodeStateStore:
        return self._store

    @property
    def queue(self) -> RepairQueue:
        return self._queue

    @property
    def feed(self) -> NodeFeed:
        return self._feed

    @property
    def supervisor(self) -> FeedSupervisor:
        return self._supervisor

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _on_start(self) -> None:
        if not self._config.is_enabled():
            logger.info("[NodeAutoRepair] Disabled by config, not watching nodes")
            return
        self._supervisor.start()
        await self._feed.start()
        self._queue.start()
        logger.info(
            f"[NodeAutoRepair] Watching nodes (concurrency={self._config.concurrency}, "
            f"max_attempts={self._config.max_attempts}, "
            f"unhealthy_time={self._config.unhealthy_time_seconds}s, "
            f"repair_timeout={self._config.repair_timeout_seconds}s)"
        )

    async def _on_stop(self) -> None:
        self._queue.pause()
        dropped = self._queue.clear()
        self._supervisor.stop()
        await self._feed.stop()

        records = self._store.clear()
        for record in records:
            record.cancel_timer()
            if record.task_state is RepairTaskState.QUEUED:
                record.task_state = RepairTaskState.SKIPPED
        logger.info(
            f"[NodeAutoRepair] Stopped tracking {len(records)} nodes, "
            f"dropped {dropped} queued repairs"
        )

    # -------------------------------------------------------------------------
    # Feed Handlers
    # -------------------------------------------------------------------------

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _handle_node_event(self, node: NodeObject) -> None:
        """Handle an add/update feed event."""
        snapshot = compute_node_health(node)
        record = self._store.get(node.name)

        if snapshot.is_healthy:
            if record is not None:
                self._handle_healthy_node(node)
            return

        if record is not None:
            # An attempt sequence already owns this node
            record.node = node
            return

        self._track_broken_node(node, snapshot)

    def _handle_node_deleted(self, node: NodeObject) -> None:
        record = self._store.remove(node.name)
        if record is None:
            return
        record.cancel_timer()
        logger.info(f"[NodeAutoRepair] {node.name} removed from cluster, dropping repair state")

    def _track_broken_node(self, node: NodeObject, snapshot: NodeHealthSnapshot) -> None:
        wait = DebounceScheduler.compute_wait(
            snapshot.last_transition_time,
            self._config.unhealthy_time_seconds,
            now=self._now(),
        )
        record = BrokenNodeRecord(name=node.name, node=node)
        self._store.upsert(node.name, record)

        if not snapshot.has_ready_condition:
            logger.warning(
                f"[NodeAutoRepair] {node.name} has no Ready condition, treating as unhealthy"
            )
        logger.info(f"[NodeAutoRepair] {node.name} is unhealthy, first check in {wait:.1f}s")
        self._arm_timer(record, wait, self._verify_and_repair, f"verify:{node.name}")

    def _handle_healthy_node(self, node: NodeObject) -> None:
        record = self._store.remove(node.name)
        if record is None:
            return

        record.cancel_timer()
        record.state = RepairState.HEALTHY
        if record.task_state is RepairTaskState.QUEUED:
            record.task_state = RepairTaskState.SKIPPED

        if record.attempts > 0:
            self._total_recoveries += 1
            record_outcome("success")
            logger.info(
                f"[NodeAutoRepair] {node.name} is healthy after {record.attempts} attempt(s)"
            )
            self._notify("repair_success", node, record.attempts)
        else:
            logger.info(f"[NodeAutoRepair] {node.name} recovered without repair")

    # -------------------------------------------------------------------------
    # Attempt Sequence
    # -------------------------------------------------------------------------

    def _arm_timer(
        self,
        record: BrokenNodeRecord,
        delay: float,
        callback: Any,
        name: str,
    ) -> None:
        record.cancel_timer()
        record.pending_timer = self._scheduler.schedule(delay, callback, record, name=name)

    async def _verify_and_repair(self, record: BrokenNodeRecord) -> None:
        """Re-read the node and queue a repair if it is still unhealthy."""
        if not self._store.is_current(record):
            logger.debug(f"[NodeAutoRepair] Skipping verification of stale record {record.name}")
            return

        record.pending_timer = None
        record.state = RepairState.VERIFYING

        refreshed: NodeObject | None
        try:
            refreshed = await self._source.read_node(record.name)
        except Exception as e:
            # Read failures count as an unsuccessful cycle, not a crash
            refreshed = None
            self._record_read_failure(record, e)

        if not self._store.is_current(record):
            logger.debug(f"[NodeAutoRepair] {record.name} changed during verification")
            return

        if refreshed is not None:
            record.read_failures = 0
            record.node = refreshed
            if compute_node_health(refreshed).is_healthy:
                self._handle_healthy_node(refreshed)
                return
            self._enqueue_repair(record)

        record.state = RepairState.AWAITING_OUTCOME
        self._arm_timer(
            record,
            self._config.repair_timeout_seconds,
            self._handle_still_unhealthy,
            f"timeout:{record.name}",
        )

    def _record_read_failure(self, record: BrokenNodeRecord, error: Exception) -> None:
        """Count a failed live read.

        Repeated failures hold the sequence at its current attempt count, so
        from READ_FAILURE_ALERT_THRESHOLD on they are logged as errors.
        """
        record.read_failures += 1
        NODE_READ_ERRORS.inc()
        if record.read_failures >= READ_FAILURE_ALERT_THRESHOLD:
            logger.error(
                f"[NodeAutoRepair] {record.name} could not be read {record.read_failures} "
                f"times in a row, no repair dispatched (attempts={record.attempts}): {error}"
            )
        else:
            logger.warning(f"[NodeAutoRepair] Could not read {record.name} before repair: {error}")

    def _enqueue_repair(self, record: BrokenNodeRecord) -> None:
        if record.task_state is RepairTaskState.QUEUED:
            logger.info(f"[NodeAutoRepair] Repair for {record.name} is still queued")
            return
        record.task_state = RepairTaskState.QUEUED
        self._queue.add(lambda: self._run_repair(record), name=f"repair:{record.name}")

    async def _run_repair(self, record: BrokenNodeRecord) -> None:
        if not self._store.is_current(record) or record.state is RepairState.GIVEN_UP:
            record.task_state = RepairTaskState.SKIPPED
            logger.debug(f"[NodeAutoRepair] Skipping queued repair for {record.name}")
            return

        record.attempts += 1
        attempts = record.attempts
        record.task_state = RepairTaskState.REPAIRING
        record.last_attempt_at = time.time()
        self._total_repairs += 1
        REPAIR_ATTEMPTS.inc()
        logger.info(
            f"[NodeAutoRepair] Repairing {record.name} "
            f"(attempt {attempts}/{self._config.max_attempts})"
        )

        start = time.monotonic()
        try:
            await self._auto_repair.repair(record.node, attempts)
        except Exception as e:
            REPAIR_ERRORS.inc()
            logger.warning(f"[NodeAutoRepair] Repair attempt {attempts} for {record.name} raised: {e}")
            outcome = RepairTaskState.FAILED
        else:
            outcome = RepairTaskState.COMPLETED
        finally:
            REPAIR_DURATION.observe(time.monotonic() - start)

        # A newer attempt may already be queued or running
        if record.task_state is RepairTaskState.REPAIRING and record.attempts == attempts:
            record.task_state = outcome

    def _handle_still_unhealthy(self, record: BrokenNodeRecord) -> None:
        """Repair timeout fired without the node becoming healthy."""
        if not self._store.is_current(record):
            return

        record.pending_timer = None
        record.state = RepairState.RETRY_PENDING
        record_outcome("attempt_failed")
        logger.warning(
            f"[NodeAutoRepair] {record.name} still unhealthy after attempt {record.attempts}"
        )
        self._notify("repair_attempt_failed", record.node, record.attempts)

        if not self._store.is_current(record):
            return

        if record.attempts >= self._config.max_attempts:
            record.state = RepairState.GIVEN_UP
            self._total_given_up += 1
            record_outcome("attempts_exhausted")
            logger.error(
                f"[NodeAutoRepair] Giving up on {record.name} after {record.attempts} attempt(s)"
            )
            self._notify("repair_attempts_failed", record.node, record.attempts)
            return

        self._arm_timer(record, 0.0, self._verify_and_repair, f"verify:{record.name}")

    def _notify(self, method: str, node: NodeObject, attempts: int) -> None:
        """Invoke an outcome callback; its failures never reach the controller."""
        try:
            getattr(self._auto_repair, method)(node, attempts)
        except Exception as e:
            logger.error(
                f"[NodeAutoRepair] {method} callback failed for {node.name}: {e}",
                exc_info=True,
            )

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        status = self.get_lifecycle_health()
        feed_status = getattr(self._feed, "get_status", None)
        status.update({
            "config": self._config.to_dict(),
            "broken_nodes": {r.name: r.to_dict() for r in self._store.records()},
            "queue": self._queue.get_status(),
            "feed": feed_status() if callable(feed_status) else {"running": self._feed.is_running},
            "supervisor": self._supervisor.get_status(),
            "totals": {
                "repairs": self._total_repairs,
                "recoveries": self._total_recoveries,
                "given_up": self._total_given_up,
            },
        })
        return status


__all__ = [
    "READ_FAILURE_ALERT_THRESHOLD",
    "NodeAutoRepair",
]
