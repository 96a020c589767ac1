"""Broken-node records and their store.

One record exists per currently-unhealthy node; a healthy node has no
record. The store is only mutated from the event loop thread that runs the
feed handlers and timer callbacks, so it needs no lock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from noderepair.metrics import BROKEN_NODES

if TYPE_CHECKING:
    from noderepair.coordination.debounce_scheduler import ScheduledAction
    from noderepair.coordination.node_health import NodeObject


class RepairState(Enum):
    """States of the per-node attempt sequence."""

    PENDING = "pending"                     # Waiting out the debounce window
    VERIFYING = "verifying"                 # Re-reading live node state
    AWAITING_OUTCOME = "awaiting_outcome"   # Repair timeout timer armed
    RETRY_PENDING = "retry_pending"         # Timeout fired, about to re-verify
    GIVEN_UP = "given_up"                   # Max attempts reached, terminal
    HEALTHY = "healthy"                     # Recovered, record removed


class RepairTaskState(Enum):
    """State of the record's most recent repair task."""

    IDLE = "idle"
    QUEUED = "queued"
    REPAIRING = "repairing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class BrokenNodeRecord:
    """In-flight repair state for one unhealthy node."""

    name: str
    node: NodeObject
    # Number of repair actions executed, never decremented
    attempts: int = 0
    state: RepairState = RepairState.PENDING
    task_state: RepairTaskState = RepairTaskState.IDLE
    # At most one pending timer per node
    pending_timer: ScheduledAction | None = None
    first_seen_at: float = field(default_factory=time.time)
    last_attempt_at: float = 0.0
    # Consecutive failed live reads, reset by a successful read
    read_failures: int = 0

    def cancel_timer(self) -> None:
        if self.pending_timer is not None:
            self.pending_timer.cancel()
            self.pending_timer = None

    def to_dict(self) -> dict[str, object]:
        return {
            "attempts": self.attempts,
            "state": self.state.value,
            "task_state": self.task_state.value,
            "timer_pending": self.pending_timer is not None and self.pending_timer.active,
            "first_seen_at": self.first_seen_at,
            "last_attempt_at": self.last_attempt_at,
            "read_failures": self.read_failures,
        }


class NodeStateStore:
    """Maps node names to their broken-node record."""

    def __init__(self) -> None:
        self._records: dict[str, BrokenNodeRecord] = {}

    def get(self, name: str) -> BrokenNodeRecord | None:
        return self._records.get(name)

    def upsert(self, name: str, record: BrokenNodeRecord) -> None:
        self._records[name] = record
        BROKEN_NODES.set(len(self._records))

    def remove(self, name: str) -> BrokenNodeRecord | None:
        record = self._records.pop(name, None)
        BROKEN_NODES.set(len(self._records))
        return record

    def is_current(self, record: BrokenNodeRecord) -> bool:
        """Whether ``record`` is still the live record for its node."""
        return self._records.get(record.name) is record

    def names(self) -> list[str]:
        return list(self._records)

    def records(self) -> list[BrokenNodeRecord]:
        return list(self._records.values())

    def clear(self) -> list[BrokenNodeRecord]:
        """Remove every record and return them."""
        removed = list(self._records.values())
        self._records.clear()
        BROKEN_NODES.set(0)
        return removed

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)


__all__ = [
    "BrokenNodeRecord",
    "NodeStateStore",
    "RepairState",
    "RepairTaskState",
]
