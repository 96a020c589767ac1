"""Node objects and health snapshots.

A node is healthy when its ``Ready`` condition has status ``"True"``. The
snapshot also carries the condition's last transition time, which the
debounce scheduler uses to decide how much of the unhealthy window has
already elapsed.

Nodes with no ``Ready`` condition are treated as unhealthy with an unknown
transition time, so the full debounce window applies to them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

READY_CONDITION = "Ready"
CONDITION_TRUE = "True"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts datetimes, strings with a trailing ``Z`` and naive values
    (taken as UTC). Returns None for missing or unparsable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unparsable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class NodeCondition:
    """A named status condition reported by a node."""

    type: str
    status: str
    last_transition_time: datetime | None = None
    reason: str = ""
    message: str = ""

    def __post_init__(self) -> None:
        # Naive datetimes from embedders are taken as UTC, like parsed ones
        if self.last_transition_time is not None:
            self.last_transition_time = parse_timestamp(self.last_transition_time)

    @property
    def is_true(self) -> bool:
        """Whether the status is ``"True"``.

        Wider than the API server's exact ``"True"``: surrounding whitespace
        and letter case are ignored, so hand-written node files with
        ``status: true`` still count as ready.
        """
        return self.status.strip().lower() == CONDITION_TRUE.lower()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeCondition:
        return cls(
            type=str(data.get("type", "")),
            status=str(data.get("status", "")),
            last_transition_time=parse_timestamp(data.get("lastTransitionTime")),
            reason=str(data.get("reason") or ""),
            message=str(data.get("message") or ""),
        )


@dataclass
class NodeObject:
    """A cluster machine as delivered by the feed or a live read.

    ``raw`` keeps the original document so repair callbacks can read any
    provider-specific field.
    """

    name: str
    conditions: list[NodeCondition] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    def get_condition(self, condition_type: str) -> NodeCondition | None:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeObject:
        """Build a node from the Kubernetes node document shape.

        Raises:
            ValueError: If the document has no ``metadata.name``
        """
        metadata = data.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise ValueError("Node document is missing metadata.name")
        status = data.get("status") or {}
        conditions = [
            NodeCondition.from_dict(c)
            for c in status.get("conditions") or []
            if isinstance(c, dict)
        ]
        labels = {str(k): str(v) for k, v in (metadata.get("labels") or {}).items()}
        return cls(name=str(name), conditions=conditions, labels=labels, raw=data)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class NodeHealthSnapshot:
    """Point-in-time health derived from a node's readiness condition."""

    is_healthy: bool
    last_transition_time: datetime | None = None
    has_ready_condition: bool = True


def compute_node_health(node: NodeObject) -> NodeHealthSnapshot:
    """Compute the health snapshot for ``node``."""
    ready = node.get_condition(READY_CONDITION)
    if ready is None:
        return NodeHealthSnapshot(
            is_healthy=False,
            last_transition_time=None,
            has_ready_condition=False,
        )
    return NodeHealthSnapshot(
        is_healthy=ready.is_true,
        last_transition_time=ready.last_transition_time,
    )


__all__ = [
    "CONDITION_TRUE",
    "NodeCondition",
    "NodeHealthSnapshot",
    "NodeObject",
    "READY_CONDITION",
    "compute_node_health",
    "parse_timestamp",
]
