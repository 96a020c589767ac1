"""Prometheus metrics for node auto-repair.

This module centralises counters, gauges and histograms so the controller,
queue, store and feed supervisor can record telemetry without each managing
its own metric instances. Node names are never used as labels, which
keeps cardinality bounded on large clusters.
"""

from __future__ import annotations

import logging
import threading
from typing import Final

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

_server_started = False
_server_lock = threading.Lock()


REPAIR_ATTEMPTS: Final[Counter] = Counter(
    "noderepair_repair_attempts_total",
    "Total number of repair actions dispatched to the repair callback.",
)

REPAIR_OUTCOMES: Final[Counter] = Counter(
    "noderepair_repair_outcomes_total",
    (
        "Repair outcomes reported to the repair callbacks, labeled by "
        "outcome (success, attempt_failed, attempts_exhausted)."
    ),
    labelnames=("outcome",),
)

REPAIR_ERRORS: Final[Counter] = Counter(
    "noderepair_repair_errors_total",
    "Total number of repair actions that raised an exception.",
)

REPAIR_DURATION: Final[Histogram] = Histogram(
    "noderepair_repair_duration_seconds",
    "Wall-clock duration of individual repair actions in seconds.",
    # Repairs range from a quick API call to a full machine reboot.
    buckets=(0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

BROKEN_NODES: Final[Gauge] = Gauge(
    "noderepair_broken_nodes",
    "Current number of nodes with an active broken-node record.",
)

REPAIR_QUEUE_PENDING: Final[Gauge] = Gauge(
    "noderepair_repair_queue_pending",
    "Repair tasks waiting for a concurrency slot.",
)

REPAIR_QUEUE_RUNNING: Final[Gauge] = Gauge(
    "noderepair_repair_queue_running",
    "Repair tasks currently executing.",
)

NODE_READ_ERRORS: Final[Counter] = Counter(
    "noderepair_node_read_errors_total",
    "Live node reads before a repair attempt that failed.",
)

FEED_ERRORS: Final[Counter] = Counter(
    "noderepair_feed_errors_total",
    "Health change feed errors, excluding deliberate shutdowns.",
)

FEED_RESTARTS: Final[Counter] = Counter(
    "noderepair_feed_restarts_total",
    "Successful automatic restarts of the health change feed.",
)


def record_outcome(outcome: str) -> None:
    """Increment the repair outcome counter for ``outcome``."""
    REPAIR_OUTCOMES.labels(outcome=outcome).inc()


def start_metrics_server(port: int = 9090) -> bool:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: HTTP port for the metrics server

    Returns:
        True if server started, False if already running or it failed
    """
    global _server_started

    with _server_lock:
        if _server_started:
            logger.debug(f"Metrics server already running on port {port}")
            return False

        try:
            start_http_server(port)
        except OSError as e:
            logger.error(f"Failed to start metrics server on port {port}: {e}")
            return False

        _server_started = True
        logger.info(f"Prometheus metrics server started on port {port}")
        return True


__all__ = [
    "BROKEN_NODES",
    "FEED_ERRORS",
    "FEED_RESTARTS",
    "NODE_READ_ERRORS",
    "REPAIR_ATTEMPTS",
    "REPAIR_DURATION",
    "REPAIR_ERRORS",
    "REPAIR_OUTCOMES",
    "REPAIR_QUEUE_PENDING",
    "REPAIR_QUEUE_RUNNING",
    "record_outcome",
    "start_metrics_server",
]
