"""Node health watching, debounce, retry and repair coordination."""

from noderepair.coordination.auto_repair import (
    AutoRepair,
    CommandAutoRepair,
    LoggingAutoRepair,
)
from noderepair.coordination.debounce_scheduler import DebounceScheduler, ScheduledAction
from noderepair.coordination.health_feed import (
    FeedEventType,
    FeedSupervisor,
    NodeFeed,
    PollingNodeFeed,
)
from noderepair.coordination.kubernetes_source import (
    KubernetesNodeSource,
    KubernetesWatchFeed,
    load_core_api,
)
from noderepair.coordination.node_auto_repair import NodeAutoRepair
from noderepair.coordination.node_health import (
    NodeCondition,
    NodeHealthSnapshot,
    NodeObject,
    compute_node_health,
)
from noderepair.coordination.node_source import (
    InMemoryNodeSource,
    NodeSource,
    YamlNodeSource,
)
from noderepair.coordination.node_state_store import (
    BrokenNodeRecord,
    NodeStateStore,
    RepairState,
    RepairTaskState,
)
from noderepair.coordination.repair_queue import RepairQueue

__all__ = [
    # Repair actions
    "AutoRepair",
    "CommandAutoRepair",
    "LoggingAutoRepair",
    # Scheduling
    "DebounceScheduler",
    "ScheduledAction",
    # Feed
    "FeedEventType",
    "FeedSupervisor",
    "NodeFeed",
    "PollingNodeFeed",
    "KubernetesWatchFeed",
    # Controller
    "NodeAutoRepair",
    # Health
    "NodeCondition",
    "NodeHealthSnapshot",
    "NodeObject",
    "compute_node_health",
    # Sources
    "InMemoryNodeSource",
    "NodeSource",
    "YamlNodeSource",
    "KubernetesNodeSource",
    "load_core_api",
    # State
    "BrokenNodeRecord",
    "NodeStateStore",
    "RepairState",
    "RepairTaskState",
    "RepairQueue",
]
