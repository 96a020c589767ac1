"""Live Kubernetes node access through the official ``kubernetes`` client.

`KubernetesNodeSource` backs the live read made before each repair attempt
with ``CoreV1Api.read_node``. `KubernetesWatchFeed` is an informer: it
lists ``/api/v1/nodes``, then watches from the list's resource version and
emits add/update/delete events. When the server closes the watch, or
answers 410 Gone for an expired resource version, it re-lists and watches
again. Any other failure is emitted as an ``error`` event for the
`FeedSupervisor` to restart.

The client is synchronous. Reads run in worker threads via
``asyncio.to_thread``. The watch stream runs in a daemon thread that hands
each event to the event loop with ``call_soon_threadsafe``.

Usage:
    api = load_core_api(config.kubeconfig)
    controller = NodeAutoRepair(
        auto_repair=CommandAutoRepair("reboot-node {node}"),
        source=KubernetesNodeSource(api),
        feed=KubernetesWatchFeed(api),
        config=config,
    )
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any

from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from noderepair.coordination.health_feed import FeedEventType, NodeFeed
from noderepair.coordination.node_health import NodeCondition, NodeObject
from noderepair.coordination.node_source import NodeSource
from noderepair.utils.async_utils import fire_and_forget
from noderepair.utils.exceptions import (
    FS_ERRORS,
    ConfigError,
    FeedAbortedError,
    NodeNotFoundError,
    NodeReadError,
)

logger = logging.getLogger(__name__)

# Errors raised by the client for API and transport failures
K8S_ERRORS: tuple[type[BaseException], ...] = (ApiException, HTTPError, OSError)

HTTP_NOT_FOUND = 404
HTTP_GONE = 410

DEFAULT_WATCH_TIMEOUT_SECONDS = 300


# =============================================================================
# Client Setup
# =============================================================================


def load_core_api(kubeconfig: str = "") -> client.CoreV1Api:
    """Build a CoreV1Api client.

    Args:
        kubeconfig: Path to a kubeconfig file. When empty, the in-cluster
            service account is tried first, then the default kubeconfig.

    Raises:
        ConfigError: If no usable cluster configuration is found
    """
    try:
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig)
        else:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                config.load_kube_config()
    except (config.ConfigException, *FS_ERRORS) as e:
        raise ConfigError(f"Cannot load Kubernetes configuration: {e}") from e
    return client.CoreV1Api()


def node_from_k8s(obj: client.V1Node) -> NodeObject:
    """Convert a client ``V1Node`` model into a NodeObject."""
    metadata = obj.metadata
    status = obj.status
    conditions = [
        NodeCondition(
            type=c.type or "",
            status=c.status or "",
            last_transition_time=c.last_transition_time,
            reason=c.reason or "",
            message=c.message or "",
        )
        for c in (status.conditions if status else None) or []
    ]
    return NodeObject(
        name=metadata.name,
        conditions=conditions,
        labels=dict(metadata.labels or {}),
        raw=obj.to_dict(),
    )


# =============================================================================
# Node Source
# =============================================================================


class KubernetesNodeSource(NodeSource):
    """Reads nodes from the Kubernetes API server."""

    def __init__(self, api: client.CoreV1Api) -> None:
        self._api = api

    async def list_nodes(self) -> list[NodeObject]:
        try:
            node_list = await asyncio.to_thread(self._api.list_node)
        except K8S_ERRORS as e:
            raise NodeReadError(f"Cannot list nodes: {e}") from e
        return [node_from_k8s(item) for item in node_list.items]

    async def read_node(self, name: str) -> NodeObject:
        try:
            obj = await asyncio.to_thread(self._api.read_node, name)
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                raise NodeNotFoundError(name) from e
            raise NodeReadError(f"Cannot read node {name}: {e.reason}") from e
        except K8S_ERRORS as e:
            raise NodeReadError(f"Cannot read node {name}: {e}") from e
        return node_from_k8s(obj)


# =============================================================================
# Watch Feed
# =============================================================================


class KubernetesWatchFeed(NodeFeed):
    """List-then-watch feed over ``/api/v1/nodes``."""

    def __init__(
        self,
        api: client.CoreV1Api,
        name: str = "kubernetes_feed",
        watch_timeout: int = DEFAULT_WATCH_TIMEOUT_SECONDS,
        watch_factory: Callable[[], Any] = watch.Watch,
    ) -> None:
        super().__init__(name=name)
        self._api = api
        self._watch_timeout = watch_timeout
        self._watch_factory = watch_factory
        self._known: dict[str, NodeObject] = {}
        self._resource_version: str | None = None
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._watch: Any = None
        # Bumped on every (re)watch and on stop so late events are dropped
        self._generation = 0
        self._relist_count = 0
        self._last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        await self._relist()
        self._running = True
        self._last_error = None
        self._start_watch()
        logger.info(f"[{self.name}] Watching {len(self._known)} nodes")

    async def stop(self) -> None:
        self._running = False
        self._generation += 1
        if self._watch is not None:
            self._watch.stop()
            self._watch = None
        logger.info(f"[{self.name}] Stopped")
        self._emit(FeedEventType.ERROR, FeedAbortedError())

    # -------------------------------------------------------------------------
    # List
    # -------------------------------------------------------------------------

    async def _relist(self) -> None:
        try:
            node_list = await asyncio.to_thread(self._api.list_node)
        except K8S_ERRORS as e:
            raise NodeReadError(f"Cannot list nodes: {e}") from e
        self._relist_count += 1
        self._resource_version = node_list.metadata.resource_version

        current: dict[str, NodeObject] = {}
        for item in node_list.items:
            node = node_from_k8s(item)
            current[node.name] = node
            event_type = FeedEventType.UPDATE if node.name in self._known else FeedEventType.ADD
            self._emit(event_type, node)

        for name, node in self._known.items():
            if name not in current:
                self._emit(FeedEventType.DELETE, node)
        self._known = current

    async def _resync(self, generation: int) -> None:
        try:
            await self._relist()
        except Exception as e:
            if generation == self._generation and self._running:
                self._fail(e)
            return
        if generation == self._generation and self._running:
            self._start_watch()

    # -------------------------------------------------------------------------
    # Watch
    # -------------------------------------------------------------------------

    def _start_watch(self) -> None:
        self._generation += 1
        self._watch = self._watch_factory()
        thread = threading.Thread(
            target=self._pump,
            args=(self._watch, self._resource_version, self._generation),
            name=f"{self.name}-watch",
            daemon=True,
        )
        thread.start()

    def _pump(self, w: Any, resource_version: str | None, generation: int) -> None:
        """Watch thread: forward every event to the loop, then report the close."""
        error: Exception | None = None
        try:
            for event in w.stream(
                self._api.list_node,
                resource_version=resource_version,
                timeout_seconds=self._watch_timeout,
            ):
                self._post(self._on_watch_event, generation, event)
        except Exception as e:
            error = e
        self._post(self._on_watch_closed, generation, error)

    def _post(self, callback: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def _on_watch_event(self, generation: int, event: dict[str, Any]) -> None:
        if generation != self._generation or not self._running:
            return

        kind = event.get("type")
        obj = event.get("object")
        if kind not in ("ADDED", "MODIFIED", "DELETED") or obj is None:
            return

        rv = getattr(obj.metadata, "resource_version", None)
        if rv:
            self._resource_version = rv

        node = node_from_k8s(obj)
        if kind == "DELETED":
            self._known.pop(node.name, None)
            self._emit(FeedEventType.DELETE, node)
            return

        event_type = FeedEventType.UPDATE if node.name in self._known else FeedEventType.ADD
        self._known[node.name] = node
        self._emit(event_type, node)

    def _on_watch_closed(self, generation: int, error: Exception | None) -> None:
        if generation != self._generation or not self._running:
            return

        if error is None or (isinstance(error, ApiException) and error.status == HTTP_GONE):
            logger.debug(f"[{self.name}] Watch closed ({error or 'timeout'}), re-listing")
            fire_and_forget(self._resync(generation), name=f"{self.name}-resync")
            return

        self._fail(error)

    def _fail(self, error: Exception) -> None:
        self._running = False
        self._generation += 1
        self._watch = None
        self._last_error = str(error)
        logger.warning(f"[{self.name}] Watch failed: {error}")
        self._emit(FeedEventType.ERROR, error)

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "running": self._running,
            "known_nodes": len(self._known),
            "resource_version": self._resource_version,
            "relist_count": self._relist_count,
            "last_error": self._last_error,
        }


__all__ = [
    "K8S_ERRORS",
    "KubernetesNodeSource",
    "KubernetesWatchFeed",
    "load_core_api",
    "node_from_k8s",
]
