"""Node sources: list and point-in-time read of cluster machines.

A `NodeSource` backs both the polling feed (``list_nodes``) and the
freshness check made before each repair attempt (``read_node``).

Implementations:
- InMemoryNodeSource: mutable in-process map, for embedding and tests
- YamlNodeSource: ``kubectl get nodes -o yaml`` style document on disk
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml

from noderepair.coordination.node_health import NodeObject
from noderepair.utils.exceptions import FS_ERRORS, NodeNotFoundError, NodeReadError

logger = logging.getLogger(__name__)


class NodeSource(ABC):
    """Abstract source of node objects."""

    @abstractmethod
    async def list_nodes(self) -> list[NodeObject]:
        """Return every known node.

        Raises:
            NodeReadError: If the source is unavailable
        """
        ...

    @abstractmethod
    async def read_node(self, name: str) -> NodeObject:
        """Return the current state of one node.

        Raises:
            NodeNotFoundError: If the node is unknown
            NodeReadError: If the source is unavailable
        """
        ...


class InMemoryNodeSource(NodeSource):
    """Node source backed by a dict, mutated by the embedding application."""

    def __init__(self, nodes: list[NodeObject] | None = None) -> None:
        self._nodes: dict[str, NodeObject] = {}
        for node in nodes or []:
            self.set_node(node)

    def set_node(self, node: NodeObject) -> None:
        self._nodes[node.name] = node

    def remove_node(self, name: str) -> NodeObject | None:
        return self._nodes.pop(name, None)

    async def list_nodes(self) -> list[NodeObject]:
        return list(self._nodes.values())

    async def read_node(self, name: str) -> NodeObject:
        try:
            return self._nodes[name]
        except KeyError:
            raise NodeNotFoundError(name) from None


class YamlNodeSource(NodeSource):
    """Reads nodes from a YAML (or JSON) document on every call.

    Accepted shapes: a ``NodeList`` with ``items``, a bare list of nodes,
    or a single node document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def _load(self) -> list[NodeObject]:
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except FS_ERRORS as e:
            raise NodeReadError(f"Cannot read {self.path}: {e}") from e
        except yaml.YAMLError as e:
            raise NodeReadError(f"Invalid YAML in {self.path}: {e}") from e

        return [NodeObject.from_dict(doc) for doc in _node_documents(data, self.path)]

    async def list_nodes(self) -> list[NodeObject]:
        return await asyncio.to_thread(self._load)

    async def read_node(self, name: str) -> NodeObject:
        for node in await self.list_nodes():
            if node.name == name:
                return node
        raise NodeNotFoundError(name)


def _node_documents(data: Any, path: Path) -> list[dict[str, Any]]:
    if data is None:
        return []
    if isinstance(data, dict) and "items" in data:
        data = data["items"] or []
    elif isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise NodeReadError(f"{path} does not contain a node list")

    docs = []
    for item in data:
        if not isinstance(item, dict) or not (item.get("metadata") or {}).get("name"):
            logger.warning(f"[YamlNodeSource] Skipping malformed node entry in {path}")
            continue
        docs.append(item)
    return docs


__all__ = [
    "InMemoryNodeSource",
    "NodeSource",
    "YamlNodeSource",
]
