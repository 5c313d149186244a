"""
Implements the in-memory mirror of the remote namespace.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from logging import Logger

from .exceptions import NodeNotFoundError
from .paths import get_name, get_parent, join_path
from .types import Stat

__all__ = [
    "Mirror",
    "MirrorNode",
]


@dataclass
class MirrorNode:
    """
    Locally known state of a remote node.
    """

    path: str
    data: bytes
    stat: Stat
    children: set[str] = field(default_factory=set)
    """Names of immediate children known to the mirror"""


class Mirror:
    """
    Collection of all currently known nodes, keyed by full path.

    Only the dispatcher's worker writes to the mirror. Readers on other
    threads take snapshots under the same lock.

    Invariants:

    - A non-root path is present only if its parent is present
    - A node is removed only after all of its children were removed
    """

    node_map: dict[str, MirrorNode]
    """Mapping of path to node"""

    lock: threading.RLock
    """Lock held while reading or writing"""

    _logger: Logger

    def __init__(self, logger: Logger | None = None):
        self.node_map = dict()
        self.lock = threading.RLock()
        self._logger = logger or logging.getLogger()

    def __str__(self):
        return f"Mirror: {len(self.node_map)} nodes"

    def __contains__(self, path: str) -> bool:
        with self.lock:
            return path in self.node_map

    def __len__(self) -> int:
        with self.lock:
            return len(self.node_map)

    def add(self, path: str, data: bytes, stat: Stat) -> MirrorNode:
        """
        Insert a newly confirmed node.
        """
        with self.lock:
            assert path not in self.node_map, f"Already mirrored: {path}"

            parent = get_parent(path)
            if parent is not None:
                assert (
                    parent in self.node_map
                ), f"Parent of {path} not mirrored: {parent}"
                self.node_map[parent].children.add(get_name(path))

            node = MirrorNode(path=path, data=data, stat=stat)
            self.node_map[path] = node

        self._logger.debug(f"Added to mirror: {path}")
        return node

    def update(self, path: str, data: bytes, stat: Stat) -> bool:
        """
        Refresh a node's data and stat.

        :returns: Whether the data or version changed
        """
        with self.lock:
            node = self._get(path)
            changed = node.data != data or node.stat.version != stat.version
            node.data = data
            node.stat = stat
            return changed

    def remove(self, path: str):
        """
        Remove a node whose children were already removed.
        """
        with self.lock:
            node = self._get(path)
            assert not node.children, f"Removing {path} with children {node.children}"

            del self.node_map[path]

            parent = get_parent(path)
            if parent is not None and parent in self.node_map:
                self.node_map[parent].children.discard(get_name(path))

        self._logger.debug(f"Removed from mirror: {path}")

    def clear(self):
        with self.lock:
            self.node_map.clear()

    def get_data(self, path: str) -> bytes:
        with self.lock:
            return self._get(path).data

    def get_stat(self, path: str) -> Stat:
        with self.lock:
            return self._get(path).stat

    def get_children(self, path: str) -> list[str]:
        """
        Sorted names of the node's mirrored children.
        """
        with self.lock:
            return sorted(self._get(path).children)

    def get_child_paths(self, path: str) -> list[str]:
        return [join_path(path, name) for name in self.get_children(path)]

    def get_paths(self) -> set[str]:
        """
        Snapshot of all mirrored paths.
        """
        with self.lock:
            return set(self.node_map)

    def _get(self, path: str) -> MirrorNode:
        node = self.node_map.get(path)
        if node is None:
            raise NodeNotFoundError(path)
        return node
