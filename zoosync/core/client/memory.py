"""
In-process coordination service with ZooKeeper semantics.

A {obj}`MemoryNamespace` plays the role of the server and may be shared by
any number of {obj}`MemoryClient` sessions. Watches are one-shot and are
delivered asynchronously on each session's own event thread, in the order
the corresponding changes were applied.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from logging import Logger
from queue import Queue
from typing import Any, Callable

from ..exceptions import (
    ConnectionLossError,
    InvalidPathError,
    NoChildrenForEphemeralsError,
    NodeExistsError,
    NodeNotFoundError,
    NotEmptyError,
    SessionExpiredError,
    VersionConflictError,
)
from ..paths import ROOT, get_name, get_parent, is_valid_path
from ..types import (
    ConnectionState,
    CreateMode,
    Stat,
    WatchedEvent,
    WatchEventType,
)
from .client import BaseClient, StateListener, WatchCallback

__all__ = [
    "MemoryNamespace",
    "MemoryClient",
]

RESERVED_PATHS = ("/", "/zookeeper", "/zookeeper/quota")
"""
Nodes present in a freshly initialized namespace.
"""

_Watch = tuple["MemoryClient", WatchCallback]


@dataclass
class _ZNode:
    data: bytes
    czxid: int
    ctime: int
    ephemeral_owner: int = 0
    mzxid: int = 0
    pzxid: int = 0
    mtime: int = 0
    version: int = 0
    cversion: int = 0
    children: set[str] = field(default_factory=set)

    def __post_init__(self):
        self.mzxid = self.mzxid or self.czxid
        self.pzxid = self.pzxid or self.czxid
        self.mtime = self.mtime or self.ctime

    @property
    def stat(self) -> Stat:
        return Stat(
            czxid=self.czxid,
            mzxid=self.mzxid,
            pzxid=self.pzxid,
            ctime=self.ctime,
            mtime=self.mtime,
            version=self.version,
            cversion=self.cversion,
            ephemeral_owner=self.ephemeral_owner,
            data_length=len(self.data),
            num_children=len(self.children),
        )


class MemoryNamespace:
    """
    Server side of the in-process coordination service.
    """

    _lock: threading.RLock
    _nodes: dict[str, _ZNode]
    _data_watches: dict[str, list[_Watch]]
    _child_watches: dict[str, list[_Watch]]

    def __init__(self):
        self._lock = threading.RLock()
        self._nodes = {}
        self._data_watches = {}
        self._child_watches = {}
        self._zxid = 0
        self._session_ids = itertools.count(0x10000)

        now = _now()
        for path in RESERVED_PATHS:
            self._zxid += 1
            self._nodes[path] = _ZNode(data=b"", czxid=self._zxid, ctime=now)

            parent = get_parent(path)
            if parent is not None:
                self._nodes[parent].children.add(get_name(path))

    def __str__(self):
        return f"MemoryNamespace(nodes={len(self._nodes)}, zxid={self._zxid})"

    @property
    def paths(self) -> set[str]:
        """
        Snapshot of all paths currently in the namespace.
        """
        with self._lock:
            return set(self._nodes)

    def exists(
        self, session: MemoryClient, path: str, watch: WatchCallback | None
    ) -> Stat | None:
        with self._lock:
            session._check()
            self._check_path(path)
            if watch is not None:
                self._add_watch(self._data_watches, path, session, watch)
            node = self._nodes.get(path)
            return node.stat if node else None

    def get_data(
        self, session: MemoryClient, path: str, watch: WatchCallback | None
    ) -> tuple[bytes, Stat]:
        with self._lock:
            session._check()
            node = self._get_node(path)
            if watch is not None:
                self._add_watch(self._data_watches, path, session, watch)
            return node.data, node.stat

    def get_children(
        self, session: MemoryClient, path: str, watch: WatchCallback | None
    ) -> list[str]:
        with self._lock:
            session._check()
            node = self._get_node(path)
            if watch is not None:
                self._add_watch(self._child_watches, path, session, watch)
            return sorted(node.children)

    def create(
        self,
        session: MemoryClient,
        path: str,
        data: bytes,
        mode: CreateMode,
    ) -> str:
        with self._lock:
            session._check()
            self._check_path(path)

            parent_path = get_parent(path)
            if parent_path is None:
                raise NodeExistsError(path)

            parent = self._nodes.get(parent_path)
            if parent is None:
                raise NodeNotFoundError(parent_path)
            if parent.ephemeral_owner:
                raise NoChildrenForEphemeralsError(parent_path)

            if mode.sequential:
                path = f"{path}{parent.cversion:010d}"

            if path in self._nodes:
                raise NodeExistsError(path)

            self._zxid += 1
            self._nodes[path] = _ZNode(
                data=bytes(data),
                czxid=self._zxid,
                ctime=_now(),
                ephemeral_owner=session.session_id if mode.ephemeral else 0,
            )

            parent.children.add(get_name(path))
            parent.cversion += 1
            parent.pzxid = self._zxid

            self._trigger(path, WatchEventType.CREATED, self._data_watches)
            self._trigger(parent_path, WatchEventType.CHILD, self._child_watches)

            return path

    def set_data(
        self, session: MemoryClient, path: str, data: bytes, version: int
    ) -> Stat:
        with self._lock:
            session._check()
            node = self._get_node(path)

            if version != -1 and version != node.version:
                raise VersionConflictError(path, version)

            self._zxid += 1
            node.data = bytes(data)
            node.version += 1
            node.mzxid = self._zxid
            node.mtime = _now()

            self._trigger(path, WatchEventType.CHANGED, self._data_watches)

            return node.stat

    def delete(self, session: MemoryClient, path: str, version: int):
        with self._lock:
            session._check()
            if path == ROOT:
                raise InvalidPathError(path, "root may not be deleted")

            node = self._get_node(path)

            if version != -1 and version != node.version:
                raise VersionConflictError(path, version)
            if node.children:
                raise NotEmptyError(path)

            self._remove(path)

    def _remove(self, path: str):
        """
        Remove a childless node and fire associated watches.
        """
        parent_path = get_parent(path)
        assert parent_path is not None

        self._zxid += 1
        del self._nodes[path]

        parent = self._nodes[parent_path]
        parent.children.discard(get_name(path))
        parent.cversion += 1
        parent.pzxid = self._zxid

        self._trigger(
            path,
            WatchEventType.DELETED,
            self._data_watches,
            self._child_watches,
        )
        self._trigger(parent_path, WatchEventType.CHILD, self._child_watches)

    def _register(self, session: MemoryClient) -> int:
        with self._lock:
            return next(self._session_ids)

    def _end_session(self, session: MemoryClient):
        """
        Delete ephemeral nodes owned by this session and drop its watches.
        """
        with self._lock:
            # deepest first
            owned = sorted(
                (
                    path
                    for path, node in self._nodes.items()
                    if node.ephemeral_owner == session.session_id
                ),
                reverse=True,
            )

            for path in owned:
                self._remove(path)

            for table in (self._data_watches, self._child_watches):
                for path in list(table):
                    table[path] = [w for w in table[path] if w[0] is not session]
                    if not table[path]:
                        del table[path]

    def _check_path(self, path: str):
        if not is_valid_path(path):
            raise InvalidPathError(path)

    def _get_node(self, path: str) -> _ZNode:
        self._check_path(path)
        node = self._nodes.get(path)
        if node is None:
            raise NodeNotFoundError(path)
        return node

    def _add_watch(
        self,
        table: dict[str, list[_Watch]],
        path: str,
        session: MemoryClient,
        watch: WatchCallback,
    ):
        watches = table.setdefault(path, [])

        # same callback registered multiple times fires once
        if (session, watch) not in watches:
            watches.append((session, watch))

    def _trigger(
        self,
        path: str,
        event_type: WatchEventType,
        *tables: dict[str, list[_Watch]],
    ):
        """
        Pop watches for this path from the given tables and queue them on
        their sessions. Must be invoked with the lock held so sessions
        receive notifications in zxid order.
        """
        triggered: list[_Watch] = []
        for table in tables:
            for watch in table.pop(path, []):
                if watch not in triggered:
                    triggered.append(watch)

        event = WatchedEvent(type=event_type, path=path)
        for session, callback in triggered:
            session._enqueue(callback, event)


class MemoryClient(BaseClient):
    """
    Session with a {obj}`MemoryNamespace`. Creates its own namespace if none
    is provided.
    """

    _namespace: MemoryNamespace
    _session_id: int
    _events: Queue
    _state_listeners: list[StateListener]
    _logger: Logger

    def __init__(
        self,
        namespace: MemoryNamespace | None = None,
        *,
        logger: Logger | None = None,
    ):
        self._namespace = namespace if namespace is not None else MemoryNamespace()
        self._logger = logger or logging.getLogger()
        self._events = Queue()
        self._state_listeners = []
        self._expired = False
        self._closed = False
        self._connection_losses = 0
        self._session_id = self._namespace._register(self)

        self._thread = threading.Thread(
            target=self._event_loop,
            name=f"zoosync-memory-{self._session_id:x}",
            daemon=True,
        )
        self._thread.start()

        self._logger.debug(f"Started in-memory session 0x{self._session_id:x}")

    def __str__(self):
        return f"MemoryClient(session_id=0x{self._session_id:x})"

    @property
    def namespace(self) -> MemoryNamespace:
        return self._namespace

    @property
    def session_id(self) -> int:
        return self._session_id

    def exists(self, path: str, watch: WatchCallback | None = None) -> Stat | None:
        return self._namespace.exists(self, path, watch)

    def get_data(
        self, path: str, watch: WatchCallback | None = None
    ) -> tuple[bytes, Stat]:
        return self._namespace.get_data(self, path, watch)

    def get_children(
        self, path: str, watch: WatchCallback | None = None
    ) -> list[str]:
        return self._namespace.get_children(self, path, watch)

    def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        return self._namespace.create(self, path, data, mode)

    def set_data(self, path: str, data: bytes, version: int = -1) -> Stat:
        return self._namespace.set_data(self, path, data, version)

    def delete(self, path: str, version: int = -1):
        self._namespace.delete(self, path, version)

    def add_state_listener(self, listener: StateListener):
        self._state_listeners.append(listener)

    def inject_connection_loss(self, count: int = 1):
        """
        Make the next `count` requests fail with {obj}`ConnectionLossError`.
        """
        self._connection_losses += count

    def expire(self):
        """
        Expire this session as the server would after a timeout: its
        ephemeral nodes are deleted and listeners are notified with
        {obj}`ConnectionState.LOST`.
        """
        if self._expired or self._closed:
            return

        self._logger.debug(f"Expiring session: {self}")
        self._namespace._end_session(self)
        self._expired = True
        self._notify_state(ConnectionState.LOST)

    def close(self):
        if self._closed:
            return

        if not self._expired:
            self._namespace._end_session(self)
            self._notify_state(ConnectionState.LOST)

        self._closed = True
        self._events.put(None)

        if threading.current_thread() is not self._thread:
            self._thread.join()

    def _check(self):
        """
        Invoked by the namespace before serving a request.
        """
        if self._expired or self._closed:
            raise SessionExpiredError(f"Session 0x{self._session_id:x} expired")

        if self._connection_losses:
            self._connection_losses -= 1
            raise ConnectionLossError(f"Connection lost: {self}")

    def _enqueue(self, callback: Callable[[Any], None], arg: Any):
        self._events.put((callback, arg))

    def _notify_state(self, state: ConnectionState):
        for listener in self._state_listeners:
            self._enqueue(listener, state)

    def _event_loop(self):
        while True:
            item = self._events.get()
            if item is None:
                return

            callback, arg = item
            try:
                callback(arg)
            except Exception:
                self._logger.exception(f"Callback failed in {self}: {arg}")


def _now() -> int:
    return int(time.time() * 1000)
