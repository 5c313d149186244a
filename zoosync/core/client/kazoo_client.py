"""
Client for a ZooKeeper ensemble, implemented on top of kazoo.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from logging import Logger
from typing import Callable, Iterator

from kazoo import exceptions as kazoo_exceptions
from kazoo.client import KazooClient as _KazooClient
from kazoo.protocol.states import EventType as KazooEventType
from kazoo.protocol.states import KazooState
from kazoo.protocol.states import WatchedEvent as KazooWatchedEvent
from kazoo.protocol.states import ZnodeStat

from ..exceptions import (
    ConnectionLossError,
    NoChildrenForEphemeralsError,
    NodeExistsError,
    NodeNotFoundError,
    NotEmptyError,
    SessionExpiredError,
    VersionConflictError,
)
from ..types import (
    ConnectionState,
    CreateMode,
    Stat,
    WatchedEvent,
    WatchEventType,
)
from .client import BaseClient, StateListener, WatchCallback

__all__ = [
    "KazooClient",
]

DEFAULT_TIMEOUT = 10.0
"""
Session timeout in seconds, also used as connect timeout.
"""

_EVENT_TYPE_MAP = {
    KazooEventType.CREATED: WatchEventType.CREATED,
    KazooEventType.DELETED: WatchEventType.DELETED,
    KazooEventType.CHANGED: WatchEventType.CHANGED,
    KazooEventType.CHILD: WatchEventType.CHILD,
}

_STATE_MAP = {
    KazooState.CONNECTED: ConnectionState.CONNECTED,
    KazooState.SUSPENDED: ConnectionState.SUSPENDED,
    KazooState.LOST: ConnectionState.LOST,
}


class KazooClient(BaseClient):
    """
    Session with a ZooKeeper ensemble.

    Either pass `hosts` to create and connect a kazoo client, or pass an
    already started kazoo client as `client`.
    """

    _client: _KazooClient
    _watchers: dict[WatchCallback, Callable[[KazooWatchedEvent], None]]
    _logger: Logger

    def __init__(
        self,
        hosts: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: _KazooClient | None = None,
        logger: Logger | None = None,
    ):
        self._logger = logger or logging.getLogger()
        self._watchers = {}

        if client is None:
            assert hosts, "Either hosts or client is required"
            client = _KazooClient(hosts=hosts, timeout=timeout, logger=self._logger)

            try:
                client.start(timeout=timeout)
            except Exception as e:
                self._logger.error(f"Failed to connect to '{hosts}': {e}")
                raise ConnectionLossError(str(e)) from e

            self._logger.debug(
                f"Connected to '{hosts}', session 0x{self.session_id_of(client):x}"
            )

        self._client = client

    def __str__(self):
        return f"KazooClient(hosts={self._client.hosts})"

    @property
    def session_id(self) -> int:
        return self.session_id_of(self._client)

    @staticmethod
    def session_id_of(client: _KazooClient) -> int:
        client_id = client.client_id
        return client_id[0] if client_id else 0

    def exists(self, path: str, watch: WatchCallback | None = None) -> Stat | None:
        with _translate(path):
            stat = self._client.exists(path, watch=self._wrap(watch))
        return _convert_stat(stat) if stat is not None else None

    def get_data(
        self, path: str, watch: WatchCallback | None = None
    ) -> tuple[bytes, Stat]:
        with _translate(path):
            data, stat = self._client.get(path, watch=self._wrap(watch))
        return data or b"", _convert_stat(stat)

    def get_children(
        self, path: str, watch: WatchCallback | None = None
    ) -> list[str]:
        with _translate(path):
            children = self._client.get_children(path, watch=self._wrap(watch))
        return sorted(children)

    def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        with _translate(path):
            return self._client.create(
                path,
                data,
                ephemeral=mode.ephemeral,
                sequence=mode.sequential,
            )

    def set_data(self, path: str, data: bytes, version: int = -1) -> Stat:
        with _translate(path, version):
            stat = self._client.set(path, data, version=version)
        return _convert_stat(stat)

    def delete(self, path: str, version: int = -1):
        with _translate(path, version):
            self._client.delete(path, version=version)

    def add_state_listener(self, listener: StateListener):
        def on_state(state: str):
            converted = _STATE_MAP.get(state)
            if converted is not None:
                listener(converted)

        self._client.add_listener(on_state)

    def close(self):
        self._client.stop()
        self._client.close()

    def _wrap(
        self, watch: WatchCallback | None
    ) -> Callable[[KazooWatchedEvent], None] | None:
        """
        Adapt a watch callback to kazoo. The same callback always maps to the
        same wrapper so kazoo fires it once per event.
        """
        if watch is None:
            return None

        wrapper = self._watchers.get(watch)
        if wrapper is None:

            def wrapper(event: KazooWatchedEvent):
                event_type = _EVENT_TYPE_MAP.get(event.type)

                # session events are reported through state listeners
                if event_type is None:
                    return

                watch(WatchedEvent(type=event_type, path=event.path))

            self._watchers[watch] = wrapper

        return wrapper


@contextmanager
def _translate(path: str, version: int = -1) -> Iterator[None]:
    """
    Raise this package's exceptions in place of kazoo's.
    """
    try:
        yield
    except kazoo_exceptions.NoNodeError as e:
        raise NodeNotFoundError(path) from e
    except kazoo_exceptions.NodeExistsError as e:
        raise NodeExistsError(path) from e
    except kazoo_exceptions.BadVersionError as e:
        raise VersionConflictError(path, version) from e
    except kazoo_exceptions.NotEmptyError as e:
        raise NotEmptyError(path) from e
    except kazoo_exceptions.NoChildrenForEphemeralsError as e:
        raise NoChildrenForEphemeralsError(path) from e
    except kazoo_exceptions.SessionExpiredError as e:
        raise SessionExpiredError(str(e)) from e
    except kazoo_exceptions.ConnectionLoss as e:
        raise ConnectionLossError(str(e)) from e


def _convert_stat(stat: ZnodeStat) -> Stat:
    return Stat(
        czxid=stat.czxid,
        mzxid=stat.mzxid,
        pzxid=stat.pzxid,
        ctime=stat.ctime,
        mtime=stat.mtime,
        version=stat.version,
        cversion=stat.cversion,
        aversion=stat.aversion,
        ephemeral_owner=stat.ephemeralOwner,
        data_length=stat.dataLength,
        num_children=stat.numChildren,
    )
