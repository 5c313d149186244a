"""
Implementation of the synchronization engine's public interface.
"""

from __future__ import annotations

import logging
from logging import Logger
from typing import Callable

from .client import BaseClient
from .dispatcher import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, WatchDispatcher
from .exceptions import (
    InvalidPathError,
    NodeExistsError,
    NodeNotFoundError,
    NotEmptyError,
    SessionExpiredError,
)
from .listeners import EventBus, ExpiryListener, Listener
from .mirror import Mirror
from .paths import ROOT, get_parent, iter_ancestors, join_path, validate_path
from .types import CreateMode, Event, Stat

__all__ = ["ZooSync"]


class ZooSync:
    """
    Eventually-consistent mirror of a remote namespace, with mutation
    primitives whose effects are observed back through the mirror.

    Register listeners with {obj}`ZooSync.add_listener` before invoking
    {obj}`ZooSync.watch` to receive `add` events for the initial load.

    Mutations only issue remote requests; the mirror converges
    asynchronously as the resulting notifications are processed, and reads
    are answered from the mirror. Hence a read immediately following a
    mutation may not reflect it yet.

    Example:

    ```
    with ZooSync(client) as sync:
        sync.add_listener(print)
        sync.watch()
        sync.create("/app/config")
    ```
    """

    _client: BaseClient
    """
    Remote client.
    """

    _mirror: Mirror
    """
    Locally known nodes.
    """

    _bus: EventBus
    """
    Registered listeners.
    """

    _dispatcher: WatchDispatcher
    """
    Worker applying remote changes to the mirror.
    """

    _logger: Logger
    """
    Logger to use.
    """

    def __init__(
        self,
        client: BaseClient,
        *,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        logger: Logger | None = None,
    ):
        """
        :param client: Client connected to the coordination service
        :param retry_delay: Seconds to wait before retrying a notification which failed due to connection loss
        :param max_retries: Number of attempts at `retry_delay` before backing off; handling is retried until it succeeds or the session expires
        :param logger: Logger to use, or `None` to use default logger
        """
        self._client = client
        self._logger = logger or logging.getLogger()
        self._mirror = Mirror(logger=self._logger)
        self._bus = EventBus(logger=self._logger)
        self._dispatcher = WatchDispatcher(
            client,
            self._mirror,
            self._bus,
            retry_delay=retry_delay,
            max_retries=max_retries,
            logger=self._logger,
        )

    def __enter__(self):
        self._logger.debug(f"Entering context: {self}")
        return self

    def __exit__(self, exc_type, exc_val, traceback):
        if exc_type:
            self._logger.error(f"Exiting context with error: {self}")
        else:
            self._logger.debug(f"Exiting context: {self}")

        self.close()

    def __str__(self):
        return f"ZooSync(client={self._client}, nodes={len(self._mirror)})"

    @property
    def client(self) -> BaseClient:
        """
        Remote client, exposed for low-level operations.
        """
        return self._client

    @property
    def expired(self) -> bool:
        """
        Whether the session expired, invalidating the mirror.
        """
        return self._dispatcher.expired

    # --------------------------------------------------------------------------
    # Listeners and lifecycle
    # --------------------------------------------------------------------------

    def add_listener(self, listener: Listener | Callable[[Event], None]):
        """
        Register a listener to receive events in delivery order.
        """
        self._bus.add_listener(listener)

    def remove_listener(self, listener: Listener | Callable[[Event], None]):
        self._bus.remove_listener(listener)

    def add_expiry_listener(self, listener: ExpiryListener):
        """
        Register a callback invoked once if the session expires.
        """
        self._bus.add_expiry_listener(listener)

    def watch(self):
        """
        Start mirroring the remote namespace. The initial load runs
        asynchronously and emits an `add` event for each node, parents
        before children.

        :raises AlreadyWatchingError: If invoked more than once
        """
        self._check_expired()
        self._dispatcher.start()

    def wait_loaded(self, timeout: float | None = None) -> bool:
        """
        Block until the initial load completed.

        :param timeout: Seconds to wait, or `None` to wait indefinitely
        :returns: Whether the initial load completed in time
        """
        loaded = self._dispatcher.wait_loaded(timeout)
        self._check_expired()
        return loaded

    def close(self):
        """
        Stop processing notifications. Does not close the client.
        """
        self._dispatcher.stop()

    # --------------------------------------------------------------------------
    # Reads, answered from the mirror
    # --------------------------------------------------------------------------

    def get_nodes(self) -> set[str]:
        """
        Snapshot of all mirrored paths.
        """
        self._check_expired()
        return self._mirror.get_paths()

    def get_data(self, path: str) -> bytes:
        """
        :raises NodeNotFoundError: If the path isn't mirrored
        """
        validate_path(path)
        self._check_expired()
        return self._mirror.get_data(path)

    def get_stat(self, path: str) -> Stat:
        """
        :raises NodeNotFoundError: If the path isn't mirrored
        """
        validate_path(path)
        self._check_expired()
        return self._mirror.get_stat(path)

    def get_children(self, path: str) -> list[str]:
        """
        Sorted names of the mirrored children of a node.

        :raises NodeNotFoundError: If the path isn't mirrored
        """
        validate_path(path)
        self._check_expired()
        return self._mirror.get_children(path)

    # --------------------------------------------------------------------------
    # Mutations, issued remotely
    # --------------------------------------------------------------------------

    def create(
        self,
        path: str,
        mode: CreateMode = CreateMode.PERSISTENT,
        data: bytes = b"",
    ) -> bool:
        """
        Create a node, creating any missing ancestors as persistent nodes.

        For sequential modes, a new node is always created with a 10-digit
        sequence number appended to `path`.

        :param path: Path of node to create
        :param mode: Mode of the node itself; ancestors are always persistent
        :param data: Initial data of the node
        :returns: Whether a node was created; `False` if it already existed
        """
        validate_path(path)
        self._check_expired()

        if path == ROOT:
            return False

        for ancestor in iter_ancestors(path):
            try:
                self._client.create(ancestor)
            except NodeExistsError:
                pass

        try:
            created = self._client.create(path, data, mode)
        except NodeExistsError:
            self._logger.debug(f"Not created, already exists: {path}")
            return False

        self._logger.info(f"Created: '{created}' ({mode.name.lower()})")
        return True

    def set_data(self, path: str, expected_version: int, data: bytes) -> Stat:
        """
        Conditionally write a node's data.

        :raises VersionConflictError: If `expected_version` doesn't match
        :raises NodeNotFoundError: If the node doesn't exist
        :returns: Stat of the node after the write
        """
        validate_path(path)
        self._check_expired()

        stat = self._client.set_data(path, data, expected_version)
        self._logger.debug(f"Set data of {path}: version {stat.version}")
        return stat

    def delete(self, path: str):
        """
        Delete a node along with all of its descendants.
        """
        validate_path(path)
        self._check_expired()

        if path == ROOT:
            raise InvalidPathError(path, "root may not be deleted")

        self._delete_recursive(path)

    def trim(self, path: str):
        """
        Delete all descendants of a node, keeping the node itself.
        """
        validate_path(path)
        self._check_expired()

        for name in self._client.get_children(path):
            self.delete(join_path(path, name))

    def prune(self, path: str) -> str:
        """
        Delete a node, then each ancestor left without children.

        :returns: First ancestor which still has children, or the root
        """
        self.delete(path)

        parent = get_parent(path)
        assert parent is not None

        while parent != ROOT:
            try:
                if self._client.get_children(parent):
                    return parent
                self._client.delete(parent)
            except NotEmptyError:
                # child added concurrently
                return parent
            except NodeNotFoundError:
                pass

            self._logger.debug(f"Pruned: {parent}")

            grandparent = get_parent(parent)
            assert grandparent is not None
            parent = grandparent

        return ROOT

    def _delete_recursive(self, path: str):
        """
        Delete descendants deepest first, then the node. Nodes which vanish
        concurrently are skipped.
        """
        try:
            children = self._client.get_children(path)
        except NodeNotFoundError:
            return

        for name in children:
            self._delete_recursive(join_path(path, name))

        try:
            self._client.delete(path)
        except NodeNotFoundError:
            pass
        except NotEmptyError:
            # child added concurrently; retry
            self._delete_recursive(path)
            return

        self._logger.debug(f"Deleted: {path}")

    def _check_expired(self):
        if self._dispatcher.expired:
            raise SessionExpiredError("Session expired; mirror was invalidated")
