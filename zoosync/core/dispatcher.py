"""
Watch dispatcher: keeps the mirror a faithful, ordered replica of the remote
namespace.

All mirror writes happen on a single worker thread which consumes a queue of
messages. Remote watch callbacks and connection state callbacks only enqueue
messages, so notifications are handled strictly one at a time regardless of
the order or thread in which the remote client delivers them.

Watches are one-shot. Every handling step re-registers watches for each path
it visits, as the last remote interaction with that path. A step interrupted
by connection loss is retried until it succeeds, since its watch was already
consumed; only session expiry ends mirroring.

```{note}
Back-to-back writes to the same node may land before its watch is re-armed;
they are then observed as a single `update` event carrying the latest data.
```
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from logging import Logger
from queue import Queue

from .client import BaseClient
from .exceptions import (
    AlreadyWatchingError,
    ConnectionLossError,
    NodeNotFoundError,
    SessionExpiredError,
)
from .listeners import EventBus
from .mirror import Mirror
from .paths import ROOT, get_parent, join_path
from .types import ConnectionState, Event, EventType, WatchedEvent

__all__ = [
    "WatchDispatcher",
]

DEFAULT_RETRY_DELAY = 0.1
"""
Seconds to wait before retrying a step which failed due to connection loss.
"""

DEFAULT_MAX_RETRIES = 5
"""
Number of attempts at `retry_delay` before backing off exponentially.
"""

MAX_RETRY_DELAY = 10.0
"""
Upper bound of the delay between attempts while backing off.
"""

MIN_BACKOFF_DELAY = 0.01
"""
Delay doubled by the first backoff when `retry_delay` is shorter.
"""


@dataclass(frozen=True)
class _Load:
    """Initial traversal from the root."""


@dataclass(frozen=True)
class _Notification:
    """Watch fired for a path."""

    path: str


@dataclass(frozen=True)
class _Expire:
    """Session permanently lost."""


@dataclass(frozen=True)
class _Stop:
    """Worker shutdown."""


_Message = _Load | _Notification | _Expire | _Stop


class WatchDispatcher:
    """
    Owns the worker thread which applies remote changes to the mirror and
    emits events.
    """

    _client: BaseClient
    _mirror: Mirror
    _bus: EventBus
    _queue: Queue[_Message]
    _thread: threading.Thread | None = None
    _loaded: threading.Event
    _wakeup: threading.Event
    _expired: bool = False
    _stopping: bool = False
    _lost: bool = False
    _logger: Logger

    def __init__(
        self,
        client: BaseClient,
        mirror: Mirror,
        bus: EventBus,
        *,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        logger: Logger | None = None,
    ):
        assert max_retries >= 1

        self._client = client
        self._mirror = mirror
        self._bus = bus
        self._retry_delay = retry_delay
        self._max_retries = max_retries
        self._logger = logger or logging.getLogger()
        self._queue = Queue()
        self._loaded = threading.Event()
        self._wakeup = threading.Event()

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def loaded(self) -> bool:
        return self._loaded.is_set()

    def start(self):
        """
        Start the worker and queue the initial traversal.

        :raises AlreadyWatchingError: If already started
        """
        if self._thread is not None:
            raise AlreadyWatchingError()

        self._client.add_state_listener(self._on_state)

        self._thread = threading.Thread(
            target=self._run,
            name="zoosync-dispatcher",
            daemon=True,
        )
        self._thread.start()
        self._queue.put(_Load())

    def stop(self):
        """
        Stop the worker after already queued messages are handled.
        """
        if self._thread is None:
            return

        # abandon a step waiting for the connection to recover
        self._stopping = True
        self._wakeup.set()

        self._queue.put(_Stop())

        if threading.current_thread() is not self._thread:
            self._thread.join()

    def wait_loaded(self, timeout: float | None = None) -> bool:
        """
        Block until the initial traversal completed or the session expired.

        :returns: Whether the traversal completed within the timeout
        """
        return self._loaded.wait(timeout)

    # --------------------------------------------------------------------------
    # Remote client callbacks; invoked on client threads
    # --------------------------------------------------------------------------

    def _on_watch(self, event: WatchedEvent):
        self._queue.put(_Notification(event.path))

    def _on_state(self, state: ConnectionState):
        if state is ConnectionState.LOST:
            self._lost = True
            self._wakeup.set()
            self._queue.put(_Expire())
        elif state is ConnectionState.SUSPENDED:
            self._logger.warning("Connection suspended; mirror may be stale")
        else:
            self._logger.info("Connection established")

            # retry a pending step right away
            self._wakeup.set()

    # --------------------------------------------------------------------------
    # Worker
    # --------------------------------------------------------------------------

    def _run(self):
        while True:
            message = self._queue.get()

            if isinstance(message, _Stop):
                self._logger.debug("Dispatcher stopped")
                return

            if isinstance(message, _Expire):
                self._invalidate()
                return

            try:
                self._handle(message)
            except SessionExpiredError:
                self._invalidate()
                return

    def _handle(self, message: _Load | _Notification):
        """
        Handle a message, retrying the whole step upon connection loss until
        it succeeds. The first `max_retries` attempts are spaced by
        `retry_delay`, after which the delay doubles up to
        {obj}`MAX_RETRY_DELAY`.

        :raises SessionExpiredError: If the session was lost while retrying
        """
        attempt = 0
        delay = self._retry_delay

        while True:
            attempt += 1

            try:
                if isinstance(message, _Load):
                    self._appear(ROOT)
                    self._loaded.set()
                    self._logger.debug(
                        f"Loaded {len(self._mirror)} nodes from remote namespace"
                    )
                else:
                    self._process(message.path)
                return
            except ConnectionLossError as e:
                if attempt < self._max_retries:
                    self._logger.warning(
                        f"Connection lost handling {message} (attempt {attempt}/{self._max_retries}): {e}"
                    )
                elif attempt == self._max_retries:
                    self._logger.error(
                        f"Connection still lost handling {message} after {attempt} attempts; backing off, mirror may be stale"
                    )

                if attempt >= self._max_retries:
                    delay = min(
                        max(delay, MIN_BACKOFF_DELAY) * 2,
                        max(MAX_RETRY_DELAY, self._retry_delay),
                    )

            self._wakeup.wait(delay)
            self._wakeup.clear()

            if self._lost:
                raise SessionExpiredError("Session lost while retrying")

            if self._stopping:
                self._logger.debug(f"Abandoning {message}: dispatcher stopping")
                return

    def _process(self, path: str):
        """
        Reconcile a single path whose watch fired.
        """
        if path not in self._mirror:
            parent = get_parent(path)

            if parent is not None and parent not in self._mirror:
                # discovered upon appearance of its parent
                self._logger.debug(f"Ignoring notification for orphan: {path}")
                return

            self._appear(path)
            return

        # re-arm existence watch
        if self._client.exists(path, watch=self._on_watch) is None:
            self._disappear(path)
            return

        try:
            data, stat = self._client.get_data(path, watch=self._on_watch)
            children = self._client.get_children(path, watch=self._on_watch)
        except NodeNotFoundError:
            self._disappear(path)
            return

        if self._mirror.get_stat(path).czxid != stat.czxid:
            # deleted and re-created since last visit
            self._disappear(path)
            self._appear(path)
            return

        if self._mirror.update(path, data, stat):
            self._emit(EventType.UPDATE, path)

        self._reconcile(path, children)

    def _appear(self, path: str):
        """
        Mirror a node which exists remotely, then its children, pre-order.
        """
        try:
            data, stat = self._client.get_data(path, watch=self._on_watch)
        except NodeNotFoundError:
            # vanished before we got to it
            return

        if path in self._mirror and self._mirror.get_stat(path).czxid != stat.czxid:
            self._disappear(path)

        if path in self._mirror:
            # only when retrying a partially completed step
            if self._mirror.update(path, data, stat):
                self._emit(EventType.UPDATE, path)
        else:
            self._mirror.add(path, data, stat)
            self._emit(EventType.ADD, path)

        try:
            children = self._client.get_children(path, watch=self._on_watch)
        except NodeNotFoundError:
            self._disappear(path)
            return

        for name in children:
            self._appear(join_path(path, name))

    def _disappear(self, path: str):
        """
        Remove a node and its mirrored descendants, post-order.
        """
        if path not in self._mirror:
            return

        for child in self._mirror.get_child_paths(path):
            self._disappear(child)

        self._mirror.remove(path)
        self._emit(EventType.DELETE, path)

    def _reconcile(self, path: str, children: list[str]):
        """
        Apply differences between mirrored and remote children of a node.
        """
        known = set(self._mirror.get_children(path))
        remote = set(children)

        for name in sorted(known - remote):
            self._disappear(join_path(path, name))

        for name in sorted(remote - known):
            self._appear(join_path(path, name))

    def _invalidate(self):
        """
        Discard the mirror after the session expired.
        """
        if self._expired:
            return

        self._logger.error(
            f"Session expired; invalidating mirror of {len(self._mirror)} nodes"
        )

        self._expired = True
        self._mirror.clear()

        # unblock anyone waiting on the initial traversal
        self._loaded.set()

        self._bus.emit_expired()

    def _emit(self, event_type: EventType, path: str):
        self._bus.emit(Event(type=event_type, path=path))
