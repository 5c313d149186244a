"""
Listener registry and event delivery.
"""

from __future__ import annotations

import logging
import threading
from logging import Logger
from typing import Callable, Protocol, runtime_checkable

from .types import Event

__all__ = [
    "Listener",
    "ExpiryListener",
    "EventBus",
]


@runtime_checkable
class Listener(Protocol):
    """
    Receives mirror events. Invoked synchronously on the dispatcher's worker;
    a blocking listener stalls all further mirror convergence.
    """

    def process(self, event: Event) -> None:
        ...


ExpiryListener = Callable[[], None]
"""
Invoked once when the session expires and the mirror is invalidated.
"""


class EventBus:
    """
    Listeners owned by a single {obj}`ZooSync` instance. Events are fanned out
    to listeners in registration order.
    """

    _listeners: list[Callable[[Event], None]]
    _expiry_listeners: list[ExpiryListener]
    _lock: threading.Lock
    _logger: Logger

    def __init__(self, logger: Logger | None = None):
        self._listeners = []
        self._expiry_listeners = []
        self._lock = threading.Lock()
        self._logger = logger or logging.getLogger()

    def __len__(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: Listener | Callable[[Event], None]):
        """
        Register a {obj}`Listener` or a plain callable taking an
        {obj}`Event`.
        """
        callback = _get_callback(listener)
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, listener: Listener | Callable[[Event], None]):
        callback = _get_callback(listener)
        with self._lock:
            self._listeners.remove(callback)

    def add_expiry_listener(self, listener: ExpiryListener):
        with self._lock:
            self._expiry_listeners.append(listener)

    def emit(self, event: Event):
        """
        Deliver an event to every listener. A failing listener is logged and
        doesn't affect delivery to the others.
        """
        with self._lock:
            listeners = list(self._listeners)

        self._logger.debug(f"Emitting: {event.type.value} {event.path}")

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                self._logger.exception(
                    f"Listener {listener} failed processing {event.type.value} {event.path}"
                )

    def emit_expired(self):
        with self._lock:
            listeners = list(self._expiry_listeners)

        for listener in listeners:
            try:
                listener()
            except Exception:
                self._logger.exception(f"Expiry listener {listener} failed")


def _get_callback(
    listener: Listener | Callable[[Event], None],
) -> Callable[[Event], None]:
    if isinstance(listener, Listener):
        return listener.process

    assert callable(listener), f"Not a listener: {listener}"
    return listener
