"""
Boundary to the remote coordination service.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from ..types import ConnectionState, CreateMode, Stat, WatchedEvent

__all__ = [
    "BaseClient",
    "WatchCallback",
    "StateListener",
]

WatchCallback = Callable[[WatchedEvent], None]
"""
One-shot watch callback. Invoked at most once per registration; must not
block.
"""

StateListener = Callable[[ConnectionState], None]
"""
Connection state callback. Must not block.
"""


class BaseClient(ABC):
    """
    Primitives consumed from the coordination service.

    Watches are one-shot: a registered callback fires at most once and must be
    re-registered to observe further changes. Callbacks are invoked on a
    thread owned by the client, never on the caller's thread.

    Implementations raise the exceptions in {mod}`zoosync.core.exceptions`:
    {obj}`NodeNotFoundError`, {obj}`NodeExistsError`,
    {obj}`VersionConflictError`, {obj}`NotEmptyError`,
    {obj}`ConnectionLossError` and {obj}`SessionExpiredError`.
    """

    @property
    @abstractmethod
    def session_id(self) -> int:
        """
        Id of the current session; owner id of ephemeral nodes it creates.
        """
        ...

    @abstractmethod
    def exists(self, path: str, watch: WatchCallback | None = None) -> Stat | None:
        """
        Get the node's stat, or `None` if it doesn't exist. The watch is
        registered in either case and fires upon creation, deletion or data
        change.
        """
        ...

    @abstractmethod
    def get_data(
        self, path: str, watch: WatchCallback | None = None
    ) -> tuple[bytes, Stat]:
        """
        Get the node's data and stat. The watch fires upon deletion or data
        change.

        :raises NodeNotFoundError: If the node doesn't exist; no watch is registered
        """
        ...

    @abstractmethod
    def get_children(
        self, path: str, watch: WatchCallback | None = None
    ) -> list[str]:
        """
        Get names of the node's children. The watch fires upon deletion of
        the node or a change to its set of children.

        :raises NodeNotFoundError: If the node doesn't exist; no watch is registered
        """
        ...

    @abstractmethod
    def create(
        self,
        path: str,
        data: bytes = b"",
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> str:
        """
        Create a node whose parent exists.

        :returns: Actual path created, which differs from `path` for sequential modes
        :raises NodeExistsError: If the node already exists
        :raises NodeNotFoundError: If the parent doesn't exist
        """
        ...

    @abstractmethod
    def set_data(self, path: str, data: bytes, version: int = -1) -> Stat:
        """
        Write the node's data if its version matches, or unconditionally if
        `version` is -1.

        :raises VersionConflictError: If the version doesn't match
        """
        ...

    @abstractmethod
    def delete(self, path: str, version: int = -1) -> None:
        """
        Delete a single childless node.

        :raises NotEmptyError: If the node has children
        """
        ...

    @abstractmethod
    def add_state_listener(self, listener: StateListener) -> None:
        """
        Register a callback for connection state changes.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """
        End the session; its ephemeral nodes are deleted.
        """
        ...
