"""
Value types shared by the mirror, the remote clients and consumers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from pydantic import BaseModel, ConfigDict
from rich.markup import escape

__all__ = [
    "Stat",
    "CreateMode",
    "EventType",
    "Event",
    "WatchEventType",
    "WatchedEvent",
    "ConnectionState",
]


class Stat(BaseModel):
    """
    Metadata of a node as maintained by the coordination service.
    """

    model_config = ConfigDict(frozen=True)

    czxid: int = 0
    """Transaction id which created the node"""

    mzxid: int = 0
    """Transaction id which last modified the node's data"""

    pzxid: int = 0
    """Transaction id which last modified the node's children"""

    ctime: int = 0
    """Creation time, milliseconds since epoch"""

    mtime: int = 0
    """Last modification time, milliseconds since epoch"""

    version: int = 0
    """Number of changes to the node's data"""

    cversion: int = 0
    """Number of changes to the node's children"""

    aversion: int = 0
    """Number of changes to the node's ACL"""

    ephemeral_owner: int = 0
    """Session id of the owner if ephemeral, 0 otherwise"""

    data_length: int = 0
    num_children: int = 0

    @property
    def is_ephemeral(self) -> bool:
        return self.ephemeral_owner != 0


class CreateMode(Enum):
    """
    Mode in which to create a node.
    """

    PERSISTENT = auto()
    """Node persists until explicitly deleted"""

    EPHEMERAL = auto()
    """Node is deleted when the creating session ends"""

    PERSISTENT_SEQUENTIAL = auto()
    """Persistent, with a server-assigned sequence suffix"""

    EPHEMERAL_SEQUENTIAL = auto()
    """Ephemeral, with a server-assigned sequence suffix"""

    @property
    def ephemeral(self) -> bool:
        return self in {CreateMode.EPHEMERAL, CreateMode.EPHEMERAL_SEQUENTIAL}

    @property
    def sequential(self) -> bool:
        return self in {
            CreateMode.PERSISTENT_SEQUENTIAL,
            CreateMode.EPHEMERAL_SEQUENTIAL,
        }


class EventType(Enum):
    """
    Type of a mirror event.
    """

    ADD = "add"
    """Node became known to the mirror"""

    UPDATE = "update"
    """Node's data or version changed"""

    DELETE = "delete"
    """Node was removed from the mirror"""

    def __str__(self) -> str:
        color_map = {
            EventType.ADD: "bright_green",
            EventType.UPDATE: "bright_yellow",
            EventType.DELETE: "red",
        }

        start = escape("[")
        end = escape("]")
        return f"{start}[{color_map[self]}]{self.value}[/{color_map[self]}]{end}"


@dataclass(frozen=True)
class Event:
    """
    Change to the mirror, delivered to listeners in a single global order.
    """

    type: EventType
    path: str

    def __str__(self) -> str:
        return f"{self.type} {escape(self.path)}"


class WatchEventType(Enum):
    """
    Type of a one-shot watch notification from the coordination service.
    """

    CREATED = auto()
    DELETED = auto()
    CHANGED = auto()
    CHILD = auto()


@dataclass(frozen=True)
class WatchedEvent:
    """
    Notification delivered to a watch callback.
    """

    type: WatchEventType
    path: str


class ConnectionState(Enum):
    """
    State of the connection to the coordination service.
    """

    CONNECTED = auto()
    """Connected with a valid session"""

    SUSPENDED = auto()
    """Connection lost, session may still be recovered"""

    LOST = auto()
    """Session expired or closed; ephemeral nodes are gone"""
