import threading
from typing import Callable

from pytest import raises

from zoosync import *


class WatchRecorder:
    """
    Watch callback recording notifications.
    """

    def __init__(self):
        self.events: list[WatchedEvent] = []
        self.threads: set[str] = set()

    def __call__(self, event: WatchedEvent):
        self.threads.add(threading.current_thread().name)
        self.events.append(event)


def test_reserved(client: MemoryClient):
    assert client.namespace.paths == {"/", "/zookeeper", "/zookeeper/quota"}
    assert client.get_children("/") == ["zookeeper"]
    assert client.exists("/zookeeper/quota") is not None


def test_crud(client: MemoryClient):
    assert client.create("/a", b"1") == "/a"

    data, stat = client.get_data("/a")
    assert data == b"1"
    assert stat.version == 0
    assert stat.data_length == 1
    assert not stat.is_ephemeral

    stat = client.set_data("/a", b"22", version=0)
    assert stat.version == 1
    assert stat.data_length == 2

    with raises(VersionConflictError) as e:
        client.set_data("/a", b"3", version=0)
    assert e.value.path == "/a"

    # unconditional
    assert client.set_data("/a", b"3").version == 2

    root_stat = client.exists("/")
    assert root_stat is not None
    assert root_stat.num_children == 2

    client.delete("/a")
    assert client.exists("/a") is None


def test_errors(client: MemoryClient):
    client.create("/a")
    client.create("/a/b")

    with raises(NodeExistsError):
        client.create("/a")

    with raises(NodeNotFoundError) as e:
        client.create("/x/y")
    assert e.value.path == "/x"

    with raises(NodeNotFoundError):
        client.get_data("/x")

    with raises(NotEmptyError):
        client.delete("/a")

    with raises(VersionConflictError):
        client.delete("/a/b", version=3)

    with raises(InvalidPathError):
        client.delete("/")

    with raises(InvalidPathError):
        client.create("a")


def test_sequential(client: MemoryClient):
    client.create("/seq")

    first = client.create("/seq/n-", mode=CreateMode.PERSISTENT_SEQUENTIAL)
    second = client.create("/seq/n-", mode=CreateMode.PERSISTENT_SEQUENTIAL)

    assert first == "/seq/n-0000000000"
    assert second == "/seq/n-0000000001"

    # sequence derives from the parent's child version, so it never repeats
    client.delete(second)
    third = client.create("/seq/n-", mode=CreateMode.PERSISTENT_SEQUENTIAL)
    assert third == "/seq/n-0000000003"


def test_ephemeral(namespace: MemoryNamespace, client: MemoryClient):
    other = MemoryClient(namespace)
    other.create("/eph", mode=CreateMode.EPHEMERAL)

    stat = client.exists("/eph")
    assert stat is not None
    assert stat.is_ephemeral
    assert stat.ephemeral_owner == other.session_id
    assert other.session_id != client.session_id

    with raises(NoChildrenForEphemeralsError):
        client.create("/eph/child")

    other.close()
    assert client.exists("/eph") is None


def test_watches_one_shot(client: MemoryClient, wait_until: Callable):
    watch = WatchRecorder()
    client.create("/a")

    client.get_data("/a", watch=watch)
    client.set_data("/a", b"1")
    client.set_data("/a", b"2")

    assert wait_until(lambda: len(watch.events) == 1)

    # re-arm
    client.get_data("/a", watch=watch)
    client.set_data("/a", b"3")
    assert wait_until(lambda: len(watch.events) == 2)

    assert watch.events == [
        WatchedEvent(type=WatchEventType.CHANGED, path="/a"),
        WatchedEvent(type=WatchEventType.CHANGED, path="/a"),
    ]

    # delivered on the client's own thread
    assert watch.threads == {f"zoosync-memory-{client.session_id:x}"}


def test_watch_types(client: MemoryClient, wait_until: Callable):
    watch = WatchRecorder()

    # existence watch on missing node
    assert client.exists("/a", watch=watch) is None
    client.get_children("/", watch=watch)

    client.create("/a")
    assert wait_until(lambda: len(watch.events) == 2)

    client.get_children("/a", watch=watch)
    client.exists("/a", watch=watch)
    client.delete("/a")

    # same callback for multiple watches on a path fires once
    assert wait_until(lambda: len(watch.events) == 3)

    assert watch.events == [
        WatchedEvent(type=WatchEventType.CREATED, path="/a"),
        WatchedEvent(type=WatchEventType.CHILD, path="/"),
        WatchedEvent(type=WatchEventType.DELETED, path="/a"),
    ]


def test_watch_other_session(
    client: MemoryClient, other_client: MemoryClient, wait_until: Callable
):
    watch = WatchRecorder()

    client.get_children("/", watch=watch)
    other_client.create("/a")

    assert wait_until(lambda: len(watch.events) == 1)
    assert watch.events[0].path == "/"


def test_connection_loss(client: MemoryClient):
    client.inject_connection_loss(2)

    with raises(ConnectionLossError):
        client.exists("/")

    with raises(ConnectionLossError):
        client.get_children("/")

    assert client.exists("/") is not None


def test_expire(namespace: MemoryNamespace, wait_until: Callable):
    client = MemoryClient(namespace)
    states: list[ConnectionState] = []
    client.add_state_listener(states.append)

    client.create("/eph", mode=CreateMode.EPHEMERAL)
    client.expire()

    assert wait_until(lambda: states == [ConnectionState.LOST])
    assert "/eph" not in namespace.paths

    with raises(SessionExpiredError):
        client.exists("/")

    client.close()
    assert states == [ConnectionState.LOST]
