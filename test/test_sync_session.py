"""
Verify lifecycle of the mirror: watching, connection loss and session
expiry.
"""
import logging
import time
from typing import Callable

from pytest import LogCaptureFixture, mark, raises

from zoosync import *

from conftest import RETRY_DELAY, WAIT_TIMEOUT, EventRecorder


def test_watch_once(sync: ZooSync):
    with raises(AlreadyWatchingError):
        sync.watch()


@mark.skip_watch
def test_wait_not_watching(sync: ZooSync, recorder: EventRecorder):
    assert not sync.wait_loaded(0.01)
    assert sync.get_nodes() == set()
    assert recorder.events == []


def test_context(client: MemoryClient, recorder: EventRecorder):
    with ZooSync(client) as sync:
        sync.add_listener(recorder)
        sync.watch()
        assert sync.wait_loaded(WAIT_TIMEOUT)

    # no longer processing notifications
    client.create("/a")
    client.create("/b")

    assert [e.path for e in recorder.events] == [
        "/",
        "/zookeeper",
        "/zookeeper/quota",
    ]

    # client remains usable
    assert client.exists("/a") is not None


@mark.skip_watch
def test_failing_listener(
    sync: ZooSync, recorder: EventRecorder, caplog: LogCaptureFixture
):
    def fail(event: Event):
        raise RuntimeError(f"cannot process {event.path}")

    sync.add_listener(fail)

    with caplog.at_level(logging.ERROR):
        sync.watch()
        assert sync.wait_loaded(WAIT_TIMEOUT)

    assert len(recorder.events) == 3
    assert "cannot process /zookeeper" in caplog.text


def test_remove_listener(sync: ZooSync, recorder: EventRecorder):
    other = EventRecorder()
    sync.add_listener(other)
    sync.remove_listener(recorder)

    sync.create("/a")
    other.wait_for(1)

    assert len(recorder.events) == 3


def test_connection_loss(
    sync: ZooSync,
    client: MemoryClient,
    other_client: MemoryClient,
    recorder: EventRecorder,
    caplog: LogCaptureFixture,
):
    recorder.clear()

    # fail the first attempts at handling the next notification
    client.inject_connection_loss(3)

    with caplog.at_level(logging.WARNING):
        other_client.create("/a")
        other_client.create("/a/b")
        events = recorder.wait_for(2)

    assert events == [
        Event(type=EventType.ADD, path="/a"),
        Event(type=EventType.ADD, path="/a/b"),
    ]
    assert "Connection lost" in caplog.text
    assert not sync.expired


def test_connection_loss_backoff(
    client: MemoryClient,
    other_client: MemoryClient,
    recorder: EventRecorder,
    caplog: LogCaptureFixture,
    wait_until: Callable,
):
    with ZooSync(client, retry_delay=RETRY_DELAY, max_retries=2) as sync:
        sync.add_listener(recorder)
        sync.watch()
        assert sync.wait_loaded(WAIT_TIMEOUT)

        # outlasts the attempts at the initial delay
        client.inject_connection_loss(5)

        with caplog.at_level(logging.ERROR):
            other_client.create("/a")
            assert _wait_for_log(caplog, "Connection still lost")

        # root watch consumed by the failed step is re-armed upon recovery
        assert recorder.wait_for(4)[3] == Event(type=EventType.ADD, path="/a")

        other_client.create("/b")
        other_client.create("/c")

        assert wait_until(
            lambda: sync.get_nodes() == other_client.namespace.paths
        )
        assert {"/a", "/b", "/c"} <= sync.get_nodes()
        assert not sync.expired


def test_stop_while_retrying(
    sync: ZooSync,
    client: MemoryClient,
    other_client: MemoryClient,
    caplog: LogCaptureFixture,
):
    client.inject_connection_loss(1_000_000)

    with caplog.at_level(logging.WARNING):
        other_client.create("/a")
        assert _wait_for_log(caplog, "Connection lost")

    start = time.monotonic()
    sync.close()

    assert time.monotonic() - start < WAIT_TIMEOUT
    assert not sync.expired


def test_expiry_while_retrying(
    sync: ZooSync,
    client: MemoryClient,
    other_client: MemoryClient,
    caplog: LogCaptureFixture,
    wait_until: Callable,
):
    expired: list[bool] = []
    sync.add_expiry_listener(lambda: expired.append(True))

    client.inject_connection_loss(1_000_000)

    with caplog.at_level(logging.WARNING):
        other_client.create("/a")
        assert _wait_for_log(caplog, "Connection lost")

    client.expire()

    assert wait_until(lambda: expired == [True])
    assert sync.expired


def test_expiry(
    sync: ZooSync,
    client: MemoryClient,
    other_client: MemoryClient,
    wait_until: Callable,
    caplog: LogCaptureFixture,
):
    expired: list[bool] = []
    sync.add_expiry_listener(lambda: expired.append(True))

    sync.create("/eph", CreateMode.EPHEMERAL)
    sync.create("/persistent")

    with caplog.at_level(logging.ERROR):
        client.expire()
        assert wait_until(lambda: expired == [True])

    assert sync.expired
    assert "Session expired" in caplog.text

    # ephemeral nodes of this session are gone remotely
    assert other_client.exists("/eph") is None
    assert other_client.exists("/persistent") is not None

    # mirror is invalidated
    with raises(SessionExpiredError):
        sync.get_nodes()

    with raises(SessionExpiredError):
        sync.get_data("/persistent")

    with raises(SessionExpiredError):
        sync.create("/new")

    with raises(SessionExpiredError):
        sync.wait_loaded(0)

    assert other_client.exists("/new") is None


@mark.skip_watch
def test_expiry_before_load(
    sync: ZooSync, client: MemoryClient, wait_until: Callable
):
    client.expire()

    sync.watch()
    assert wait_until(lambda: sync.expired)

    with raises(SessionExpiredError):
        sync.wait_loaded(WAIT_TIMEOUT)


def test_expiry_other_mirror(
    sync: ZooSync,
    client: MemoryClient,
    other_client: MemoryClient,
    wait_until: Callable,
):
    sync.create("/eph", CreateMode.EPHEMERAL)

    recorder = EventRecorder()
    with ZooSync(other_client, retry_delay=RETRY_DELAY) as other_sync:
        other_sync.add_listener(recorder)
        other_sync.watch()
        assert other_sync.wait_loaded(WAIT_TIMEOUT)
        assert "/eph" in other_sync.get_nodes()

        client.expire()

        # observed as a regular deletion by the surviving session
        events = recorder.wait_for(5)
        assert events[-1] == Event(type=EventType.DELETE, path="/eph")
        assert wait_until(lambda: "/eph" not in other_sync.get_nodes())
        assert not other_sync.expired


def _wait_for_log(caplog: LogCaptureFixture, text: str) -> bool:
    deadline = time.monotonic() + WAIT_TIMEOUT
    while time.monotonic() < deadline:
        if text in caplog.text:
            return True
        time.sleep(0.005)
    return False
