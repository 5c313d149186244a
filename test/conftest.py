import logging
import threading
import time
from typing import Callable, Generator

from pytest import Config, FixtureRequest, fixture

from zoosync import (
    Event,
    EventType,
    MemoryClient,
    MemoryNamespace,
    ZooSync,
)

logging.basicConfig(level=logging.WARNING)

WAIT_TIMEOUT = 5.0
"""
Seconds to wait for the mirror to converge.
"""

RETRY_DELAY = 0.01

RESERVED_PATHS = ["/", "/zookeeper", "/zookeeper/quota"]

MARKERS = [
    "skip_watch",
]


def pytest_configure(config: Config) -> None:
    for marker in MARKERS:
        config.addinivalue_line("markers", marker)


class EventRecorder:
    """
    Listener which records events for testcases to verify.
    """

    events: list[Event]

    def __init__(self):
        self.events = []
        self._cond = threading.Condition()

    def process(self, event: Event):
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def clear(self):
        with self._cond:
            self.events.clear()

    def wait_for(self, count: int, timeout: float = WAIT_TIMEOUT) -> list[Event]:
        """
        Wait until at least `count` events were recorded, returning a
        snapshot of them.
        """
        with self._cond:
            assert self._cond.wait_for(
                lambda: len(self.events) >= count, timeout
            ), f"Got {len(self.events)} events, expected {count}: {self.events}"
            return list(self.events)

    def get_paths(self, event_type: EventType) -> list[str]:
        with self._cond:
            return [e.path for e in self.events if e.type is event_type]


def wait_until(
    predicate: Callable[[], bool], timeout: float = WAIT_TIMEOUT
) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@fixture(name="wait_until")
def wait_until_fixture() -> Callable[..., bool]:
    """
    Poll a predicate until it holds or times out.
    """
    return wait_until


@fixture
def namespace() -> MemoryNamespace:
    return MemoryNamespace()


@fixture
def client(namespace: MemoryNamespace) -> Generator[MemoryClient, None, None]:
    client = MemoryClient(namespace)
    yield client
    client.close()


@fixture
def other_client(
    namespace: MemoryNamespace,
) -> Generator[MemoryClient, None, None]:
    """
    Second session on the same namespace, for changes made by other parties.
    """
    client = MemoryClient(namespace)
    yield client
    client.close()


@fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@fixture
def sync(
    request: FixtureRequest, client: MemoryClient, recorder: EventRecorder
) -> Generator[ZooSync, None, None]:
    """
    Mirror with recorder registered, fully loaded unless marked with
    `skip_watch`.
    """
    with ZooSync(client, retry_delay=RETRY_DELAY) as sync:
        sync.add_listener(recorder)

        if not request.node.get_closest_marker("skip_watch"):
            sync.watch()
            assert sync.wait_loaded(WAIT_TIMEOUT)

        yield sync
