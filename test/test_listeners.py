import logging

from pytest import LogCaptureFixture, raises

from zoosync import *

EVENT = Event(type=EventType.ADD, path="/a")


class Collector:
    def __init__(self):
        self.events: list[Event] = []

    def process(self, event: Event):
        self.events.append(event)


def test_protocol():
    assert isinstance(Collector(), Listener)
    assert not isinstance(lambda event: None, Listener)


def test_order():
    bus = EventBus()
    calls: list[str] = []

    bus.add_listener(lambda event: calls.append(f"first {event.path}"))
    bus.add_listener(lambda event: calls.append(f"second {event.path}"))

    bus.emit(EVENT)
    bus.emit(Event(type=EventType.DELETE, path="/b"))

    assert calls == ["first /a", "second /a", "first /b", "second /b"]


def test_listener_object():
    bus = EventBus()
    collector = Collector()

    bus.add_listener(collector)
    assert len(bus) == 1

    bus.emit(EVENT)
    assert collector.events == [EVENT]

    bus.remove_listener(collector)
    assert len(bus) == 0

    bus.emit(EVENT)
    assert collector.events == [EVENT]


def test_remove_unknown():
    bus = EventBus()

    with raises(ValueError):
        bus.remove_listener(Collector())


def test_failing_listener(caplog: LogCaptureFixture):
    bus = EventBus()
    collector = Collector()

    def fail(event: Event):
        raise RuntimeError("listener failure")

    bus.add_listener(fail)
    bus.add_listener(collector)

    with caplog.at_level(logging.ERROR):
        bus.emit(EVENT)

    # delivery continues with remaining listeners
    assert collector.events == [EVENT]
    assert "failed processing add /a" in caplog.text


def test_expiry_listeners():
    bus = EventBus()
    calls: list[int] = []

    def fail():
        raise RuntimeError("expiry listener failure")

    bus.add_expiry_listener(fail)
    bus.add_expiry_listener(lambda: calls.append(1))

    bus.emit_expired()
    assert calls == [1]


def test_event_str():
    text = str(EVENT)
    assert "add" in text
    assert text.endswith(" /a")
