"""Tests for terrarium.signals - SignalBus."""
from __future__ import annotations

from terrarium.signals import SignalBus


class TestSubscribe:
    def test_subscribe_and_flush(self) -> None:
        bus = SignalBus()
        received: list[tuple[str, dict]] = []
        bus.subscribe("spawn", lambda n, d: received.append((n, d)))
        bus.publish("spawn", eid=1)
        bus.flush()
        assert received == [("spawn", {"eid": 1})]

    def test_unsubscribe(self) -> None:
        bus = SignalBus()
        received: list[str] = []

        def handler(name: str, data: dict) -> None:
            received.append(name)

        bus.subscribe("spawn", handler)
        bus.unsubscribe("spawn", handler)
        bus.publish("spawn")
        bus.flush()
        assert received == []

    def test_unsubscribe_unknown_is_noop(self) -> None:
        bus = SignalBus()
        bus.unsubscribe("nothing", lambda n, d: None)
        bus.subscribe("x", lambda n, d: None)
        bus.unsubscribe("x", lambda n, d: None)

    def test_no_subscribers(self) -> None:
        bus = SignalBus()
        bus.publish("orphan", x=1)
        bus.flush()
        assert bus.pending() == 0


class TestQueue:
    def test_nothing_delivered_before_flush(self) -> None:
        bus = SignalBus()
        received: list[str] = []
        bus.subscribe("a", lambda n, d: received.append(n))
        bus.publish("a")
        assert received == []
        assert bus.pending() == 1

    def test_order_preserved(self) -> None:
        bus = SignalBus()
        received: list[str] = []
        for name in ("a", "b", "c"):
            bus.subscribe(name, lambda n, d: received.append(n))
        bus.publish("b")
        bus.publish("a")
        bus.publish("c")
        bus.flush()
        assert received == ["b", "a", "c"]

    def test_publish_during_flush_deferred(self) -> None:
        bus = SignalBus()
        received: list[str] = []

        def chain(name: str, data: dict) -> None:
            received.append(name)
            bus.publish("second")

        bus.subscribe("first", chain)
        bus.subscribe("second", lambda n, d: received.append(n))
        bus.publish("first")
        bus.flush()
        assert received == ["first"]
        bus.flush()
        assert received == ["first", "second"]

    def test_unsubscribe_during_flush(self) -> None:
        bus = SignalBus()
        received: list[str] = []

        def once(name: str, data: dict) -> None:
            received.append(name)
            bus.unsubscribe("tick", once)

        bus.subscribe("tick", once)
        bus.subscribe("tick", lambda n, d: received.append("other"))
        bus.publish("tick")
        bus.flush()
        assert received == ["tick", "other"]

    def test_flush_returns_delivered_count(self) -> None:
        bus = SignalBus()
        bus.publish("a")
        bus.publish("b")
        assert bus.flush() == 2
        assert bus.flush() == 0


class TestMute:
    def test_publish_discarded_while_muted(self) -> None:
        bus = SignalBus()
        received: list[str] = []
        bus.subscribe("a", lambda n, d: received.append(n))
        bus.mute()
        assert bus.is_muted
        bus.publish("a")
        bus.publish("a")
        bus.unmute()
        assert not bus.is_muted
        assert bus.pending() == 0
        assert bus.discarded == 2
        bus.flush()
        assert received == []

    def test_queue_before_mute_survives(self) -> None:
        """Muting only affects what is published while muted."""
        bus = SignalBus()
        received: list[str] = []
        bus.subscribe("a", lambda n, d: received.append(n))
        bus.publish("a")
        bus.mute()
        bus.publish("a")
        bus.unmute()
        bus.flush()
        assert received == ["a"]

    def test_publish_after_unmute_queued(self) -> None:
        bus = SignalBus()
        bus.mute()
        bus.unmute()
        bus.publish("a")
        assert bus.pending() == 1
