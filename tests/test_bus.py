"""Tests for pi.view.bus.EventBus."""

from __future__ import annotations

from pi.view.bus import FOCUS_CHANGED, STATE_CHANGED, EventBus


class TestEventBus:
    def test_publish_to_topic(self) -> None:
        bus = EventBus()
        got: list = []
        bus.subscribe(STATE_CHANGED, got.append)
        assert bus.publish(STATE_CHANGED, {"a": 1}) == 1
        assert bus.publish(FOCUS_CHANGED, "x") == 0
        assert got == [{"a": 1}]

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        got: list = []
        unsubscribe = bus.subscribe("t", got.append)
        unsubscribe()
        unsubscribe()
        bus.publish("t", 1)
        assert got == []

    def test_failing_listener_does_not_block_others(self) -> None:
        bus = EventBus()
        got: list = []

        def bad(payload: object) -> None:
            raise RuntimeError("listener")

        bus.subscribe("t", bad)
        bus.subscribe("t", got.append)
        assert bus.publish("t", 2) == 1
        assert got == [2]

    def test_clear(self) -> None:
        bus = EventBus()
        got: list = []
        bus.subscribe("t", got.append)
        bus.clear()
        bus.publish("t", 1)
        assert got == []
