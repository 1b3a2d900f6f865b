"""Tests for the registry EventBus."""

import asyncio
import logging
from typing import Any

import pytest

from widgetry.application.services.event_bus import EventBus
from widgetry.domain.entities import RegistryEvent


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


class TestSubscription:
    """Test on/emit/unsubscribe."""

    def test_emit_reaches_listeners_in_subscription_order(self, bus: EventBus) -> None:
        """Test every listener gets the payload, in order."""
        received: list[tuple[str, Any]] = []
        bus.on(RegistryEvent.WIDGET_LOADED, lambda data: received.append(("first", data)))
        bus.on(RegistryEvent.WIDGET_LOADED, lambda data: received.append(("second", data)))

        bus.emit(RegistryEvent.WIDGET_LOADED, {"id": "w"})

        assert received == [("first", {"id": "w"}), ("second", {"id": "w"})]

    def test_enum_and_string_names_are_interchangeable(self, bus: EventBus) -> None:
        """Test "widget:loaded" and RegistryEvent.WIDGET_LOADED are one event."""
        received: list[Any] = []
        bus.on("widget:loaded", received.append)

        bus.emit(RegistryEvent.WIDGET_LOADED, 1)

        assert received == [1]
        assert bus.listener_count(RegistryEvent.WIDGET_LOADED) == 1

    def test_unsubscribe_is_idempotent(self, bus: EventBus) -> None:
        """Test calling unsubscribe twice is harmless."""
        received: list[Any] = []
        unsubscribe = bus.on(RegistryEvent.WIDGET_ERROR, received.append)

        unsubscribe()
        unsubscribe()
        bus.emit(RegistryEvent.WIDGET_ERROR, "boom")

        assert received == []
        assert bus.listener_count(RegistryEvent.WIDGET_ERROR) == 0

    def test_failing_listener_is_isolated(
        self, bus: EventBus, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a raising listener doesn't stop later listeners or the emitter."""
        received: list[Any] = []

        def broken(data: Any) -> None:
            raise RuntimeError("listener bug")

        bus.on(RegistryEvent.WIDGET_LOADED, broken)
        bus.on(RegistryEvent.WIDGET_LOADED, received.append)

        with caplog.at_level(logging.ERROR):
            bus.emit(RegistryEvent.WIDGET_LOADED, "payload")

        assert received == ["payload"]
        assert "Error in registry event listener" in caplog.text

    def test_listener_may_unsubscribe_during_emit(self, bus: EventBus) -> None:
        """Test unsubscribing from inside a listener doesn't skip the others."""
        received: list[str] = []
        unsubscribe_holder: list[Any] = []

        def once(data: Any) -> None:
            received.append("once")
            unsubscribe_holder[0]()

        unsubscribe_holder.append(bus.on(RegistryEvent.WIDGET_LOADED, once))
        bus.on(RegistryEvent.WIDGET_LOADED, lambda data: received.append("always"))

        bus.emit(RegistryEvent.WIDGET_LOADED)
        bus.emit(RegistryEvent.WIDGET_LOADED)

        assert received == ["once", "always", "always"]


class TestAsyncListeners:
    """Test coroutine listeners are scheduled, not awaited."""

    async def test_async_listener_runs_as_task(self, bus: EventBus) -> None:
        """Test an async listener runs after emit() returns."""
        done = asyncio.Event()
        received: list[Any] = []

        async def listener(data: Any) -> None:
            received.append(data)
            done.set()

        bus.on(RegistryEvent.WIDGET_LOADED, listener)
        bus.emit(RegistryEvent.WIDGET_LOADED, "payload")

        await asyncio.wait_for(done.wait(), timeout=1)
        assert received == ["payload"]

    async def test_async_listener_failure_is_logged(
        self, bus: EventBus, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test a failing async listener is logged, not raised."""

        async def broken(data: Any) -> None:
            raise RuntimeError("async listener bug")

        bus.on(RegistryEvent.WIDGET_LOADED, broken)
        with caplog.at_level(logging.ERROR):
            bus.emit(RegistryEvent.WIDGET_LOADED)
            for _ in range(3):
                await asyncio.sleep(0)

        assert "Error in async registry event listener" in caplog.text

    def test_async_listener_without_loop_is_dropped(
        self, bus: EventBus, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test emitting from sync code with an async listener only warns."""

        async def listener(data: Any) -> None:
            raise AssertionError("must not run")

        bus.on(RegistryEvent.WIDGET_LOADED, listener)
        with caplog.at_level(logging.WARNING):
            bus.emit(RegistryEvent.WIDGET_LOADED)

        assert "no running event loop" in caplog.text


class TestHistory:
    """Test bounded event history."""

    def test_history_records_events(self, bus: EventBus) -> None:
        """Test emitted events are recorded with their payload."""
        bus.emit(RegistryEvent.WIDGET_LOADING, {"source": "a"})
        bus.emit(RegistryEvent.WIDGET_LOADED, {"source": "a"})

        history = bus.get_history()
        assert [record.event for record in history] == ["widget:loading", "widget:loaded"]
        assert history[0].data == {"source": "a"}
        assert history[0].timestamp is not None

    def test_history_filter(self, bus: EventBus) -> None:
        """Test get_history(event) filters by event name."""
        bus.emit(RegistryEvent.WIDGET_LOADING)
        bus.emit(RegistryEvent.WIDGET_ERROR, "x")

        assert [r.data for r in bus.get_history(RegistryEvent.WIDGET_ERROR)] == ["x"]

    def test_history_is_bounded(self) -> None:
        """Test only the most recent history_size events are kept."""
        bus = EventBus(history_size=3)
        for index in range(5):
            bus.emit(RegistryEvent.REGISTRY_UPDATED, index)

        assert [record.data for record in bus.get_history()] == [2, 3, 4]

    def test_clear_history_keeps_listeners(self, bus: EventBus) -> None:
        """Test clear_history() drops history only."""
        received: list[Any] = []
        bus.on(RegistryEvent.WIDGET_LOADED, received.append)
        bus.emit(RegistryEvent.WIDGET_LOADED, 1)

        bus.clear_history()
        bus.emit(RegistryEvent.WIDGET_LOADED, 2)

        assert received == [1, 2]
        assert len(bus.get_history()) == 1
