"""Tests for lifecycle state values and the state bus."""

from __future__ import annotations

import logging
import threading

import pytest

from adapt.state import IDLE, Downloading, Error, Ready, StateBus


class TestStates:
    """Lifecycle state values."""

    def test_downloading_progress_range(self) -> None:
        assert Downloading("m", 0.0).percent == 0
        assert Downloading("m", 0.456).percent == 45
        with pytest.raises(ValueError, match="progress"):
            Downloading("m", 1.01)
        with pytest.raises(ValueError):
            Downloading("m", -0.1)

    def test_value_equality(self) -> None:
        assert Ready("Qwen 2.5 3B", "id") == Ready("Qwen 2.5 3B", "id")
        assert Error("a") != Error("b")


class TestStateBus:
    """Latest-value broadcast semantics."""

    def test_subscriber_receives_current_value(self) -> None:
        bus: StateBus[object] = StateBus(IDLE)
        bus.publish(Error("boom"))
        seen: list[object] = []
        bus.subscribe(seen.append)
        assert seen == [Error("boom")]

    def test_all_observers_see_same_order(self) -> None:
        bus: StateBus[int] = StateBus(0)
        first: list[int] = []
        second: list[int] = []
        bus.subscribe(first.append)
        bus.subscribe(second.append)
        for value in (1, 2, 3):
            bus.publish(value)
        assert first == second == [0, 1, 2, 3]
        assert bus.value == 3

    def test_cancel_stops_delivery(self) -> None:
        bus: StateBus[int] = StateBus(0)
        seen: list[int] = []
        sub = bus.subscribe(seen.append)
        bus.publish(1)
        sub.cancel()
        sub.cancel()
        bus.publish(2)
        assert seen == [0, 1]
        assert sub.active is False

    def test_failing_observer_is_logged_not_raised(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """One broken observer does not starve the others."""
        bus: StateBus[int] = StateBus(0, name="test-bus")
        seen: list[int] = []

        def broken(value: int) -> None:
            if value:
                raise RuntimeError("observer bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        with caplog.at_level(logging.ERROR, logger="adapt.state"):
            bus.publish(7)

        assert seen == [0, 7]
        assert "Observer of test-bus failed" in caplog.text

    def test_publish_waits_for_initial_delivery(self) -> None:
        """A value published mid-subscribe arrives after the current one."""
        bus: StateBus[str] = StateBus("v1")
        seen: list[str] = []
        entered = threading.Event()
        release = threading.Event()

        def slow_observer(value: str) -> None:
            seen.append(value)
            if value == "v1":
                entered.set()
                release.wait(timeout=5)

        subscriber = threading.Thread(target=bus.subscribe, args=(slow_observer,))
        subscriber.start()
        assert entered.wait(timeout=5)

        publisher = threading.Thread(target=bus.publish, args=("v2",))
        publisher.start()
        publisher.join(timeout=0.1)
        assert publisher.is_alive()

        release.set()
        subscriber.join(timeout=5)
        publisher.join(timeout=5)

        assert seen == ["v1", "v2"]
        assert bus.value == "v2"
