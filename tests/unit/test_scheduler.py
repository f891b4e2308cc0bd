"""Unit tests for the timer scheduler abstraction."""

from __future__ import annotations

import asyncio

import pytest

from webview_comm.scheduler import LoopScheduler, ManualScheduler
from tests.helpers.expectations import expect_exception


class TestManualScheduler:
    """Tests for the virtual-clock scheduler."""

    def test_timers_fire_in_deadline_order(self):
        """Test that timers fire by deadline, then by scheduling order."""
        sched = ManualScheduler()
        fired: list[str] = []
        _ = sched.call_later(2.0, fired.append, "b")
        _ = sched.call_later(1.0, fired.append, "a")
        _ = sched.call_later(2.0, fired.append, "c")

        sched.advance(5.0)

        assert fired == ["a", "b", "c"]
        assert sched.time() == 5.0

    def test_callback_sees_its_deadline(self):
        """Test that time() equals the timer deadline inside the callback."""
        sched = ManualScheduler()
        seen: list[float] = []
        _ = sched.call_later(1.5, lambda: seen.append(sched.time()))

        sched.advance(4.0)

        assert seen == [1.5]

    def test_cancelled_timer_does_not_fire(self):
        """Test that cancel() prevents the callback."""
        sched = ManualScheduler()
        fired: list[int] = []
        handle = sched.call_later(1.0, fired.append, 1)
        handle.cancel()

        sched.advance(2.0)

        assert fired == []
        assert handle.cancelled()
        assert not handle.fired

    def test_timers_scheduled_during_advance_fire(self):
        """Test that a re-arming timer fires repeatedly within one advance."""
        sched = ManualScheduler()
        ticks: list[float] = []

        def tick() -> None:
            ticks.append(sched.time())
            _ = sched.call_later(1.0, tick)

        _ = sched.call_later(1.0, tick)
        sched.advance(3.0)

        assert ticks == [1.0, 2.0, 3.0]
        assert sched.pending() == 1

    def test_not_due_timer_waits(self):
        """Test that a timer does not fire before its deadline."""
        sched = ManualScheduler()
        fired: list[int] = []
        handle = sched.call_later(2.0, fired.append, 1)

        sched.advance(1.5)
        assert fired == []
        sched.advance(0.5)

        assert fired == [1]
        assert handle.fired

    def test_negative_advance_rejected(self):
        """Test that the clock cannot move backwards."""
        sched = ManualScheduler()
        _ = expect_exception(sched.advance, ValueError, -1.0)

    def test_negative_delay_fires_immediately(self):
        """Test that a negative delay is clamped to zero."""
        sched = ManualScheduler(start=10.0)
        handle = sched.call_later(-5.0, lambda: None)
        assert handle.when == 10.0


class TestLoopScheduler:
    """Tests for the event-loop backed scheduler."""

    @pytest.mark.asyncio
    async def test_uses_loop_clock_and_timers(self):
        """Test that timers run on the running loop."""
        loop = asyncio.get_running_loop()
        sched = LoopScheduler()
        fired = loop.create_future()

        _ = sched.call_later(0.01, fired.set_result, "done")

        assert await asyncio.wait_for(fired, timeout=1.0) == "done"
        assert abs(sched.time() - loop.time()) < 1.0

    @pytest.mark.asyncio
    async def test_cancel(self):
        """Test that a cancelled loop timer never fires."""
        sched = LoopScheduler()
        fired: list[int] = []
        handle = sched.call_later(0.01, fired.append, 1)
        handle.cancel()

        await asyncio.sleep(0.03)

        assert fired == []
        assert handle.cancelled()
