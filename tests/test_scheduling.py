"""Tests for partycd.scheduling -- virtual clock and asyncio scheduler."""

import asyncio

import pytest

from partycd.scheduling import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    def test_clock(self):
        sched = ManualScheduler(start=5.0)
        assert sched() == 5.0
        sched.advance(1.5)
        assert sched.time() == 6.5

    def test_timers_run_in_due_order_at_due_time(self):
        sched = ManualScheduler()
        seen = []
        sched.call_later(2.0, lambda: seen.append(("b", sched())))
        sched.call_later(1.0, lambda: seen.append(("a", sched())))
        assert sched.advance(3.0) == 2
        assert seen == [("a", 1.0), ("b", 2.0)]
        assert sched() == 3.0

    def test_equal_times_fifo(self):
        sched = ManualScheduler()
        seen = []
        for tag in "xyz":
            sched.call_later(1.0, lambda t=tag: seen.append(t))
        sched.advance(1.0)
        assert seen == ["x", "y", "z"]

    def test_not_yet_due(self):
        sched = ManualScheduler()
        seen = []
        sched.call_later(1.0, lambda: seen.append(1))
        sched.advance(0.5)
        assert seen == []
        assert sched.pending == 1

    def test_cancel(self):
        sched = ManualScheduler()
        seen = []
        handle = sched.call_later(1.0, lambda: seen.append(1))
        handle.cancel()
        assert sched.advance(2.0) == 0
        assert seen == []

    def test_callback_scheduling_within_window_runs(self):
        sched = ManualScheduler()
        seen = []
        sched.call_later(1.0, lambda: sched.call_later(0.5, lambda: seen.append(sched())))
        sched.advance(2.0)
        assert seen == [1.5]

    def test_run_until_idle(self):
        sched = ManualScheduler()
        sched.call_later(10.0, lambda: None)
        sched.call_soon(lambda: None)
        assert sched.run_until_idle() == 2
        assert sched() == 10.0


@pytest.mark.asyncio
async def test_asyncio_scheduler():
    loop = asyncio.get_running_loop()
    sched = AsyncioScheduler(loop)
    assert sched.loop is loop
    assert sched() == pytest.approx(loop.time(), abs=0.1)
    fired = asyncio.Event()
    sched.call_later(0.01, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1.0)
    seen = []
    sched.call_soon_threadsafe(lambda: seen.append(1))
    await asyncio.sleep(0)
    assert seen == [1]
