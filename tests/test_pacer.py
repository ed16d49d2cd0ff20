"""
Pacer Tests
===========

Fixed-interval ticking driven by a fake clock.
"""

import asyncio

import pytest

from chroma_router.errors import ConfigurationError
from chroma_router.stream.pacer import Pacer


class FakeClock:
    """Manually advanced clock; sleeping advances it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_pacer(fps=10):
    clock = FakeClock()
    return Pacer(fps, clock=clock, sleep=clock.sleep), clock


class TestPacer:
    """Tests for Pacer."""

    @pytest.mark.parametrize("fps", [0, -5])
    def test_non_positive_fps_rejected(self, fps):
        with pytest.raises(ConfigurationError):
            Pacer(fps)

    def test_interval(self):
        pacer, _ = make_pacer(fps=25)
        assert pacer.interval == pytest.approx(0.04)

    def test_first_tick_is_immediate(self):
        pacer, clock = make_pacer()
        asyncio.run(pacer.wait())

        assert clock.sleeps == []
        assert pacer.ticks == 1

    def test_idle_ticks_are_one_interval_apart(self):
        pacer, clock = make_pacer()

        async def run():
            for _ in range(4):
                await pacer.wait()

        asyncio.run(run())

        assert clock.sleeps == pytest.approx([0.1, 0.1, 0.1])
        assert clock.now == pytest.approx(0.3)
        assert pacer.late_ticks == 0

    def test_work_time_is_absorbed(self):
        pacer, clock = make_pacer()

        async def run():
            await pacer.wait()
            clock.now += 0.03
            await pacer.wait()

        asyncio.run(run())

        assert clock.sleeps == pytest.approx([0.07])
        assert clock.now == pytest.approx(0.1)

    def test_late_tick_restarts_cadence(self):
        pacer, clock = make_pacer()

        async def run():
            await pacer.wait()
            clock.now = 0.35
            await pacer.wait()
            await pacer.wait()

        asyncio.run(run())

        # No burst of catch-up ticks after the stall
        assert pacer.late_ticks == 1
        assert clock.sleeps == pytest.approx([0.1])
        assert clock.now == pytest.approx(0.45)
        assert pacer.ticks == 3

    def test_slightly_late_tick_keeps_schedule(self):
        pacer, clock = make_pacer()

        async def run():
            await pacer.wait()
            clock.now = 0.15
            await pacer.wait()
            await pacer.wait()

        asyncio.run(run())

        assert pacer.late_ticks == 0
        assert clock.sleeps == pytest.approx([0.05])
        assert clock.now == pytest.approx(0.2)
