"""
Pacer
=====

Fixed-interval driver for the processing loop.

Ticks are scheduled on absolute deadlines ``interval`` apart. When a tick
runs late (slow transform or sink), the next deadline is measured from
the late tick rather than replaying missed ticks, so a stall never turns
into a burst.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from chroma_router.errors import ConfigurationError


logger = logging.getLogger(__name__)


class Pacer:
    """
    Async fixed-rate ticker.

    Attributes:
        fps: Target ticks per second
        interval: Seconds between ticks (1 / fps)
        late_ticks: Ticks that started after their deadline had passed

    Example:
        pacer = Pacer(fps=25)
        while running:
            await pacer.wait()
            do_work()
    """

    def __init__(
        self,
        fps: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize pacer.

        Args:
            fps: Target frame rate, must be positive
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait (asyncio.sleep)

        Raises:
            ConfigurationError: If fps is not positive
        """
        if fps <= 0:
            raise ConfigurationError(f"fps must be positive, got {fps}")

        self.fps = fps
        self.interval = 1.0 / fps
        self.late_ticks: int = 0
        self._clock = clock
        self._sleep = sleep
        self._next_deadline: Optional[float] = None
        self._ticks: int = 0

    @property
    def ticks(self) -> int:
        """Number of ticks delivered so far."""
        return self._ticks

    async def wait(self) -> None:
        """Sleep until the next tick is due."""
        now = self._clock()

        if self._next_deadline is None:
            self._next_deadline = now
        elif now < self._next_deadline:
            await self._sleep(self._next_deadline - now)
            now = self._clock()

        if now - self._next_deadline > self.interval:
            # Missed at least one whole tick; restart the cadence from now
            self.late_ticks += 1
            self._next_deadline = now

        self._next_deadline += self.interval
        self._ticks += 1
