"""
Clocks and timing utilities.

Everything in marketlink that reads the time or sleeps goes through a clock,
so tests can swap in a VirtualClock and advance time without waiting.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, List, Optional

from marketlink.logging_config import get_logger

logger = get_logger(__name__)


class SystemClock:
    """Wall-clock time and real asyncio sleeps."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


class VirtualClock:
    """
    Manually driven clock for tests.

    `sleep` records the requested delay, advances virtual time by that amount
    and yields to the event loop once, so backoff and admission delays complete
    instantly while still being observable.

    Example:
        clock = VirtualClock()
        cache = EphemeralCache(clock=clock)
        cache.set("k", 1, ttl=10)
        clock.advance(11)
        assert cache.get("k") is None
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self._now += seconds
        await asyncio.sleep(0)


class Timer:
    """
    Context manager for timing a block against a clock.

    Example:
        with Timer("quote:AAPL", clock) as timer:
            data = await fetch()
        stats.record_call("quote", duration=timer.elapsed)
    """

    def __init__(self, name: str = "Operation", clock: Optional[Any] = None):
        """
        Initialize timer.

        Args:
            name: Name used in debug log lines
            clock: Clock providing now(); defaults to SystemClock
        """
        self.name = name
        self.clock = clock or SystemClock()
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = self.clock.now()
        return self

    def __exit__(self, *args: Any) -> None:
        if self.start_time is not None:
            self.elapsed = self.clock.now() - self.start_time
            logger.debug("%s completed in %.3fs", self.name, self.elapsed)
