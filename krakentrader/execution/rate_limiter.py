"""Asynchronous sliding-window rate gate."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..errors import InvalidConfiguration
from ..utils.logging import get_logger, log_json
from ..utils.monitoring import rate_limit_throttle_counter

logger = get_logger()


class RateGate:
    """Allow at most ``occurrences`` operations to start per ``period``.

    Each acquired unit goes back to the pool exactly ``period`` seconds after
    it was taken, so the gate approximates a sliding window rather than a
    fixed bucket.  Multi-unit requests take units one at a time and may
    interleave with other callers.

    Parameters
    ----------
    occurrences:
        Number of units available per window.  Must be positive.
    period:
        Window length in seconds.  Must be positive.
    name:
        Label used in logs and metrics.
    """

    def __init__(self, occurrences: int, period: float, name: str = "default") -> None:
        if occurrences <= 0:
            raise InvalidConfiguration("Number of occurrences must be greater than 0")
        if period <= 0:
            raise InvalidConfiguration("Period must be strictly positive")
        self.occurrences = int(occurrences)
        self.period = float(period)
        self.name = name
        self._semaphore = asyncio.Semaphore(self.occurrences)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Units taken and not yet returned to the pool."""
        return self._in_flight

    async def acquire(self, count: int = 1) -> None:
        """Wait until ``count`` units were taken."""
        for _ in range(count):
            await self.wait()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Take one unit, waiting at most ``timeout`` seconds.

        Returns ``False`` if the timeout elapsed first; ``None`` waits forever.
        """
        if self._semaphore.locked():
            rate_limit_throttle_counter.labels(gate=self.name).inc()
            log_json(logger, "rate_gate_throttled", level=logging.DEBUG, gate=self.name)
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout)
        except asyncio.TimeoutError:
            return False
        self._in_flight += 1
        asyncio.get_running_loop().call_later(self.period, self._release)
        return True

    def _release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()


__all__ = ["RateGate"]
