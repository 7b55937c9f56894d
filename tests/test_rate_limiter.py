import asyncio
import time

import pytest

from krakentrader.errors import InvalidConfiguration
from krakentrader.execution.rate_limiter import RateGate


@pytest.mark.parametrize("occurrences, period", [(0, 1.0), (-1, 1.0), (1, 0), (1, -0.5)])
def test_rate_gate_rejects_bad_config(occurrences, period):
    with pytest.raises(InvalidConfiguration):
        RateGate(occurrences, period)


@pytest.mark.asyncio
async def test_rate_gate_waits_for_period():
    gate = RateGate(1, 0.2)
    await gate.acquire()
    start = time.perf_counter()
    await gate.acquire()
    elapsed = time.perf_counter() - start
    assert elapsed >= 0.15


@pytest.mark.asyncio
async def test_multi_unit_acquire_spans_window():
    gate = RateGate(2, 0.2)
    start = time.perf_counter()
    await gate.acquire(3)
    elapsed = time.perf_counter() - start
    assert elapsed >= 0.15


@pytest.mark.asyncio
async def test_bounded_wait_times_out():
    gate = RateGate(1, 10)
    assert await gate.wait() is True
    assert await gate.wait(timeout=0.05) is False
    assert gate.in_flight == 1


@pytest.mark.asyncio
async def test_in_flight_never_exceeds_capacity():
    gate = RateGate(3, 0.1)
    peak = 0

    async def worker():
        nonlocal peak
        await gate.acquire()
        peak = max(peak, gate.in_flight)

    start = time.perf_counter()
    await asyncio.gather(*(worker() for _ in range(10)))
    elapsed = time.perf_counter() - start
    assert peak <= 3
    # 10 units at 3 per 100ms need at least three refills
    assert elapsed >= 0.25


@pytest.mark.asyncio
async def test_units_return_after_period():
    gate = RateGate(2, 0.05)
    await gate.acquire(2)
    assert gate.in_flight == 2
    await asyncio.sleep(0.1)
    assert gate.in_flight == 0
