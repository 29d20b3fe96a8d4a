from __future__ import annotations

import asyncio

import pytest

from pantheon_orchestrator.utils.concurrency import (
    CancellationToken,
    DispatchSlots,
    run_with_timeout,
)


async def _value_after(delay: float, value: int) -> int:
    await asyncio.sleep(delay)
    return value


@pytest.mark.asyncio
async def test_run_with_timeout_returns_value_before_deadline() -> None:
    assert await run_with_timeout(_value_after(0.0, 7), 1.0) == 7
    assert await run_with_timeout(_value_after(0.0, 8), 1.0, CancellationToken()) == 8


@pytest.mark.asyncio
async def test_run_with_timeout_raises_timeout_error() -> None:
    with pytest.raises(TimeoutError, match="timed out after 0.01 seconds"):
        await run_with_timeout(_value_after(1.0, 1), 0.01)


@pytest.mark.asyncio
async def test_run_with_timeout_propagates_work_errors() -> None:
    async def broken() -> int:
        raise LookupError("missing")

    with pytest.raises(LookupError, match="missing"):
        await run_with_timeout(broken(), 1.0)


@pytest.mark.asyncio
async def test_abort_wins_over_a_long_deadline() -> None:
    token = CancellationToken()

    async def abort_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel("operator stop")

    aborter = asyncio.create_task(abort_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_value_after(1.0, 1), 5.0, token)
    await aborter

    assert token.is_cancelled
    assert token.reason == "operator stop"


def test_first_abort_reason_is_kept() -> None:
    token = CancellationToken()
    token.cancel("budget")
    token.cancel("operator stop")

    assert token.reason == "budget"


@pytest.mark.asyncio
async def test_run_with_timeout_rejects_bad_deadline_and_fired_token() -> None:
    with pytest.raises(ValueError, match="timeout_seconds must be > 0"):
        await run_with_timeout(_value_after(0.0, 1), 0)

    token = CancellationToken()
    token.cancel()
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_value_after(0.0, 1), 1.0, token)


@pytest.mark.asyncio
async def test_dispatch_slots_cap_parallelism_and_track_peak() -> None:
    slots = DispatchSlots(2)
    seen: list[int] = []

    async def hold() -> None:
        async with slots.slot():
            seen.append(slots.held)
            await asyncio.sleep(0.01)

    await asyncio.gather(*(hold() for _ in range(5)))

    assert max(seen) == 2
    assert slots.peak == 2
    assert slots.snapshot() == {"capacity": 2, "held": 0, "free": 2, "peak": 2}


@pytest.mark.asyncio
async def test_dispatch_slot_is_released_when_work_fails() -> None:
    slots = DispatchSlots(1)

    with pytest.raises(RuntimeError):
        async with slots.slot():
            raise RuntimeError("boom")

    assert slots.held == 0
    async with slots.slot():
        assert slots.held == 1


def test_dispatch_slots_reject_zero_capacity() -> None:
    with pytest.raises(ValueError, match="capacity must be >= 1"):
        DispatchSlots(0)
