"""Abort signalling, dispatch slots and deadlines for phase execution."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable

T = TypeVar("T")


class CancellationToken:
    """Operator abort signal shared by a run and every nested run below it."""

    __slots__ = ("_fired", "_reason")

    def __init__(self) -> None:
        self._fired = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "aborted") -> None:
        # First reason wins; later aborts only re-set the event.
        if self._reason is None:
            self._reason = reason
        self._fired.set()

    @property
    def is_cancelled(self) -> bool:
        return self._fired.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    async def wait(self) -> None:
        await self._fired.wait()


class DispatchSlots:
    """Caps in-flight dispatches of one run and records the high-water mark."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._gate = asyncio.Semaphore(capacity)
        self._held = 0
        self._peak = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def held(self) -> int:
        return self._held

    @property
    def peak(self) -> int:
        return self._peak

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        async with self._gate:
            self._held += 1
            self._peak = max(self._peak, self._held)
            try:
                yield
            finally:
                self._held -= 1

    def snapshot(self) -> dict[str, int]:
        return {
            "capacity": self._capacity,
            "held": self._held,
            "free": self._capacity - self._held,
            "peak": self._peak,
        }


async def run_with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Await ``awaitable`` under a deadline, giving up early when ``cancel_token`` fires.

    Raises ``TimeoutError`` when the deadline passes and ``asyncio.CancelledError``
    on abort. The abandoned work is cancelled in both cases.
    """
    if timeout_seconds <= 0:
        _discard(awaitable)
        raise ValueError("timeout_seconds must be > 0")
    if cancel_token is not None and cancel_token.is_cancelled:
        _discard(awaitable)
        raise asyncio.CancelledError(cancel_token.reason or "aborted")

    work: asyncio.Future[T] = asyncio.ensure_future(awaitable)
    watchers: set[asyncio.Future[object]] = {work}
    abort_watch: asyncio.Task[None] | None = None
    if cancel_token is not None:
        abort_watch = asyncio.create_task(cancel_token.wait())
        watchers.add(abort_watch)

    try:
        done, _ = await asyncio.wait(
            watchers, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        if abort_watch is not None:
            abort_watch.cancel()

    if work in done:
        return work.result()

    work.cancel()
    with suppress(asyncio.CancelledError):
        await work
    if cancel_token is not None and cancel_token.is_cancelled:
        raise asyncio.CancelledError(cancel_token.reason or "aborted")
    raise TimeoutError(f"dispatch timed out after {timeout_seconds} seconds")


def _discard(awaitable: Awaitable[object]) -> None:
    # A coroutine that is never scheduled must be closed to avoid a "never awaited" warning.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "DispatchSlots",
    "run_with_timeout",
]
