"""
Clock abstraction for the live pipeline.

Every timer in the orchestrator (capture cadence, analysis ticks, debounce,
feedback sweep) reads time and sleeps through a ``Clock`` so behaviour can be
driven deterministically in tests with ``ManualClock``.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import List, Protocol, Tuple, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Time source plus cooperative sleep."""

    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for *seconds*."""
        ...


class SystemClock:
    """Wall clock backed by ``time.time`` and ``asyncio.sleep``."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


async def settle(rounds: int = 20) -> None:
    """Yield to the event loop enough times for woken tasks to run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Virtual clock: time only moves when ``advance()`` is awaited.

    Sleepers are woken in deadline order, and the loop is given a chance to
    run between wake-ups, so a periodic task sleeping 5s fires six times
    across ``advance(30_000)``.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms
        self._counter = itertools.count()
        self._sleepers: List[Tuple[int, int, asyncio.Future]] = []

    def now_ms(self) -> int:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        deadline = self._now + int(round(seconds * 1000))
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (deadline, next(self._counter), future))
        await future

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, f in self._sleepers if not f.done())

    async def advance(self, ms: int) -> None:
        """Move time forward by *ms*, waking sleepers whose deadline passes."""
        target = self._now + ms
        await settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            if future.done():
                continue
            self._now = max(self._now, deadline)
            future.set_result(None)
            await settle()
        self._now = target
        await settle()

    async def advance_to(self, when_ms: int) -> None:
        await self.advance(max(0, when_ms - self._now))
