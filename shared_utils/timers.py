"""
Cancellable timer primitives driven by an injected Clock.

    PeriodicTask  fixed-interval callback; a failing tick is logged and the
                  loop keeps running.
    Debouncer     trailing-edge debounce with explicit flush/cancel.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable, Optional

from shared_utils.clock import Clock
from shared_utils.constants import LogScope
from shared_utils.error_handler import log_exception
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.TIMERS)

AsyncCallback = Callable[[], Awaitable[None]]


def debounce_due(last_event_ms: Optional[int], now_ms: int, delay_ms: int) -> bool:
    """True once a quiet period of *delay_ms* has elapsed since the last event."""
    if last_event_ms is None:
        return False
    return now_ms - last_event_ms >= delay_ms


async def cancel_task(task: Optional[asyncio.Task]) -> None:
    """Cancel *task* and wait for it to unwind."""
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class PeriodicTask:
    """Runs *callback* every *interval* seconds until cancelled."""

    def __init__(
        self,
        name: str,
        interval: float,
        callback: AsyncCallback,
        clock: Clock,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.name = name
        self._interval = interval
        self._callback = callback
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self.name}")

    async def cancel(self) -> None:
        task, self._task = self._task, None
        await cancel_task(task)

    async def _run(self) -> None:
        while True:
            await self._clock.sleep(self._interval)
            self.ticks += 1
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("periodic_tick_failed", task=self.name, tick=self.ticks)
                log_exception(exc, scope=LogScope.TIMERS)


class Debouncer:
    """Trailing-edge debounce: *action* runs *delay* seconds after the last trigger.

    ``pending`` stays True until an action completes successfully, so a
    failed or cancelled write is retried by the next trigger or ``flush()``.
    """

    def __init__(
        self,
        name: str,
        delay: float,
        action: AsyncCallback,
        clock: Clock,
    ) -> None:
        self.name = name
        self._delay = delay
        self._delay_ms = int(round(delay * 1000))
        self._action = action
        self._clock = clock
        self._timer: Optional[asyncio.Task] = None
        self._pending = False
        self._last_trigger_ms: Optional[int] = None

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def last_trigger_ms(self) -> Optional[int]:
        return self._last_trigger_ms

    def is_due(self, now_ms: int) -> bool:
        return self._pending and debounce_due(self._last_trigger_ms, now_ms, self._delay_ms)

    def trigger(self) -> None:
        """Record an event and (re)schedule the trailing action."""
        self._pending = True
        self._last_trigger_ms = self._clock.now_ms()
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._run_after_delay(), name=f"debounce:{self.name}")

    async def flush(self) -> None:
        """Run the pending action now. Errors propagate to the caller."""
        await self.cancel()
        if self._pending:
            await self._fire()

    async def cancel(self) -> None:
        timer, self._timer = self._timer, None
        await cancel_task(timer)

    async def _run_after_delay(self) -> None:
        await self._clock.sleep(self._delay)
        try:
            await self._fire()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("debounced_action_failed", debouncer=self.name, error=str(exc))

    async def _fire(self) -> None:
        self._pending = False
        try:
            await self._action()
        except BaseException:
            self._pending = True
            raise
