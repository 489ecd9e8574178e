"""
Core Module - Clock and Timers.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock abstraction for the adapter.

- All delays (debounce, settle, polling) MUST go through a clock
- Timers have cancel-and-reschedule semantics
- Enables deterministic tests with virtual time

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only
- One clock instance is injected per adapter, no global clock
- SystemClock delegates to the running asyncio loop
- MockClock only moves when a test advances it

============================================================
"""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Tuple


# ============================================================
# TIMER HANDLE
# ============================================================

class TimerHandle:
    """
    A scheduled callback.

    Matches the subset of ``asyncio.TimerHandle`` used by the adapter,
    so production and virtual timers are interchangeable.
    """

    def __init__(self, when: datetime, callback: Callable, args: Tuple[Any, ...]):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        """Cancel the timer. A no-op once it has fired."""
        self._cancelled = True
        self._callback = None
        self._args = ()

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        if self._cancelled:
            return
        callback, args = self._callback, self._args
        self.cancel()
        callback(*args)


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the adapter clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def timestamp_ms(self) -> int:
        """Get current Unix timestamp in milliseconds."""
        return int(self.timestamp() * 1000)

    @abstractmethod
    def call_later(self, delay: float, callback: Callable, *args: Any):
        """
        Schedule ``callback(*args)`` after ``delay`` seconds.

        Returns:
            A handle exposing ``cancel()``
        """
        pass

    @abstractmethod
    async def sleep(self, delay: float) -> None:
        """Suspend the calling coroutine for ``delay`` seconds."""
        pass


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """
    Production clock using actual system time.

    Timers run on the currently running asyncio loop.
    """

    def now(self) -> datetime:
        """Get current UTC datetime."""
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()

    def call_later(self, delay: float, callback: Callable, *args: Any):
        return asyncio.get_running_loop().call_later(delay, callback, *args)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Virtual clock for testing.

    Time only moves on ``advance()`` or ``run_for()``. Timers and sleeps
    scheduled against it fire in deadline order as time passes them.
    """

    settle_iterations: int = 20
    """Event loop turns given to woken coroutines between timers."""

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        self._time = initial_time or datetime.now(timezone.utc)
        self._timers: List[Tuple[datetime, int, TimerHandle]] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        """Get current (virtual) datetime."""
        return self._time

    def timestamp(self) -> float:
        """Get current (virtual) timestamp."""
        return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Set the current time without firing timers."""
        if new_time.tzinfo is None:
            new_time = new_time.replace(tzinfo=timezone.utc)
        self._time = new_time

    @property
    def pending_timers(self) -> int:
        """Number of timers that are scheduled and not cancelled."""
        return sum(1 for _, _, handle in self._timers if not handle.cancelled())

    def call_later(self, delay: float, callback: Callable, *args: Any) -> TimerHandle:
        when = self._time + timedelta(seconds=max(delay, 0))
        handle = TimerHandle(when, callback, args)
        heapq.heappush(self._timers, (when, next(self._sequence), handle))
        return handle

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self.call_later(delay, _resolve_future, future)
        await future

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time and fire every timer that falls due, synchronously.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (minutes, hours, ...)
        """
        deadline = self._time + timedelta(seconds=seconds, **kwargs)
        while True:
            handle = self._pop_due(deadline)
            if handle is None:
                break
            self._time = max(self._time, handle.when)
            handle._run()
        self._time = deadline

    async def run_for(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time from inside a running loop.

        Between timers the loop is given a few turns so that coroutines
        woken by one timer can schedule the next before it is checked.
        """
        deadline = self._time + timedelta(seconds=seconds, **kwargs)
        await self._settle()
        while True:
            handle = self._pop_due(deadline)
            if handle is None:
                break
            self._time = max(self._time, handle.when)
            handle._run()
            await self._settle()
        self._time = deadline
        await self._settle()

    def _pop_due(self, deadline: datetime) -> Optional[TimerHandle]:
        while self._timers:
            when, _, handle = self._timers[0]
            if handle.cancelled():
                heapq.heappop(self._timers)
                continue
            if when > deadline:
                return None
            heapq.heappop(self._timers)
            return handle
        return None

    async def _settle(self) -> None:
        for _ in range(self.settle_iterations):
            await asyncio.sleep(0)


def _resolve_future(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "TimerHandle",
    "ClockProtocol",
    "SystemClock",
    "MockClock",
]
