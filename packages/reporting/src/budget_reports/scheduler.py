"""Debounced scheduling of Global report recomputation.

Mutation handlers call ``schedule(month, year)`` whenever data affecting a
period changes. Each period key moves through three states:

- Idle: nothing armed.
- Pending: a timer is armed. Another trigger cancels it and arms a fresh
  one with the full delay, so a burst of triggers keeps pushing the
  deadline out.
- Running: the delay elapsed. The key leaves the pending registry before
  the run starts, so a trigger arriving now begins a new Pending cycle
  instead of cancelling the run in flight.

Runs are never retried and a failing run never affects other keys.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date
from enum import Enum
from typing import Any

import structlog

from budget_reports.config import get_settings
from budget_reports.models import Period

logger = structlog.get_logger(__name__)

PeriodKey = tuple[int, int]  # (month, year)
RunCallable = Callable[[int, int], Awaitable[Any]]
SleepCallable = Callable[[float], Awaitable[Any]]


class KeyState(str, Enum):
    """Scheduling state of one period key."""

    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"


class ReportScheduler:
    """Coalesces triggers into at most one recomputation per quiet interval.

    Usage:
        scheduler = ReportScheduler.for_service(report_service)
        scheduler.schedule(3, 2024)   # returns immediately

        # Shutdown
        await scheduler.shutdown()
    """

    def __init__(
        self,
        run: RunCallable,
        delay: float | None = None,
        sleep: SleepCallable = asyncio.sleep,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        settings = get_settings()
        self._run = run
        self._delay = settings.report_debounce_seconds if delay is None else delay
        if self._delay < 0:
            raise ValueError("Debounce delay cannot be negative")
        self._sleep = sleep
        self._loop = loop

        self._pending: dict[PeriodKey, asyncio.Task[None]] = {}
        self._running: dict[PeriodKey, int] = {}
        self._run_locks: dict[PeriodKey, asyncio.Lock] = {}
        self._lock_users: dict[PeriodKey, int] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

        self._logger = logger.bind(component="report_scheduler")

    @classmethod
    def for_service(cls, service: Any, **kwargs: Any) -> "ReportScheduler":
        """Bind the scheduler to ``ReportService.generate_global_report``."""
        return cls(service.generate_global_report, **kwargs)

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending_keys(self) -> set[PeriodKey]:
        return set(self._pending)

    def is_pending(self, month: int, year: int) -> bool:
        return (month, year) in self._pending

    def state(self, month: int, year: int) -> KeyState:
        """Current state of a key. Pending wins when a run is also in flight."""
        key = (month, year)
        if key in self._pending:
            return KeyState.PENDING
        if self._running.get(key):
            return KeyState.RUNNING
        return KeyState.IDLE

    def schedule(self, month: int, year: int) -> None:
        """Arm (or re-arm) the debounce timer for a period.

        Must be called from the event loop thread; use
        ``schedule_threadsafe`` from other threads.
        """
        Period.of(month, year)
        key = (month, year)
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop

        existing = self._pending.pop(key, None)
        if existing is not None:
            existing.cancel()

        task = loop.create_task(self._debounce(key), name=f"report-debounce-{month}-{year}")
        self._pending[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self._logger.info(
            "report_scheduled",
            period=f"{month}/{year}",
            delay=self._delay,
            rescheduled=existing is not None,
        )

    def schedule_threadsafe(self, month: int, year: int) -> None:
        """Schedule from a thread other than the event loop's."""
        Period.of(month, year)
        if self._loop is None:
            raise RuntimeError("Scheduler is not bound to an event loop")
        self._loop.call_soon_threadsafe(self.schedule, month, year)

    def schedule_for_date(self, moment: date) -> None:
        """Schedule the period containing ``moment``."""
        period = Period.containing(moment)
        self.schedule(period.month, period.year)

    async def _debounce(self, key: PeriodKey) -> None:
        await self._sleep(self._delay)

        # Leave the pending registry before running; no await in between.
        if self._pending.get(key) is not asyncio.current_task():
            return
        del self._pending[key]

        try:
            await self._execute(key)
        except Exception:
            self._logger.exception("report_run_failed", period=f"{key[0]}/{key[1]}")

    async def _execute(self, key: PeriodKey) -> Any:
        month, year = key
        lock = self._run_locks.setdefault(key, asyncio.Lock())
        # Counts holders and waiters; the lock is dropped once both are gone.
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                self._running[key] = self._running.get(key, 0) + 1
                self._logger.info("report_run_starting", period=f"{month}/{year}")
                try:
                    result = await self._run(month, year)
                finally:
                    self._running[key] -= 1
                    if not self._running[key]:
                        del self._running[key]
                self._logger.info("report_run_completed", period=f"{month}/{year}")
                return result
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._run_locks[key]

    @property
    def run_lock_count(self) -> int:
        """Number of period keys currently holding a run lock."""
        return len(self._run_locks)

    async def run_now(self, month: int, year: int) -> Any:
        """Cancel any pending timer for the period and run immediately.

        Unlike scheduled runs, errors propagate to the caller.
        """
        Period.of(month, year)
        key = (month, year)
        pending = self._pending.pop(key, None)
        if pending is not None:
            pending.cancel()
        return await self._execute(key)

    async def wait_idle(self) -> None:
        """Wait until no timers are pending and no runs are in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending timers and wait for in-flight runs to finish."""
        cancelled = len(self._pending)
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        await self.wait_idle()
        self._logger.info("scheduler_stopped", cancelled=cancelled)

    def get_status(self) -> dict[str, Any]:
        return {
            "delay": self._delay,
            "pending": sorted(f"{m}/{y}" for m, y in self._pending),
            "running": sorted(f"{m}/{y}" for m, y in self._running),
        }
