"""
Interval Scheduler

ScheduledLoop fires an async callback every `interval` seconds on a fixed
schedule (wall-clock boundaries, or starting now with run_immediately).
Slow callbacks do not shift the schedule: missed slots are skipped rather
than queued.

Each device poller owns one loop. On an interval change the poller stops
its loop and starts a new one:

    timer.stop()
    timer = ScheduledLoop(30.0, poll_once, name="rack-ups")
    await timer.start()
"""

import asyncio
import time
from typing import Awaitable, Callable

from .logging_setup import get_service_logger

logger = get_service_logger("scheduler")

# A lateness above this is a clock jump, not scheduling drift
CLOCK_JUMP_S = 30


class ScheduledLoop:
    """
    Repeating timer for one async callback.

    stop() cancels the timer task only. A callback that is already running
    executes in its own task and completes normally; wait_idle() awaits it.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "unnamed",
        run_immediately: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name
        self.run_immediately = run_immediately

        self._running = False
        self._task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None

        self._execution_count = 0
        self._skipped_count = 0
        self._drift_total = 0.0
        self._last_drift_ms = 0.0
        self._last_execution_time = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def execution_count(self) -> int:
        """Callbacks that completed without raising"""
        return self._execution_count

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"scheduler:{self.name}")

    def stop(self) -> None:
        """No callback starts after this returns"""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def wait_idle(self) -> None:
        inflight = self._inflight
        if inflight and not inflight.done():
            await asyncio.wait({inflight})

    def _first_run_at(self) -> float:
        now = time.time()
        if self.run_immediately:
            return now
        return ((now // self.interval) + 1) * self.interval

    async def _run(self) -> None:
        next_run = self._first_run_at()

        while self._running:
            delay = next_run - time.time()
            if delay > 0:
                try:
                    await asyncio.sleep(delay)
                except asyncio.CancelledError:
                    break
            if not self._running:
                break

            self._record_drift(time.time() - next_run)

            self._inflight = asyncio.create_task(self._execute())
            try:
                await asyncio.shield(self._inflight)
            except asyncio.CancelledError:
                break

            next_run = self._advance(next_run)

    def _record_drift(self, drift: float) -> None:
        if drift > CLOCK_JUMP_S:
            logger.info(f"Scheduler '{self.name}' clock jump detected ({drift:.0f}s), realigning")
            self._last_drift_ms = 0.0
            return
        self._drift_total += max(0.0, drift)
        self._last_drift_ms = drift * 1000

    def _advance(self, next_run: float) -> float:
        now = time.time()
        slots = 0
        while next_run <= now:
            next_run += self.interval
            slots += 1

        if slots > 1:
            self._skipped_count += slots - 1
            logger.warning(
                f"Scheduler '{self.name}' skipped {slots - 1} intervals "
                f"(execution took {self._last_execution_time:.3f}s)"
            )
        return next_run

    async def _execute(self) -> None:
        start = time.time()
        try:
            await self.callback()
            self._execution_count += 1
        except Exception as e:
            logger.error(f"Scheduled callback '{self.name}' error: {e}")
        finally:
            self._last_execution_time = time.time() - start

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "interval_s": self.interval,
            "running": self._running,
            "execution_count": self._execution_count,
            "drift_total_s": round(self._drift_total, 3),
            "drift_last_ms": round(self._last_drift_ms, 1),
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }
