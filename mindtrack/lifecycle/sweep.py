"""
Appointment Sweep Scheduler — background loop that keeps appointment
statuses current.

Jobs:
  - status sweep: first run after ``initial_delay`` seconds, then every
    ``interval`` seconds
  - notification cleanup: removes expired notifications every
    ``cleanup_interval`` seconds

In-process asyncio tasks, one per job.  A failing run is logged and the
loop keeps going.

Scaling path: disable the loops (ENABLE_BACKGROUND_JOBS=false) and hit
POST /api/appointments/update-statuses from Cloud Scheduler instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from mindtrack.lifecycle.appointment_status import AppointmentStatusEngine

logger = logging.getLogger("lifecycle.sweep")

SWEEP_INTERVAL = 3600  # 1 hour
INITIAL_DELAY = 120  # let the app finish starting first
CLEANUP_INTERVAL = 6 * 3600


class AppointmentSweepScheduler:
    """
    Usage:
        scheduler = AppointmentSweepScheduler(engine, cleanup=notifications.cleanup_expired)
        await scheduler.start()

    On shutdown:
        await scheduler.stop()
    """

    def __init__(
        self,
        engine: AppointmentStatusEngine,
        cleanup: Optional[Callable[[], Awaitable[int]]] = None,
        interval: float = SWEEP_INTERVAL,
        initial_delay: float = INITIAL_DELAY,
        cleanup_interval: float = CLEANUP_INTERVAL,
    ) -> None:
        self._engine = engine
        self._cleanup = cleanup
        self._interval = interval
        self._initial_delay = initial_delay
        self._cleanup_interval = cleanup_interval
        self._tasks: list[asyncio.Task] = []
        self._running = False
        self.last_updated: Optional[int] = None
        self.last_cleaned: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("AppointmentSweepScheduler already running")
            return

        self._running = True
        self._tasks = [asyncio.create_task(self._sweep_loop())]
        if self._cleanup is not None:
            self._tasks.append(asyncio.create_task(self._cleanup_loop()))
        logger.info(
            "AppointmentSweepScheduler started (interval=%ss, initial delay=%ss)",
            self._interval, self._initial_delay,
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks = []
        logger.info("AppointmentSweepScheduler stopped")

    async def run_once(self) -> int:
        """One sweep pass, outside the timer."""
        self.last_updated = await self._engine.update_appointment_statuses()
        return self.last_updated

    async def cleanup_once(self) -> int:
        if self._cleanup is None:
            return 0
        self.last_cleaned = await self._cleanup()
        logger.info("Removed %d expired notifications", self.last_cleaned)
        return self.last_cleaned

    # ── Internal ──

    async def _sweep_loop(self) -> None:
        delay = self._initial_delay
        while self._running:
            try:
                await asyncio.sleep(delay)
                if not self._running:
                    break
                delay = self._interval
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Appointment sweep error: %s", exc, exc_info=True)

    async def _cleanup_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._cleanup_interval)
                if not self._running:
                    break
                await self.cleanup_once()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Notification cleanup error: %s", exc, exc_info=True)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_seconds": self._interval,
            "last_updated": self.last_updated,
            "last_cleaned": self.last_cleaned,
        }
