"""
Tests for the Appointment Sweep Scheduler — start/stop lifecycle,
timer-driven sweeps and notification cleanup.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from mindtrack.lifecycle.sweep import AppointmentSweepScheduler


def make_engine(updated: int = 3):
    engine = MagicMock()
    engine.update_appointment_statuses = AsyncMock(return_value=updated)
    return engine


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = AppointmentSweepScheduler(make_engine(), initial_delay=60)
        await scheduler.start()
        assert scheduler.running is True
        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_double_start_is_ignored(self):
        scheduler = AppointmentSweepScheduler(make_engine(), initial_delay=60)
        await scheduler.start()
        tasks = list(scheduler._tasks)
        await scheduler.start()
        assert scheduler._tasks == tasks
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        scheduler = AppointmentSweepScheduler(make_engine())
        await scheduler.stop()  # Should not raise
        assert scheduler.running is False


class TestTimers:

    @pytest.mark.asyncio
    async def test_first_sweep_waits_for_initial_delay(self):
        engine = make_engine()
        scheduler = AppointmentSweepScheduler(engine, initial_delay=60, interval=60)
        await scheduler.start()
        await asyncio.sleep(0.05)
        engine.update_appointment_statuses.assert_not_awaited()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_sweeps_repeat_on_interval(self):
        engine = make_engine(updated=2)
        scheduler = AppointmentSweepScheduler(engine, initial_delay=0.01, interval=0.01)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert engine.update_appointment_statuses.await_count >= 2
        assert scheduler.last_updated == 2

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self):
        engine = make_engine()
        engine.update_appointment_statuses = AsyncMock(
            side_effect=[RuntimeError("store down"), 1, 1, 1, 1, 1, 1, 1, 1, 1]
        )
        scheduler = AppointmentSweepScheduler(engine, initial_delay=0.01, interval=0.01)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert engine.update_appointment_statuses.await_count >= 2
        assert scheduler.last_updated == 1

    @pytest.mark.asyncio
    async def test_cleanup_runs_on_its_own_interval(self):
        cleanup = AsyncMock(return_value=4)
        scheduler = AppointmentSweepScheduler(
            make_engine(), cleanup=cleanup, initial_delay=60, cleanup_interval=0.01
        )
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert cleanup.await_count >= 1
        assert scheduler.last_cleaned == 4


class TestManualRun:

    @pytest.mark.asyncio
    async def test_run_once(self):
        engine = make_engine(updated=5)
        scheduler = AppointmentSweepScheduler(engine)
        assert await scheduler.run_once() == 5
        assert scheduler.status()["last_updated"] == 5

    @pytest.mark.asyncio
    async def test_cleanup_once_without_cleanup_job(self):
        scheduler = AppointmentSweepScheduler(make_engine())
        assert await scheduler.cleanup_once() == 0
