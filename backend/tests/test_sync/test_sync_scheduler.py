"""Tests for SyncScheduler — weekly asyncio fallback scheduler."""

import asyncio
import os
import sys
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from playbook_sync.models.playbook import SyncResult
from playbook_sync.sync.scheduler import SyncScheduler


class _FakePipeline:
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result or SyncResult(run_id="run-1", status="success")
        self.error = error
        self.delay = delay
        self.calls = 0

    async def run(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


def _scheduler(ledger, pipeline, **kwargs):
    kwargs.setdefault("interval_hours", 168)
    kwargs.setdefault("check_interval_minutes", 60)
    kwargs.setdefault("max_duration_seconds", 900)
    return SyncScheduler(pipeline_factory=lambda: pipeline, ledger=ledger, **kwargs)


def test_scheduler_init(ledger):
    scheduler = _scheduler(ledger, _FakePipeline())
    assert scheduler.check_interval_seconds == 3600
    assert scheduler.enabled is True
    assert scheduler.is_running is False


def test_scheduler_disabled_does_not_start(ledger):
    scheduler = _scheduler(ledger, _FakePipeline(), enabled=False)
    asyncio.run(scheduler.start())
    assert scheduler.is_running is False


def test_scheduler_start_stop(ledger):
    scheduler = _scheduler(ledger, _FakePipeline(), startup_delay_seconds=10)

    async def _test():
        await scheduler.start()
        assert scheduler.is_running is True
        await asyncio.sleep(0.01)
        scheduler.stop()
        await asyncio.sleep(0)
        assert scheduler.is_running is False

    asyncio.run(_test())


def test_is_due_without_runs(ledger):
    scheduler = _scheduler(ledger, _FakePipeline())
    assert asyncio.run(scheduler._is_due(datetime.now(timezone.utc))) is True


def test_is_due_after_interval(ledger):
    run = ledger.start_run(datetime(2020, 1, 1, tzinfo=timezone.utc))
    ledger.finalize_run(run.id, "failed", error_log="boom")
    scheduler = _scheduler(ledger, _FakePipeline())
    started = ledger.started_at_utc(ledger.get_run(run.id))

    # Any status counts: a failed run still resets the cadence
    assert asyncio.run(scheduler._is_due(started + timedelta(hours=167))) is False
    assert asyncio.run(scheduler._is_due(started + timedelta(hours=168))) is True


def test_is_due_reads_ledger_off_the_event_loop(ledger):
    scheduler = _scheduler(ledger, _FakePipeline())
    loop_thread = []

    def latest_run():
        loop_thread.append(threading.current_thread() is threading.main_thread())
        return None

    scheduler.ledger = MagicMock(latest_run=latest_run)
    assert asyncio.run(scheduler._is_due(datetime.now(timezone.utc))) is True
    assert loop_thread == [False]


def test_run_once_returns_result(ledger):
    pipeline = _FakePipeline()
    scheduler = _scheduler(ledger, pipeline)
    result = asyncio.run(scheduler.run_once())
    assert result["status"] == "success"
    assert scheduler.last_result == result
    assert scheduler.last_error is None
    assert pipeline.calls == 1


def test_run_once_records_errors(ledger):
    scheduler = _scheduler(ledger, _FakePipeline(error=RuntimeError("github down")))
    assert asyncio.run(scheduler.run_once()) is None
    assert scheduler.last_error == "github down"
    assert scheduler._in_progress is False


def test_run_once_enforces_duration_ceiling(ledger):
    scheduler = _scheduler(ledger, _FakePipeline(delay=5), max_duration_seconds=0.05)
    assert asyncio.run(scheduler.run_once()) is None
    assert "aborted" in scheduler.last_error


def test_only_one_run_in_flight(ledger):
    pipeline = _FakePipeline(delay=0.05)
    scheduler = _scheduler(ledger, pipeline)

    async def _test():
        return await asyncio.gather(scheduler.run_once(), scheduler.run_once())

    first, second = asyncio.run(_test())
    assert first is not None
    assert second is None
    assert pipeline.calls == 1


def test_check_and_run_skips_when_not_due(ledger):
    ledger.start_run(datetime(2020, 1, 1, tzinfo=timezone.utc))
    factory = MagicMock()
    scheduler = SyncScheduler(pipeline_factory=factory, ledger=ledger)
    asyncio.run(scheduler._check_and_run())
    factory.assert_not_called()


def test_get_status(ledger):
    scheduler = _scheduler(ledger, _FakePipeline())
    status = scheduler.get_status()
    assert status["enabled"] is True
    assert status["running"] is False
    assert status["in_progress"] is False
    assert status["interval_hours"] == 168
    assert status["last_run_id"] is None

    run = ledger.start_run(datetime(2020, 1, 1, tzinfo=timezone.utc))
    status = scheduler.get_status()
    assert status["last_run_id"] == run.id
    assert status["last_run_status"] == "running"
