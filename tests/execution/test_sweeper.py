"""Tests for StaleJobSweeper."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from caseflow.alerts.dispatcher import AlertDispatcher
from caseflow.alerts.protocol import AlertSeverity, AlertType
from caseflow.execution.models import Job, JobStatus, JobType
from caseflow.execution.runner import JobRunner
from caseflow.execution.sweeper import StaleJobSweeper


def _stale_job(repository, clock, key):
    job = repository.create(
        Job(job_type=JobType.EXTRACTION, job_key=key, user_id="u-1", case_id="case-1")
    )
    with patch("caseflow.execution.repository.utcnow", clock):
        repository.update_status(job.id, JobStatus.PROCESSING)
    return job


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_requeues_and_counts_rows(self, repository, recording_channel, clock):
        dispatcher = AlertDispatcher(recording_channel, backlog_threshold=1)
        _stale_job(repository, clock, "extract:a")
        _stale_job(repository, clock, "extract:b")
        clock.advance(minutes=20)

        sweeper = StaleJobSweeper(repository, dispatcher)
        with patch("caseflow.execution.repository.utcnow", clock):
            result = await sweeper.run_once()

        assert result.requeued["extraction"] == 2
        assert result.total_requeued == 2
        assert result.queued_count == 2
        assert result.backlog_alert is not None
        assert recording_channel.sent[0].type == AlertType.BACKLOG_HIGH
        assert recording_channel.sent[0].severity == AlertSeverity.WARNING

    @pytest.mark.asyncio
    async def test_uses_runner_queue_when_attached(self, repository, recording_channel):
        dispatcher = AlertDispatcher(recording_channel, backlog_threshold=20)
        runner = JobRunner(1)
        gate = asyncio.Event()
        for _ in range(3):
            runner.enqueue(gate.wait)

        sweeper = StaleJobSweeper(repository, dispatcher, runner=runner)
        result = await sweeper.run_once()
        assert result.queued_count == 2
        assert result.backlog_alert is None
        assert recording_channel.sent == []

        gate.set()
        await runner.wait_idle()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_stop_cancels(self, repository, recording_channel):
        sweeper = StaleJobSweeper(repository, AlertDispatcher(recording_channel), interval_seconds=60)
        calls = 0
        original = sweeper.run_once

        async def counted():
            nonlocal calls
            calls += 1
            return await original()

        sweeper.run_once = counted
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.01)
        await sweeper.stop()

        assert calls == 1
        assert not sweeper.running

    @pytest.mark.asyncio
    async def test_failing_sweep_keeps_loop_alive(self, repository, recording_channel):
        sweeper = StaleJobSweeper(repository, AlertDispatcher(recording_channel), interval_seconds=0.001)
        calls = 0

        async def broken():
            nonlocal calls
            calls += 1
            raise RuntimeError("database is locked")

        sweeper.run_once = broken
        sweeper.start()
        await asyncio.sleep(0.05)
        assert sweeper.running
        await sweeper.stop()
        assert calls > 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self, repository, recording_channel):
        await StaleJobSweeper(repository, AlertDispatcher(recording_channel)).stop()
