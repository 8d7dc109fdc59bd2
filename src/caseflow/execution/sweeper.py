"""Stale job sweeper - periodic requeue plus backlog alerting.

Runs once at process start and then every ``interval_seconds``:

1. ``JobRepository.requeue_all_stale()`` reclaims rows stuck in
   ``processing`` past the stale threshold.
2. ``AlertDispatcher.check_backlog_threshold()`` against the runner's
   in-memory queue (or the ``queued`` row count when no runner is attached).

A failing sweep is logged and the loop keeps going.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from caseflow.alerts.dispatcher import AlertDispatcher, AlertOutcome
from caseflow.core.logging import get_logger
from caseflow.execution.repository import JobRepository
from caseflow.execution.runner import JobRunner

logger = get_logger(__name__)


@dataclass(frozen=True)
class SweepResult:
    requeued: dict[str, int]
    queued_count: int
    backlog_alert: AlertOutcome | None = None

    @property
    def total_requeued(self) -> int:
        return sum(self.requeued.values())


class StaleJobSweeper:
    """Background task that keeps abandoned jobs moving."""

    def __init__(
        self,
        repository: JobRepository,
        alerts: AlertDispatcher,
        *,
        runner: JobRunner | None = None,
        interval_seconds: float = 300,
    ):
        self._repository = repository
        self._alerts = alerts
        self._runner = runner
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    async def run_once(self) -> SweepResult:
        requeued = self._repository.requeue_all_stale()
        if self._runner is not None:
            queued_count = self._runner.queue_length
        else:
            queued_count = self._repository.count_queued()

        outcome = await self._alerts.check_backlog_threshold(queued_count)
        result = SweepResult(requeued=requeued, queued_count=queued_count, backlog_alert=outcome)
        logger.debug("sweeper.run", total_requeued=result.total_requeued, queued_count=queued_count)
        return result

    async def _loop(self) -> None:
        try:
            while True:
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error("sweeper.failed", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass

    def start(self) -> None:
        """Start the recurring sweep; the first run happens immediately."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="stale-job-sweeper")
        logger.info("sweeper.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("sweeper.stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


__all__ = ["StaleJobSweeper", "SweepResult"]
