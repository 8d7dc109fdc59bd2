"""Job processing - ties the runner, job rows, credits and alerts together.

WHY
───
The runner only knows about callables. Something has to turn a persisted
job into one: lock the evidence item, flip the row to ``processing``, run
the handler under the retry policy, record the outcome, and on failure
give the user their credit back and feed the failure-spike detector.

ARCHITECTURE
────────────
::

    JobProcessor.submit(job, handler, credit_user_id=)
      ├── repository.get_by_key / create      ─ one row per job_key
      └── runner.enqueue(_process)

    _process
      ├── acquire_evidence_lock  ── busy ──► defer until the holder releases
      ├── update_status(PROCESSING)
      ├── run_with_retry(handler)
      │     ok   ─► settle(COMPLETE)
      │     fail ─► settle(FAILED, error)
      │             ledger.refund_if_needed(job_key)
      │             alerts.record_failure_for_alerting(kind)
      └── release_evidence_lock ─► re-enqueue deferred jobs for that item

``settle`` accepts a row the stale sweep requeued mid-run, so a slow
handler still records its outcome and the refund always happens.

Example::

    processor = JobProcessor(runner, repository, ledger, dispatcher)
    processor.submit(
        Job(job_type=JobType.EXTRACTION, job_key="extract:ev-1", user_id="u-1", resource_id="ev-1"),
        extract_handler,
        credit_user_id="u-1",
    )
    await runner.wait_idle()
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from caseflow.alerts.dispatcher import AlertDispatcher
from caseflow.billing.ledger import CreditLedger
from caseflow.core.errors import FailureKind, classify_error
from caseflow.core.logging import LogContext, get_logger
from caseflow.execution.models import Job, JobStatus
from caseflow.execution.repository import JobRepository
from caseflow.execution.retry import run_with_retry
from caseflow.execution.runner import JobRunner

logger = get_logger(__name__)

JobHandler = Callable[[Job], Awaitable[Any]]


class JobProcessor:
    """Runs persisted jobs through a :class:`JobRunner` with retry and refunds."""

    def __init__(
        self,
        runner: JobRunner,
        repository: JobRepository,
        ledger: CreditLedger,
        alerts: AlertDispatcher,
        *,
        max_retries: int = 3,
        base_delay: float = 2.0,
        jitter_max: float = 1.0,
    ):
        self._runner = runner
        self._repository = repository
        self._ledger = ledger
        self._alerts = alerts
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._jitter_max = jitter_max
        self._deferred: dict[str, list[tuple[Job, JobHandler, str | None]]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        runner: JobRunner,
        repository: JobRepository,
        ledger: CreditLedger,
        alerts: AlertDispatcher,
    ) -> JobProcessor:
        return cls(
            runner,
            repository,
            ledger,
            alerts,
            max_retries=settings.max_retries,
            base_delay=settings.base_delay_seconds,
            jitter_max=settings.jitter_max_seconds,
        )

    def submit(self, job: Job, handler: JobHandler, *, credit_user_id: str | None = None) -> bool:
        """Persist (or find) the job row and queue it on the runner.

        Args:
            job: Job to run; an existing row with the same ``job_key`` wins
            handler: Async callable receiving the job
            credit_user_id: User whose consumed credit is refunded on failure

        Returns:
            False if the job is already running or complete, else True.
        """
        existing = self._repository.get_by_key(job.job_key)
        if existing is None:
            job = self._repository.create(job)
        elif existing.status in (JobStatus.PROCESSING, JobStatus.COMPLETE):
            logger.info("job_processor.skipped", job_key=job.job_key, status=existing.status.value)
            return False
        else:
            job = existing

        self._enqueue(job, handler, credit_user_id)
        return True

    @property
    def deferred_count(self) -> int:
        """Jobs waiting for an evidence lock to be released."""
        return sum(len(waiting) for waiting in self._deferred.values())

    def _enqueue(self, job: Job, handler: JobHandler, credit_user_id: str | None) -> None:
        self._runner.enqueue(
            lambda: self._process(job, handler, credit_user_id),
            name=job.job_key,
        )

    def _redispatch(self, resource_id: str) -> None:
        for job, handler, credit_user_id in self._deferred.pop(resource_id, []):
            self._enqueue(job, handler, credit_user_id)

    async def _process(self, job: Job, handler: JobHandler, credit_user_id: str | None) -> None:
        async with LogContext(job_key=job.job_key, job_type=job.job_type.value, case_id=job.case_id):
            await self._run_locked(job, handler, credit_user_id)

    async def _run_locked(self, job: Job, handler: JobHandler, credit_user_id: str | None) -> None:
        if job.resource_id is not None and not self._runner.acquire_evidence_lock(job.resource_id):
            self._deferred.setdefault(job.resource_id, []).append((job, handler, credit_user_id))
            logger.info("job_processor.evidence_locked", job_key=job.job_key, resource_id=job.resource_id)
            return

        try:
            current = self._repository.get(job.id)
            if current is None or current.status in (JobStatus.PROCESSING, JobStatus.COMPLETE):
                logger.info("job_processor.skipped", job_key=job.job_key, status=current and current.status.value)
                return
            if current.status == JobStatus.FAILED:
                self._repository.update_status(job.id, JobStatus.QUEUED)
            self._repository.update_status(job.id, JobStatus.PROCESSING)

            try:
                await run_with_retry(
                    lambda: handler(job),
                    max_retries=self._max_retries,
                    base_delay=self._base_delay,
                    jitter_max=self._jitter_max,
                    name=job.job_key,
                )
            except Exception as e:
                await self._handle_failure(job, e, credit_user_id)
                return

            self._repository.settle(job.id, JobStatus.COMPLETE)
            logger.info("job_processor.completed", job_key=job.job_key, job_type=job.job_type.value)
        finally:
            if job.resource_id is not None:
                self._runner.release_evidence_lock(job.resource_id)
                self._redispatch(job.resource_id)

    async def _handle_failure(self, job: Job, error: Exception, credit_user_id: str | None) -> None:
        classified = classify_error(error)
        message = str(error) or type(error).__name__
        logger.error(
            "job_processor.failed",
            job_key=job.job_key,
            job_type=job.job_type.value,
            kind=classified.kind.value,
            error=message,
        )

        try:
            self._repository.settle(job.id, JobStatus.FAILED, error=message)
        finally:
            if credit_user_id is not None:
                self._ledger.refund_if_needed(
                    credit_user_id,
                    job.job_type.value,
                    job.job_key,
                    error=message,
                    case_id=job.case_id,
                )

            await self._alerts.record_failure_for_alerting(classified.kind.value)
            if classified.context.http_status == 401:
                await self._alerts.alert_auth_error(job.job_type.value, message)
            elif classified.kind == FailureKind.RATE_LIMITED:
                await self._alerts.alert_rate_limit_global(job.job_type.value)


__all__ = ["JobProcessor", "JobHandler"]
