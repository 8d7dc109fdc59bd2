"""Job repository - persisted job rows and stale-job reclamation.

Architecture:

    .. code-block:: text

        JobRepository - cf_jobs
        ┌───────────────────────────────────────────────────────────┐
        │  JOB CRUD                  STALE RECLAMATION               │
        │  ─────────                 ─────────────────               │
        │  create()                  requeue_stale_extractions()     │
        │  get() / get_by_key()      requeue_stale_ai_analyses()     │
        │  update_status() settle()  requeue_stale_claim_suggestions()│
        │                            requeue_all_stale()             │
        │  REPORTING                                                 │
        │  ─────────                                                 │
        │  count_by_status()  recent_failures()  count_queued()      │
        └───────────────────────────────────────────────────────────┘

A job left in ``processing`` longer than the stale threshold belongs to a
worker that crashed or was redeployed mid-run. Requeueing flips it back to
``queued`` so the next sweep picks it up again; the credit ledger keys on
``job_key`` so the retry is never charged twice.

Example:
    >>> repo = JobRepository(conn)
    >>> repo.create(Job(job_type=JobType.EXTRACTION, job_key="extract:ev-1", user_id="u-1"))
    >>> repo.requeue_all_stale()
    {'extraction': 0, 'ai_analysis': 0, 'claim_suggestion': 0}
"""

from datetime import UTC, datetime, timedelta

from caseflow.core.errors import humanize_error
from caseflow.core.logging import get_logger
from caseflow.core.timestamps import from_iso8601, to_iso8601
from caseflow.execution.models import (
    Job,
    JobCounts,
    JobStatus,
    JobType,
    RecentFailure,
    validate_job_transition,
)

logger = get_logger(__name__)

STALE_THRESHOLD_MINUTES = 15

_JOB_COLUMNS = (
    "id, job_type, job_key, status, user_id, case_id, resource_id, error, created_at, updated_at"
)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class JobRepository:
    """CRUD and maintenance queries for ``cf_jobs``."""

    def __init__(self, conn, *, stale_threshold_minutes: int = STALE_THRESHOLD_MINUTES):
        """Initialize with a database connection.

        Args:
            conn: Object satisfying :class:`caseflow.core.protocols.Connection`
            stale_threshold_minutes: Age after which a ``processing`` row is stale
        """
        self._conn = conn
        self._stale_threshold = timedelta(minutes=stale_threshold_minutes)

    # =========================================================================
    # JOB CRUD
    # =========================================================================

    def create(self, job: Job) -> Job:
        self._conn.execute(
            f"INSERT INTO cf_jobs ({_JOB_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                job.id,
                job.job_type.value,
                job.job_key,
                job.status.value,
                job.user_id,
                job.case_id,
                job.resource_id,
                job.error,
                to_iso8601(job.created_at),
                to_iso8601(job.updated_at),
            ),
        )
        self._conn.commit()
        logger.debug("jobs.created", job_id=job.id, job_key=job.job_key, job_type=job.job_type.value)
        return job

    def get(self, job_id: str) -> Job | None:
        self._conn.execute(f"SELECT {_JOB_COLUMNS} FROM cf_jobs WHERE id = ?", (job_id,))
        row = self._conn.fetchone()
        return self._row_to_job(row) if row else None

    def get_by_key(self, job_key: str) -> Job | None:
        self._conn.execute(f"SELECT {_JOB_COLUMNS} FROM cf_jobs WHERE job_key = ?", (job_key,))
        row = self._conn.fetchone()
        return self._row_to_job(row) if row else None

    def update_status(self, job_id: str, status: JobStatus, error: str | None = None) -> Job:
        """Move a job to ``status``, enforcing the transition graph.

        Raises:
            KeyError: If the job does not exist
            InvalidTransitionError: If the transition is not allowed
        """
        job = self.get(job_id)
        if job is None:
            raise KeyError(job_id)
        validate_job_transition(job.status, status)

        now = utcnow()
        self._conn.execute(
            "UPDATE cf_jobs SET status = ?, error = ?, updated_at = ? WHERE id = ?",
            (status.value, error, to_iso8601(now), job_id),
        )
        self._conn.commit()

        job.status = status
        job.error = error
        job.updated_at = now
        return job

    def settle(self, job_id: str, status: JobStatus, error: str | None = None) -> bool:
        """Record the outcome of a run that owned the job.

        Accepts a row in either ``processing`` or ``queued``: the stale sweep
        may have requeued the row while its handler was still running, and
        the outcome of that run still stands.

        Returns:
            False if the row was already terminal (another run settled it).

        Raises:
            ValueError: If ``status`` is not COMPLETE or FAILED
        """
        if status not in (JobStatus.COMPLETE, JobStatus.FAILED):
            raise ValueError(f"settle() needs a terminal status, got {status.value}")

        self._conn.execute(
            "UPDATE cf_jobs SET status = ?, error = ?, updated_at = ? WHERE id = ? AND status IN (?, ?)",
            (
                status.value,
                error,
                to_iso8601(utcnow()),
                job_id,
                JobStatus.PROCESSING.value,
                JobStatus.QUEUED.value,
            ),
        )
        settled = self._conn.rowcount > 0
        self._conn.commit()
        if not settled:
            logger.warning("jobs.settle_skipped", job_id=job_id, status=status.value)
        return settled

    # =========================================================================
    # STALE RECLAMATION
    # =========================================================================

    def _requeue_stale(self, job_type: JobType) -> int:
        now = utcnow()
        cutoff = now - self._stale_threshold
        self._conn.execute(
            """
            UPDATE cf_jobs
            SET status = ?, updated_at = ?
            WHERE job_type = ? AND status = ? AND updated_at < ?
            """,
            (
                JobStatus.QUEUED.value,
                to_iso8601(now),
                job_type.value,
                JobStatus.PROCESSING.value,
                to_iso8601(cutoff),
            ),
        )
        count = self._conn.rowcount
        self._conn.commit()
        if count > 0:
            logger.warning("jobs.requeued_stale", job_type=job_type.value, count=count)
        return count

    def requeue_stale_extractions(self) -> int:
        return self._requeue_stale(JobType.EXTRACTION)

    def requeue_stale_ai_analyses(self) -> int:
        return self._requeue_stale(JobType.AI_ANALYSIS)

    def requeue_stale_claim_suggestions(self) -> int:
        return self._requeue_stale(JobType.CLAIM_SUGGESTION)

    def requeue_all_stale(self) -> dict[str, int]:
        """Requeue stale rows of every job type.

        Returns:
            Count per job type.
        """
        counts = {
            JobType.EXTRACTION.value: self.requeue_stale_extractions(),
            JobType.AI_ANALYSIS.value: self.requeue_stale_ai_analyses(),
            JobType.CLAIM_SUGGESTION.value: self.requeue_stale_claim_suggestions(),
        }
        total = sum(counts.values())
        if total:
            logger.info("jobs.requeue_all_stale", total=total, **counts)
        return counts

    # =========================================================================
    # REPORTING
    # =========================================================================

    def count_by_status(self, case_id: str, job_type: JobType | None = None) -> JobCounts:
        sql = "SELECT status, COUNT(*) AS n FROM cf_jobs WHERE case_id = ?"
        params: list = [case_id]
        if job_type is not None:
            sql += " AND job_type = ?"
            params.append(job_type.value)
        sql += " GROUP BY status"

        self._conn.execute(sql, tuple(params))
        counts = {row["status"]: row["n"] for row in self._conn.fetchall()}
        return JobCounts(
            queued=counts.get(JobStatus.QUEUED.value, 0),
            processing=counts.get(JobStatus.PROCESSING.value, 0),
            complete=counts.get(JobStatus.COMPLETE.value, 0),
            failed=counts.get(JobStatus.FAILED.value, 0),
        )

    def recent_failures(
        self,
        case_id: str,
        limit: int = 5,
        job_type: JobType | None = None,
    ) -> list[RecentFailure]:
        """Most recent failed jobs for a case, newest first, with redacted errors."""
        sql = "SELECT id, job_type, resource_id, error, updated_at FROM cf_jobs WHERE case_id = ? AND status = ?"
        params: list = [case_id, JobStatus.FAILED.value]
        if job_type is not None:
            sql += " AND job_type = ?"
            params.append(job_type.value)
        sql += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)

        self._conn.execute(sql, tuple(params))
        return [
            RecentFailure(
                job_id=row["id"],
                job_type=JobType(row["job_type"]),
                resource_id=row["resource_id"],
                error=humanize_error(row["error"]),
                failed_at=from_iso8601(row["updated_at"]),
            )
            for row in self._conn.fetchall()
        ]

    def count_queued(self) -> int:
        """Number of rows waiting in ``queued`` across all cases."""
        self._conn.execute(
            "SELECT COUNT(*) AS n FROM cf_jobs WHERE status = ?",
            (JobStatus.QUEUED.value,),
        )
        row = self._conn.fetchone()
        return row["n"] if row else 0

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _row_to_job(self, row) -> Job:
        return Job(
            id=row["id"],
            job_type=JobType(row["job_type"]),
            job_key=row["job_key"],
            status=JobStatus(row["status"]),
            user_id=row["user_id"],
            case_id=row["case_id"],
            resource_id=row["resource_id"],
            error=row["error"],
            created_at=from_iso8601(row["created_at"]),
            updated_at=from_iso8601(row["updated_at"]),
        )


__all__ = ["JobRepository", "STALE_THRESHOLD_MINUTES"]
