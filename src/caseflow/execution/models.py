"""Job domain models.

Defines the data structures for background processing:
- Job: a persisted extraction / AI analysis / claim suggestion job
- JobStats: point-in-time snapshot of a JobRunner
- JobCounts: per-status counts for a case
- RecentFailure: a failed job with a user-safe error message

These models are used by JobRepository, JobProcessor, the CLI and the ops API.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from caseflow.core.timestamps import generate_ulid


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class InvalidTransitionError(ValueError):
    """Raised when an illegal job status transition is attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid JobStatus transition: {current} → {target}")


class JobType(str, Enum):
    """Kinds of background job the runner executes."""

    EXTRACTION = "extraction"
    AI_ANALYSIS = "ai_analysis"
    CLAIM_SUGGESTION = "claim_suggestion"


class JobStatus(str, Enum):
    """Status of a persisted job.

    Valid transition graph::

        QUEUED     → PROCESSING
        PROCESSING → COMPLETE | FAILED | QUEUED (stale requeue)
        FAILED     → QUEUED (resubmitted)
        COMPLETE   → (terminal)
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({
        JobStatus.COMPLETE,
        JobStatus.FAILED,
        JobStatus.QUEUED,  # stale requeue
    }),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
    JobStatus.COMPLETE: frozenset(),
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    if target not in JOB_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value)


@dataclass
class Job:
    """A background job row.

    ``job_key`` identifies the logical attempt and doubles as the credit
    ledger key, so a job that is consumed, retried and refunded touches the
    ledger at most once per reason.
    """

    job_type: JobType
    job_key: str
    user_id: str
    case_id: str | None = None
    resource_id: str | None = None
    status: JobStatus = JobStatus.QUEUED
    error: str | None = None
    id: str = field(default_factory=generate_ulid)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_type": self.job_type.value,
            "job_key": self.job_key,
            "status": self.status.value,
            "user_id": self.user_id,
            "case_id": self.case_id,
            "resource_id": self.resource_id,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class JobStats:
    """Read-only snapshot of a runner's in-memory state."""

    active_jobs: int
    queue_length: int
    global_concurrency: int
    locked_evidence_ids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_jobs": self.active_jobs,
            "queue_length": self.queue_length,
            "global_concurrency": self.global_concurrency,
            "locked_evidence_ids": list(self.locked_evidence_ids),
        }


@dataclass(frozen=True)
class JobCounts:
    queued: int = 0
    processing: int = 0
    complete: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.queued + self.processing + self.complete + self.failed

    def to_dict(self) -> dict[str, int]:
        return {
            "queued": self.queued,
            "processing": self.processing,
            "complete": self.complete,
            "failed": self.failed,
            "total": self.total,
        }


@dataclass(frozen=True)
class RecentFailure:
    job_id: str
    job_type: JobType
    resource_id: str | None
    error: str
    failed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type": self.job_type.value,
            "resource_id": self.resource_id,
            "error": self.error,
            "failed_at": self.failed_at.isoformat(),
        }


__all__ = [
    "InvalidTransitionError",
    "JobType",
    "JobStatus",
    "JOB_VALID_TRANSITIONS",
    "validate_job_transition",
    "Job",
    "JobStats",
    "JobCounts",
    "RecentFailure",
]
