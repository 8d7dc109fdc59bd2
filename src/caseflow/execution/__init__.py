"""
Background job execution.

Bounded-concurrency runner, classified retry with backoff, persisted job
rows with stale reclamation, and the processor that refunds credits and
reports failures.
"""

from caseflow.execution.concurrency import EvidenceLocks
from caseflow.execution.models import (
    InvalidTransitionError,
    Job,
    JobCounts,
    JobStats,
    JobStatus,
    JobType,
    RecentFailure,
)
from caseflow.execution.processing import JobProcessor
from caseflow.execution.repository import STALE_THRESHOLD_MINUTES, JobRepository
from caseflow.execution.retry import ExponentialBackoff, NoRetry, RetryContext, run_with_retry
from caseflow.execution.runner import JobRunner
from caseflow.execution.sweeper import StaleJobSweeper, SweepResult

__all__ = [
    # Models
    "InvalidTransitionError",
    "Job",
    "JobCounts",
    "JobStats",
    "JobStatus",
    "JobType",
    "RecentFailure",
    # Runner
    "EvidenceLocks",
    "JobRunner",
    # Retry
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "run_with_retry",
    # Persistence
    "JobRepository",
    "STALE_THRESHOLD_MINUTES",
    # Coordination
    "JobProcessor",
    "StaleJobSweeper",
    "SweepResult",
]
