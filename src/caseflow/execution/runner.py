"""JobRunner - bounded-concurrency asyncio dispatcher for background jobs.

WHY
───
Extraction and AI analysis call metered upstream APIs. Running every
uploaded document at once trips their rate limits, so the runner admits
at most ``global_concurrency`` jobs at a time and queues the rest in FIFO
order. A failing job is logged and forgotten here; refunds and failure
alerting belong to the caller (see :mod:`caseflow.execution.processing`).

ARCHITECTURE
────────────
::

    JobRunner(global_concurrency=2)
      ├── .enqueue(fn, name=)          ─ append + dispatch, never blocks
      ├── ._drain()                    ─ admit while active < limit
      ├── .wait_idle()                 ─ await until nothing is in flight
      ├── .acquire_evidence_lock(id)   ─ single writer per evidence item
      ├── .release_evidence_lock(id)
      └── .stats()                     ─ JobStats snapshot

    enqueue ──► deque ──► _drain ──► asyncio.Task ──► finally: active -= 1
                  ▲                                          │
                  └──────────────── _drain() ◄───────────────┘

The queue is unbounded. ``active`` only changes inside ``_drain`` and the
task ``finally`` block, neither of which awaits, so ``active <= limit``
holds at every point another coroutine can observe it.

Example::

    runner = JobRunner(global_concurrency=2)
    runner.enqueue(lambda: extract("ev-1"), name="extract:ev-1")
    runner.enqueue(lambda: extract("ev-2"), name="extract:ev-2")
    await runner.wait_idle()
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from caseflow.core.logging import get_logger
from caseflow.execution.concurrency import EvidenceLocks
from caseflow.execution.models import JobStats

logger = get_logger(__name__)


@dataclass
class _QueuedJob:
    fn: Callable[[], Awaitable[Any]]
    name: str


class JobRunner:
    """Unbounded FIFO queue drained by at most ``global_concurrency`` tasks.

    Parameters
    ----------
    global_concurrency : int
        Maximum jobs in flight at once (default 2).
    locks : EvidenceLocks | None
        Lock set for evidence items; a fresh one per runner by default.
    """

    def __init__(self, global_concurrency: int = 2, *, locks: EvidenceLocks | None = None) -> None:
        if global_concurrency < 1:
            raise ValueError("global_concurrency must be at least 1")
        self._limit = global_concurrency
        self._queue: deque[_QueuedJob] = deque()
        self._active = 0
        self._tasks: set[asyncio.Task] = set()
        self._locks = locks if locks is not None else EvidenceLocks()
        self._seq = 0

    # ── Queueing ─────────────────────────────────────────────────────

    def enqueue(self, fn: Callable[[], Awaitable[Any]], *, name: str | None = None) -> None:
        """Queue an async callable and start it if a slot is free.

        Must be called from code running inside the event loop.
        """
        self._seq += 1
        job = _QueuedJob(fn=fn, name=name or f"job-{self._seq}")
        self._queue.append(job)
        logger.debug("job_runner.enqueued", name=job.name, queue_length=len(self._queue))
        self._drain()

    def _drain(self) -> None:
        while self._active < self._limit and self._queue:
            job = self._queue.popleft()
            self._active += 1
            task = asyncio.create_task(self._run(job), name=job.name)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job: _QueuedJob) -> None:
        logger.info("job_runner.job_started", name=job.name, active_jobs=self._active)
        try:
            await job.fn()
            logger.info("job_runner.job_completed", name=job.name)
        except Exception as e:
            logger.error(
                "job_runner.job_failed",
                name=job.name,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            self._active -= 1
            self._drain()

    async def wait_idle(self) -> None:
        """Wait until the queue is empty and no job is running."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    # ── Evidence locks ───────────────────────────────────────────────

    def acquire_evidence_lock(self, evidence_id: str) -> bool:
        """Take the lock for ``evidence_id``; False if already held."""
        return self._locks.acquire(evidence_id)

    def release_evidence_lock(self, evidence_id: str) -> None:
        self._locks.release(evidence_id)

    # ── Inspection ───────────────────────────────────────────────────

    def stats(self) -> JobStats:
        return JobStats(
            active_jobs=self._active,
            queue_length=len(self._queue),
            global_concurrency=self._limit,
            locked_evidence_ids=self._locks.list_active(),
        )

    @property
    def active_jobs(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def global_concurrency(self) -> int:
        return self._limit


__all__ = ["JobRunner"]
