"""
Lazy-initialised dependency-injection container.

:class:`CaseflowContainer` builds the process-wide singletons (one runner,
one dispatcher, one connection) from :class:`CaseflowSettings` on first
access, so the throttle map, failure window, concurrency cap and evidence
locks are each held exactly once per process.

Usage::

    from caseflow.container import CaseflowContainer

    with CaseflowContainer() as c:
        c.sweeper.start()
        c.processor.submit(job, handler, credit_user_id=job.user_id)

    # Serving the ops API:
    app.include_router(container.ops_router())
"""

from __future__ import annotations

from typing import Any

from caseflow.alerts.dispatcher import AlertDispatcher
from caseflow.billing.entitlements import EntitlementResolver, StaticEntitlementResolver
from caseflow.billing.ledger import CreditLedger
from caseflow.billing.quota import QuotaEngine
from caseflow.billing.usage import UsageLog
from caseflow.core.connection import create_connection
from caseflow.core.settings import CaseflowSettings, get_settings
from caseflow.execution.processing import JobProcessor
from caseflow.execution.repository import JobRepository
from caseflow.execution.runner import JobRunner
from caseflow.execution.sweeper import StaleJobSweeper


class CaseflowContainer:
    """Lazy-initialised dependency container.

    Components are created on first property access and disposed via
    :meth:`close` (or the context-manager protocol).
    """

    def __init__(
        self,
        settings: CaseflowSettings | None = None,
        *,
        entitlements: EntitlementResolver | None = None,
    ) -> None:
        self._settings = settings
        self._entitlements = entitlements
        self._conn: Any | None = None
        self._runner: JobRunner | None = None
        self._repository: JobRepository | None = None
        self._ledger: CreditLedger | None = None
        self._usage: UsageLog | None = None
        self._quota: QuotaEngine | None = None
        self._alerts: AlertDispatcher | None = None
        self._processor: JobProcessor | None = None
        self._sweeper: StaleJobSweeper | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> CaseflowSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def conn(self) -> Any:
        if self._conn is None:
            self._conn, _info = create_connection(self.settings.database_url, init_schema=True)
        return self._conn

    @property
    def entitlements(self) -> EntitlementResolver:
        if self._entitlements is None:
            self._entitlements = StaticEntitlementResolver()
        return self._entitlements

    @property
    def runner(self) -> JobRunner:
        if self._runner is None:
            self._runner = JobRunner(self.settings.global_concurrency)
        return self._runner

    @property
    def repository(self) -> JobRepository:
        if self._repository is None:
            self._repository = JobRepository(
                self.conn,
                stale_threshold_minutes=self.settings.stale_threshold_minutes,
            )
        return self._repository

    @property
    def ledger(self) -> CreditLedger:
        if self._ledger is None:
            self._ledger = CreditLedger(self.conn)
        return self._ledger

    @property
    def usage(self) -> UsageLog:
        if self._usage is None:
            self._usage = UsageLog(self.conn)
        return self._usage

    @property
    def quota(self) -> QuotaEngine:
        if self._quota is None:
            self._quota = QuotaEngine(self.ledger, self.usage, self.entitlements)
        return self._quota

    @property
    def alerts(self) -> AlertDispatcher:
        if self._alerts is None:
            self._alerts = AlertDispatcher.from_settings(self.settings)
        return self._alerts

    @property
    def processor(self) -> JobProcessor:
        if self._processor is None:
            self._processor = JobProcessor.from_settings(
                self.settings,
                self.runner,
                self.repository,
                self.ledger,
                self.alerts,
            )
        return self._processor

    @property
    def sweeper(self) -> StaleJobSweeper:
        if self._sweeper is None:
            self._sweeper = StaleJobSweeper(
                self.repository,
                self.alerts,
                runner=self.runner,
                interval_seconds=self.settings.sweep_interval_seconds,
            )
        return self._sweeper

    def ops_router(self) -> Any:
        """FastAPI ``/ops`` router bound to this container's instances."""
        from caseflow.api import create_ops_router

        return create_ops_router(self.runner, self.alerts, self.ledger, self.quota)

    # ── Lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> CaseflowContainer:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["CaseflowContainer"]
