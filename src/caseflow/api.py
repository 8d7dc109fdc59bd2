"""
Ops router - runner, alert, credit and quota introspection.

Mount it on the application that owns the process-wide singletons::

    app.include_router(create_ops_router(runner, dispatcher, ledger, quota))

Endpoints:
    GET  /ops/jobs/stats          Runner snapshot (active, queued, locks)
    GET  /ops/alerts/stats        Throttle-map size and oldest send
    GET  /ops/credits/{user_id}   Cached balance plus recent ledger rows
    POST /ops/quota/check         Run an admission check

Handlers are ``async def`` so they run on the event loop alongside the
job runner, which owns the same single-cursor SQLite connection.

Tags:
    caseflow, api, ops, fastapi

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from caseflow.alerts.dispatcher import AlertDispatcher
from caseflow.billing.ledger import CreditLedger
from caseflow.billing.quota import QuotaCheckType, QuotaEngine
from caseflow.execution.runner import JobRunner

# ── Schemas ──────────────────────────────────────────────────────────


class JobStatsSchema(BaseModel):
    active_jobs: int = Field(description="Jobs currently executing")
    queue_length: int = Field(description="Jobs waiting for a slot")
    global_concurrency: int = Field(description="Maximum jobs in flight")
    locked_evidence_ids: list[str] = Field(default_factory=list, description="Evidence items held by a job")


class AlertStatsSchema(BaseModel):
    recent_alert_count: int = Field(description="Entries in the throttle map")
    oldest_alert: str | None = Field(default=None, description="ISO-8601 time of the oldest tracked send")


class LedgerEntrySchema(BaseModel):
    id: str
    job_type: str
    job_key: str
    delta: int
    reason: str
    created_at: str


class CreditSummarySchema(BaseModel):
    user_id: str
    balance: int = Field(description="Cached credit balance")
    recent: list[LedgerEntrySchema] = Field(default_factory=list, description="Newest ledger rows first")


class QuotaCheckRequest(BaseModel):
    user_id: str
    type: QuotaCheckType
    quantity: int = Field(default=1, ge=1)
    job_key: str | None = Field(default=None, description="Idempotency key for any credit draw")
    case_id: str | None = None


class QuotaCheckResponse(BaseModel):
    allowed: bool
    code: str | None = None
    reason: str | None = None
    remaining: int | None = None
    used_credit: bool = False
    pack_suggested: str | None = None


# ── Router ───────────────────────────────────────────────────────────


def create_ops_router(
    runner: JobRunner,
    dispatcher: AlertDispatcher,
    ledger: CreditLedger,
    quota: QuotaEngine,
) -> APIRouter:
    """Build the ``/ops`` router bound to the given instances."""
    router = APIRouter(prefix="/ops", tags=["ops"])

    @router.get("/jobs/stats", response_model=JobStatsSchema)
    async def job_stats() -> JobStatsSchema:
        return JobStatsSchema(**runner.stats().to_dict())

    @router.get("/alerts/stats", response_model=AlertStatsSchema)
    async def alert_stats() -> AlertStatsSchema:
        return AlertStatsSchema(**dispatcher.stats().to_dict())

    @router.get("/credits/{user_id}", response_model=CreditSummarySchema)
    async def credit_summary(
        user_id: str,
        limit: int = Query(10, ge=1, le=100, description="Ledger rows to return"),
    ) -> CreditSummarySchema:
        entries = ledger.recent_entries(user_id, limit=limit)
        return CreditSummarySchema(
            user_id=user_id,
            balance=ledger.get_balance(user_id),
            recent=[
                LedgerEntrySchema(
                    id=e.id,
                    job_type=e.job_type,
                    job_key=e.job_key,
                    delta=e.delta,
                    reason=e.reason.value,
                    created_at=e.created_at.isoformat(),
                )
                for e in entries
            ],
        )

    @router.post("/quota/check", response_model=QuotaCheckResponse)
    async def quota_check(body: QuotaCheckRequest) -> QuotaCheckResponse:
        result = quota.check_quota(
            body.user_id,
            body.type,
            body.quantity,
            job_key=body.job_key,
            case_id=body.case_id,
        )
        return QuotaCheckResponse(**result.to_dict())

    return router


__all__ = ["create_ops_router"]
