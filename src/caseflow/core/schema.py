"""
Caseflow tables.

Defines table names and DDL for the four persisted aggregates:

    ::

        ┌────────────────────────────────────────────────────────────┐
        │ jobs           → cf_jobs            (status rows, mutable) │
        │ credit_ledger  → cf_credit_ledger   (append-only)          │
        │ user_balances  → cf_user_balances   (cached Σ delta)       │
        │ usage_events   → cf_usage_events    (append-only, raw)     │
        └────────────────────────────────────────────────────────────┘

The ledger's ``UNIQUE (job_key, reason)`` constraint is what makes consume,
refund and pack grants exactly-once under at-least-once delivery.

Examples:
    >>> from caseflow.core.schema import CORE_TABLES, create_tables
    >>> CORE_TABLES["credit_ledger"]
    'cf_credit_ledger'
    >>> create_tables(conn)

Tags:
    schema, ddl, tables, caseflow-core, database
"""

CORE_TABLES = {
    "jobs": "cf_jobs",
    "credit_ledger": "cf_credit_ledger",
    "user_balances": "cf_user_balances",
    "usage_events": "cf_usage_events",
}


CORE_DDL = {
    # =========================================================================
    # CF_JOBS: one row per background job (extraction, AI analysis, claim
    # suggestion). Status is the only column the runner side mutates.
    # =========================================================================
    "jobs": """
        CREATE TABLE IF NOT EXISTS cf_jobs (
            id TEXT PRIMARY KEY,
            job_type TEXT NOT NULL,         -- extraction, ai_analysis, claim_suggestion
            job_key TEXT NOT NULL UNIQUE,   -- idempotency key of the logical attempt
            status TEXT NOT NULL,           -- queued, processing, complete, failed
            user_id TEXT NOT NULL,
            case_id TEXT,
            resource_id TEXT,               -- evidence id the job works on
            error TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "credit_ledger": """
        CREATE TABLE IF NOT EXISTS cf_credit_ledger (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            case_id TEXT,
            job_type TEXT NOT NULL,
            job_key TEXT NOT NULL,
            delta INTEGER NOT NULL,         -- signed
            reason TEXT NOT NULL,           -- consume, refund_failure, pack_purchase
            error TEXT,
            created_at TEXT NOT NULL,
            UNIQUE (job_key, reason)
        )
    """,
    "user_balances": """
        CREATE TABLE IF NOT EXISTS cf_user_balances (
            user_id TEXT PRIMARY KEY,
            balance INTEGER NOT NULL DEFAULT 0,
            last_pack_purchase_at TEXT,
            updated_at TEXT NOT NULL
        )
    """,
    "usage_events": """
        CREATE TABLE IF NOT EXISTS cf_usage_events (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            case_id TEXT,
            event_type TEXT NOT NULL,       -- ocr_page, ai_call, ai_tokens, upload_bytes
            quantity INTEGER NOT NULL,
            metadata_json TEXT,
            created_at TEXT NOT NULL
        )
    """,
}


CORE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_cf_jobs_status_updated ON cf_jobs (status, updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_cf_jobs_case ON cf_jobs (case_id, job_type, status)",
    "CREATE INDEX IF NOT EXISTS idx_cf_ledger_user ON cf_credit_ledger (user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_cf_usage_user_time ON cf_usage_events (user_id, created_at)",
]


def create_tables(conn) -> None:
    """Create all caseflow tables and indexes (idempotent)."""
    for ddl in CORE_DDL.values():
        conn.execute(ddl)
    for index in CORE_INDEXES:
        conn.execute(index)
    conn.commit()


__all__ = ["CORE_TABLES", "CORE_DDL", "CORE_INDEXES", "create_tables"]
