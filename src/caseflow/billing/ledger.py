"""Credit ledger - append-only, idempotent prepaid-credit accounting.

Architecture:

    .. code-block:: text

        CreditLedger - Single Source of Truth for credits
        ┌───────────────────────────────────────────────────────────┐
        │  WRITES (insert-if-absent)     READS                       │
        │  ─────────────────────────     ─────                       │
        │  consume_or_throw()   -q       get_balance()   (cached)    │
        │  refund_if_needed()   +q       ledger_sum()    (Σ delta)   │
        │  add_pack_credits()   +n       recent_entries()            │
        ├───────────────────────────────────────────────────────────┤
        │  cf_credit_ledger  UNIQUE (job_key, reason)                │
        │  cf_user_balances  balance == Σ delta per user             │
        └───────────────────────────────────────────────────────────┘

Each write inserts with ``ON CONFLICT (job_key, reason) DO NOTHING``. When
the insert is a no-op another delivery of the same event already landed,
so the existing row is re-read and returned as the prior success. Ledger
rows are never updated or deleted.

Job failures refund only what was consumed: a refund without a matching
``consume`` row for the same ``job_key`` is a no-op.

Example:
    >>> ledger = CreditLedger(conn)
    >>> ledger.add_pack_credits("u-1", 200, job_key="pack:evt_123")
    GrantResult(ledger_id='01J...', new_balance=200, already_granted=False)
    >>> ledger.consume_or_throw("u-1", "ocr_page", "extract:ev-1").remaining
    199
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from caseflow.core.errors import ErrorContext, StorageError
from caseflow.core.logging import get_logger
from caseflow.core.timestamps import from_iso8601, generate_ulid, to_iso8601

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class CreditReason(str, Enum):
    CONSUME = "consume"
    REFUND_FAILURE = "refund_failure"
    PACK_PURCHASE = "pack_purchase"


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable ledger row."""

    id: str
    user_id: str
    case_id: str | None
    job_type: str
    job_key: str
    delta: int
    reason: CreditReason
    error: str | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "case_id": self.case_id,
            "job_type": self.job_type,
            "job_key": self.job_key,
            "delta": self.delta,
            "reason": self.reason.value,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ConsumeResult:
    consumed: bool
    ledger_id: str | None
    remaining: int
    already_consumed: bool


@dataclass(frozen=True)
class RefundResult:
    refunded: bool
    ledger_id: str | None
    already_refunded: bool


@dataclass(frozen=True)
class GrantResult:
    ledger_id: str
    new_balance: int
    already_granted: bool


class CreditLedger:
    """Idempotent credit operations over ``cf_credit_ledger``.

    Works with any connection satisfying
    :class:`caseflow.core.protocols.Connection`.
    """

    def __init__(self, conn):
        self._conn = conn

    # =========================================================================
    # WRITES
    # =========================================================================

    def consume_or_throw(
        self,
        user_id: str,
        job_type: str,
        job_key: str,
        quantity: int = 1,
        case_id: str | None = None,
    ) -> ConsumeResult:
        """Draw ``quantity`` credits for ``job_key`` exactly once.

        Insufficient balance is reported through ``consumed=False``.

        Raises:
            StorageError: If the backing store fails mid-write
        """
        existing = self._find_entry_id(job_key, CreditReason.CONSUME)
        if existing is not None:
            return ConsumeResult(
                consumed=True,
                ledger_id=existing,
                remaining=self.get_balance(user_id),
                already_consumed=True,
            )

        balance = self.get_balance(user_id)
        if balance < quantity:
            logger.debug(
                "credits.insufficient",
                user_id=user_id,
                job_key=job_key,
                balance=balance,
                quantity=quantity,
            )
            return ConsumeResult(consumed=False, ledger_id=None, remaining=balance, already_consumed=False)

        with self._transaction(user_id=user_id, job_key=job_key, operation="consume"):
            ledger_id = self._insert_if_absent(
                user_id=user_id,
                case_id=case_id,
                job_type=job_type,
                job_key=job_key,
                delta=-quantity,
                reason=CreditReason.CONSUME,
            )
            if ledger_id is not None:
                self._apply_delta(user_id, -quantity)

        if ledger_id is None:
            return ConsumeResult(
                consumed=True,
                ledger_id=self._find_entry_id(job_key, CreditReason.CONSUME),
                remaining=self.get_balance(user_id),
                already_consumed=True,
            )

        remaining = self.get_balance(user_id)
        logger.info(
            "credits.consumed",
            user_id=user_id,
            job_key=job_key,
            quantity=quantity,
            remaining=remaining,
        )
        return ConsumeResult(consumed=True, ledger_id=ledger_id, remaining=remaining, already_consumed=False)

    def refund_if_needed(
        self,
        user_id: str,
        job_type: str,
        job_key: str,
        error: str | None = None,
        quantity: int = 1,
        case_id: str | None = None,
    ) -> RefundResult:
        """Return the credit consumed by a failed job, at most once."""
        if self._find_entry_id(job_key, CreditReason.CONSUME) is None:
            logger.debug("credits.refund_skipped", job_key=job_key, reason="no_consume")
            return RefundResult(refunded=False, ledger_id=None, already_refunded=False)

        existing = self._find_entry_id(job_key, CreditReason.REFUND_FAILURE)
        if existing is not None:
            return RefundResult(refunded=True, ledger_id=existing, already_refunded=True)

        with self._transaction(user_id=user_id, job_key=job_key, operation="refund"):
            ledger_id = self._insert_if_absent(
                user_id=user_id,
                case_id=case_id,
                job_type=job_type,
                job_key=job_key,
                delta=quantity,
                reason=CreditReason.REFUND_FAILURE,
                error=error[:MAX_ERROR_LENGTH] if error else None,
            )
            if ledger_id is not None:
                self._apply_delta(user_id, quantity)

        if ledger_id is None:
            return RefundResult(
                refunded=True,
                ledger_id=self._find_entry_id(job_key, CreditReason.REFUND_FAILURE),
                already_refunded=True,
            )

        logger.info(
            "credits.refunded",
            user_id=user_id,
            job_key=job_key,
            quantity=quantity,
            error=error[:100] if error else None,
        )
        return RefundResult(refunded=True, ledger_id=ledger_id, already_refunded=False)

    def add_pack_credits(
        self,
        user_id: str,
        credits: int,
        job_key: str,
        job_type: str = "export",
    ) -> GrantResult:
        """Grant purchased credits once per payment event."""
        if credits <= 0:
            raise ValueError("credits must be positive")

        existing = self._find_entry_id(job_key, CreditReason.PACK_PURCHASE)
        if existing is not None:
            logger.info("credits.pack_already_recorded", user_id=user_id, job_key=job_key)
            return GrantResult(ledger_id=existing, new_balance=self.get_balance(user_id), already_granted=True)

        with self._transaction(user_id=user_id, job_key=job_key, operation="pack_purchase"):
            ledger_id = self._insert_if_absent(
                user_id=user_id,
                case_id=None,
                job_type=job_type,
                job_key=job_key,
                delta=credits,
                reason=CreditReason.PACK_PURCHASE,
            )
            if ledger_id is not None:
                self._apply_delta(user_id, credits, pack_purchase=True)

        if ledger_id is None:
            return GrantResult(
                ledger_id=self._find_entry_id(job_key, CreditReason.PACK_PURCHASE),
                new_balance=self.get_balance(user_id),
                already_granted=True,
            )

        new_balance = self.get_balance(user_id)
        logger.info(
            "credits.pack_added",
            user_id=user_id,
            job_key=job_key,
            credits=credits,
            new_balance=new_balance,
        )
        return GrantResult(ledger_id=ledger_id, new_balance=new_balance, already_granted=False)

    # =========================================================================
    # READS
    # =========================================================================

    def get_balance(self, user_id: str) -> int:
        """Cached balance; 0 for users with no ledger history."""
        self._conn.execute("SELECT balance FROM cf_user_balances WHERE user_id = ?", (user_id,))
        row = self._conn.fetchone()
        return row["balance"] if row else 0

    def ledger_sum(self, user_id: str) -> int:
        """Σ delta straight from the ledger, for consistency checks."""
        self._conn.execute(
            "SELECT COALESCE(SUM(delta), 0) AS total FROM cf_credit_ledger WHERE user_id = ?",
            (user_id,),
        )
        row = self._conn.fetchone()
        return row["total"]

    def recent_entries(self, user_id: str, limit: int = 10) -> list[LedgerEntry]:
        self._conn.execute(
            """
            SELECT id, user_id, case_id, job_type, job_key, delta, reason, error, created_at
            FROM cf_credit_ledger
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._row_to_entry(row) for row in self._conn.fetchall()]

    def last_pack_purchase_at(self, user_id: str) -> datetime | None:
        self._conn.execute(
            "SELECT last_pack_purchase_at FROM cf_user_balances WHERE user_id = ?",
            (user_id,),
        )
        row = self._conn.fetchone()
        return from_iso8601(row["last_pack_purchase_at"]) if row else None

    # =========================================================================
    # HELPERS
    # =========================================================================

    @contextmanager
    def _transaction(self, **context: Any):
        try:
            yield
            self._conn.commit()
        except Exception as e:
            self._conn.rollback()
            logger.error("credits.write_failed", error=str(e), **context)
            raise StorageError(
                f"Credit ledger write failed: {e}",
                context=ErrorContext(
                    user_id=context.get("user_id"),
                    job_key=context.get("job_key"),
                    metadata={"operation": context.get("operation")},
                ),
                cause=e,
            ) from e

    def _find_entry_id(self, job_key: str, reason: CreditReason) -> str | None:
        self._conn.execute(
            "SELECT id FROM cf_credit_ledger WHERE job_key = ? AND reason = ? LIMIT 1",
            (job_key, reason.value),
        )
        row = self._conn.fetchone()
        return row["id"] if row else None

    def _insert_if_absent(
        self,
        *,
        user_id: str,
        case_id: str | None,
        job_type: str,
        job_key: str,
        delta: int,
        reason: CreditReason,
        error: str | None = None,
    ) -> str | None:
        """Insert a ledger row; None if ``(job_key, reason)`` already exists."""
        ledger_id = generate_ulid()
        self._conn.execute(
            """
            INSERT INTO cf_credit_ledger (
                id, user_id, case_id, job_type, job_key, delta, reason, error, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (job_key, reason) DO NOTHING
            """,
            (
                ledger_id,
                user_id,
                case_id,
                job_type,
                job_key,
                delta,
                reason.value,
                error,
                to_iso8601(utcnow()),
            ),
        )
        if self._conn.rowcount == 0:
            return None
        return ledger_id

    def _apply_delta(self, user_id: str, delta: int, *, pack_purchase: bool = False) -> None:
        now = to_iso8601(utcnow())
        self._conn.execute(
            """
            INSERT INTO cf_user_balances (user_id, balance, updated_at)
            VALUES (?, 0, ?)
            ON CONFLICT (user_id) DO NOTHING
            """,
            (user_id, now),
        )
        self._conn.execute(
            """
            UPDATE cf_user_balances
            SET balance = MAX(0, balance + ?),
                last_pack_purchase_at = CASE WHEN ? THEN ? ELSE last_pack_purchase_at END,
                updated_at = ?
            WHERE user_id = ?
            """,
            (delta, 1 if pack_purchase else 0, now, now, user_id),
        )

    def _row_to_entry(self, row) -> LedgerEntry:
        return LedgerEntry(
            id=row["id"],
            user_id=row["user_id"],
            case_id=row["case_id"],
            job_type=row["job_type"],
            job_key=row["job_key"],
            delta=row["delta"],
            reason=CreditReason(row["reason"]),
            error=row["error"],
            created_at=from_iso8601(row["created_at"]),
        )


__all__ = [
    "CreditReason",
    "LedgerEntry",
    "ConsumeResult",
    "RefundResult",
    "GrantResult",
    "CreditLedger",
    "MAX_ERROR_LENGTH",
]
