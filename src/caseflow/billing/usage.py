"""Usage log - append-only metering events.

Every OCR page, model call, token batch and uploaded byte is recorded as a
``cf_usage_events`` row. Rows are never deduplicated or rewritten; quota
windows are computed by summing ``quantity`` since the window start.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from caseflow.core.logging import get_logger
from caseflow.core.timestamps import generate_ulid, to_iso8601

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class UsageType(str, Enum):
    OCR_PAGE = "ocr_page"
    AI_CALL = "ai_call"
    AI_TOKENS = "ai_tokens"
    UPLOAD_BYTES = "upload_bytes"


@dataclass(frozen=True)
class UsageEvent:
    id: str
    user_id: str
    event_type: UsageType
    quantity: int
    case_id: str | None
    metadata: dict[str, Any]
    created_at: datetime


class UsageLog:
    """Writes and aggregates ``cf_usage_events``."""

    def __init__(self, conn):
        self._conn = conn

    def record_usage(
        self,
        user_id: str,
        event_type: UsageType,
        quantity: int,
        case_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageEvent:
        """Append one usage event."""
        event = UsageEvent(
            id=generate_ulid(),
            user_id=user_id,
            event_type=UsageType(event_type),
            quantity=quantity,
            case_id=case_id,
            metadata=metadata or {},
            created_at=utcnow(),
        )
        self._conn.execute(
            """
            INSERT INTO cf_usage_events (id, user_id, case_id, event_type, quantity, metadata_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.user_id,
                event.case_id,
                event.event_type.value,
                event.quantity,
                json.dumps(event.metadata),
                to_iso8601(event.created_at),
            ),
        )
        self._conn.commit()
        logger.debug(
            "usage.recorded",
            user_id=user_id,
            event_type=event.event_type.value,
            quantity=quantity,
        )
        return event

    def totals_since(self, user_id: str, since: datetime) -> dict[UsageType, int]:
        """Σ quantity per event type for events at or after ``since``."""
        self._conn.execute(
            """
            SELECT event_type, COALESCE(SUM(quantity), 0) AS total
            FROM cf_usage_events
            WHERE user_id = ? AND created_at >= ?
            GROUP BY event_type
            """,
            (user_id, to_iso8601(since)),
        )
        totals = {usage_type: 0 for usage_type in UsageType}
        for row in self._conn.fetchall():
            totals[UsageType(row["event_type"])] = row["total"]
        return totals


__all__ = ["UsageType", "UsageEvent", "UsageLog"]
