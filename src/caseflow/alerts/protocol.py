"""
Alerting protocol and data classes.

Defines the channel interface and the payload that flows through it.
Concrete channels are in channels.py; throttling and spike detection
live in dispatcher.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class AlertType(str, Enum):
    """Operational alert kinds."""

    BACKLOG_HIGH = "backlog_high"
    FAILURES_SPIKE = "failures_spike"
    AUTH_ERROR = "auth_error"
    RATE_LIMIT_GLOBAL = "rate_limit_global"
    QUOTA_EXCEEDED = "quota_exceeded"
    SYSTEM_ERROR = "system_error"


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def _order(self) -> list[AlertSeverity]:
        return [AlertSeverity.WARNING, AlertSeverity.ERROR, AlertSeverity.CRITICAL]

    def __lt__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) < self._order().index(other)

    def __le__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) <= self._order().index(other)

    def __ge__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) >= self._order().index(other)

    def __gt__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) > self._order().index(other)


@dataclass
class AlertPayload:
    """One alert as handed to a channel."""

    type: AlertType
    message: str
    severity: AlertSeverity = AlertSeverity.WARNING
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class DeliveryResult:
    """Result of an alert delivery attempt."""

    channel_name: str
    success: bool
    message: str | None = None
    response: dict[str, Any] | None = None
    error: Exception | None = None
    delivered_at: datetime = field(default_factory=utcnow)

    @classmethod
    def ok(cls, channel_name: str, message: str | None = None, **kwargs: Any) -> DeliveryResult:
        return cls(channel_name=channel_name, success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, channel_name: str, error: Exception) -> DeliveryResult:
        return cls(channel_name=channel_name, success=False, error=error, message=str(error))


@runtime_checkable
class AlertChannel(Protocol):
    """
    Protocol for alert channels.

    Implementations must provide:
    - name: Unique channel identifier
    - send(): Deliver an alert, reporting failure through the result
    """

    @property
    def name(self) -> str:
        """Unique channel name."""
        ...

    async def send(self, payload: AlertPayload) -> DeliveryResult:
        """Send alert to the channel."""
        ...


__all__ = [
    "AlertType",
    "AlertSeverity",
    "AlertPayload",
    "DeliveryResult",
    "AlertChannel",
]
