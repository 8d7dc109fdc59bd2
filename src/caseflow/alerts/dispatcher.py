"""
Alert dispatcher - throttled delivery and failure-spike detection.

Manifesto:
    A stuck queue or a provider outage produces the same failure hundreds
    of times a minute. Operators need one page, not hundreds, so every
    alert is throttled per ``(type, throttle_key)`` and job failures are
    aggregated over a sliding window before anyone is notified.

Architecture:

    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      AlertDispatcher                         │
        ├─────────────────────────────────────────────────────────────┤
        │  send_alert(type, message, ...)                              │
        │    ├─ throttled? ─────────────► log "alert.throttled", drop  │
        │    ├─ channel.send() ──ok────► done                          │
        │    │      └─ fail / none ────► fallback (structured log)     │
        │    └─ record send time  (evict oldest 500 beyond 1000)       │
        │                                                              │
        │  record_failure_for_alerting(error_type)                     │
        │    prune < now-10min, append, len >= 10 ─► failures_spike    │
        │                                                              │
        │  check_backlog_threshold(queued, threshold=20)               │
        │    queued > threshold ─► backlog_high (error if > 2x)        │
        └─────────────────────────────────────────────────────────────┘

State lives on the instance: build one dispatcher per process and share it.
The throttle map and failure window are only touched between ``await``
points, so the event loop never interleaves two updates.

Examples:
    >>> dispatcher = AlertDispatcher.from_settings(get_settings())
    >>> await dispatcher.record_failure_for_alerting("rate_limited")
    >>> await dispatcher.check_backlog_threshold(45)
    >>> dispatcher.stats().recent_alert_count
    1

Tags:
    caseflow, alerts, throttling, sliding-window, slack

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from caseflow.alerts.channels import LogChannel, WebhookChannel
from caseflow.alerts.protocol import (
    AlertChannel,
    AlertPayload,
    AlertSeverity,
    AlertType,
    DeliveryResult,
)
from caseflow.core.logging import get_logger

logger = get_logger(__name__)

THROTTLE_MINUTES = 15
FAILURE_WINDOW_MINUTES = 10
FAILURE_SPIKE_THRESHOLD = 10
BACKLOG_THRESHOLD = 20
MAX_THROTTLE_ENTRIES = 1000
THROTTLE_EVICT_COUNT = 500


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class FailureWindowEntry:
    timestamp: datetime
    error_type: str


@dataclass(frozen=True)
class AlertOutcome:
    """What happened to one ``send_alert`` call."""

    throttled: bool
    delivered: bool = False
    channel: str | None = None
    payload: AlertPayload | None = None

    @classmethod
    def dropped(cls) -> AlertOutcome:
        return cls(throttled=True)


@dataclass(frozen=True)
class AlertStats:
    recent_alert_count: int
    oldest_alert: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recent_alert_count": self.recent_alert_count,
            "oldest_alert": self.oldest_alert.isoformat() if self.oldest_alert else None,
        }


class AlertDispatcher:
    """
    Throttles, delivers and aggregates operational alerts.

    Args:
        channel: Primary delivery channel; None means log-only
        fallback: Channel used when the primary fails or is absent
        throttle_minutes: Minimum gap between two sends of the same key
        failure_window_minutes: Length of the failure sliding window
        failure_spike_threshold: Failures in the window that trigger a spike alert
        backlog_threshold: Default queued-job threshold for backlog alerts
    """

    def __init__(
        self,
        channel: AlertChannel | None = None,
        *,
        fallback: AlertChannel | None = None,
        throttle_minutes: int = THROTTLE_MINUTES,
        failure_window_minutes: int = FAILURE_WINDOW_MINUTES,
        failure_spike_threshold: int = FAILURE_SPIKE_THRESHOLD,
        backlog_threshold: int = BACKLOG_THRESHOLD,
        max_throttle_entries: int = MAX_THROTTLE_ENTRIES,
        throttle_evict_count: int = THROTTLE_EVICT_COUNT,
    ):
        self._channel = channel
        self._fallback = fallback or LogChannel()
        self._throttle_window = timedelta(minutes=throttle_minutes)
        self._failure_window = timedelta(minutes=failure_window_minutes)
        self._failure_window_minutes = failure_window_minutes
        self._spike_threshold = failure_spike_threshold
        self._backlog_threshold = backlog_threshold
        self._max_throttle_entries = max_throttle_entries
        self._evict_count = throttle_evict_count

        self._recent_alerts: dict[str, datetime] = {}
        self._failures: deque[FailureWindowEntry] = deque()

    @classmethod
    def from_settings(cls, settings: Any) -> AlertDispatcher:
        """Build a dispatcher from :class:`~caseflow.core.settings.CaseflowSettings`."""
        channel = None
        if settings.alert_webhook_url:
            channel = WebhookChannel(settings.alert_webhook_url, timeout=settings.alert_timeout_seconds)
        return cls(
            channel,
            throttle_minutes=settings.throttle_minutes,
            failure_window_minutes=settings.failure_window_minutes,
            failure_spike_threshold=settings.failure_spike_threshold,
            backlog_threshold=settings.backlog_threshold,
        )

    # ── Throttle ─────────────────────────────────────────────────────

    @staticmethod
    def _key(alert_type: AlertType, throttle_key: str) -> str:
        return f"{alert_type.value}:{throttle_key}"

    def _should_throttle(self, alert_type: AlertType, throttle_key: str, now: datetime) -> bool:
        last_sent = self._recent_alerts.get(self._key(alert_type, throttle_key))
        return last_sent is not None and now - last_sent < self._throttle_window

    def _mark_sent(self, alert_type: AlertType, throttle_key: str, now: datetime) -> None:
        self._recent_alerts[self._key(alert_type, throttle_key)] = now
        if len(self._recent_alerts) > self._max_throttle_entries:
            oldest = sorted(self._recent_alerts.items(), key=lambda item: item[1])[: self._evict_count]
            for key, _ in oldest:
                del self._recent_alerts[key]
            logger.debug("alert.throttle_evicted", evicted=len(oldest), remaining=len(self._recent_alerts))

    # ── Delivery ─────────────────────────────────────────────────────

    async def send_alert(
        self,
        alert_type: AlertType | str,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        severity: AlertSeverity | str = AlertSeverity.WARNING,
        throttle_key: str = "default",
        skip_throttle: bool = False,
    ) -> AlertOutcome:
        """Deliver an alert unless the same key fired within the throttle window.

        Delivery failures never raise; the alert falls back to the log.
        """
        alert_type = AlertType(alert_type)
        severity = AlertSeverity(severity)
        now = utcnow()

        if not skip_throttle and self._should_throttle(alert_type, throttle_key, now):
            logger.info("alert.throttled", alert_type=alert_type.value, throttle_key=throttle_key)
            return AlertOutcome.dropped()

        payload = AlertPayload(
            type=alert_type,
            message=message,
            severity=severity,
            details=details or {},
            timestamp=now,
        )

        result: DeliveryResult | None = None
        if self._channel is not None:
            try:
                result = await self._channel.send(payload)
            except Exception as e:
                logger.error(
                    "alert.channel_error",
                    channel=self._channel.name,
                    alert_type=alert_type.value,
                    error=str(e),
                )
        if result is None or not result.success:
            result = await self._fallback.send(payload)

        self._mark_sent(alert_type, throttle_key, now)
        return AlertOutcome(
            throttled=False,
            delivered=result.success,
            channel=result.channel_name,
            payload=payload,
        )

    # ── Failure spikes ───────────────────────────────────────────────

    async def record_failure_for_alerting(self, error_type: str) -> AlertOutcome | None:
        """Add one failure to the sliding window; alert once it reaches the threshold.

        The window is not cleared after alerting. The spike alert's own
        throttle keeps repeats to one per throttle window.
        """
        now = utcnow()
        window_start = now - self._failure_window
        while self._failures and self._failures[0].timestamp < window_start:
            self._failures.popleft()

        self._failures.append(FailureWindowEntry(timestamp=now, error_type=error_type))

        if len(self._failures) < self._spike_threshold:
            return None

        type_counts = dict(Counter(entry.error_type for entry in self._failures))
        return await self.send_alert(
            AlertType.FAILURES_SPIKE,
            f"Failure spike detected: {len(self._failures)} failures in {self._failure_window_minutes} minutes",
            details={"failure_count": len(self._failures), "type_counts": type_counts},
            severity=AlertSeverity.ERROR,
            throttle_key="failures",
        )

    @property
    def failure_window_size(self) -> int:
        return len(self._failures)

    # ── Threshold checks ─────────────────────────────────────────────

    async def check_backlog_threshold(self, queued_count: int, threshold: int | None = None) -> AlertOutcome | None:
        """Alert when more than ``threshold`` jobs are queued."""
        threshold = self._backlog_threshold if threshold is None else threshold
        if queued_count <= threshold:
            return None
        return await self.send_alert(
            AlertType.BACKLOG_HIGH,
            f"AI job backlog is high: {queued_count} jobs queued",
            details={"queued_count": queued_count, "threshold": threshold},
            severity=AlertSeverity.ERROR if queued_count > threshold * 2 else AlertSeverity.WARNING,
            throttle_key="backlog",
        )

    async def alert_auth_error(self, service: str, error: str) -> AlertOutcome:
        """Credentials rejected by an upstream service. Never throttled."""
        return await self.send_alert(
            AlertType.AUTH_ERROR,
            f"Authentication error for {service}",
            details={"service": service, "error": error[:200]},
            severity=AlertSeverity.CRITICAL,
            throttle_key=service,
            skip_throttle=True,
        )

    async def alert_rate_limit_global(self, service: str) -> AlertOutcome:
        return await self.send_alert(
            AlertType.RATE_LIMIT_GLOBAL,
            f"Global rate limit hit for {service}",
            details={"service": service},
            severity=AlertSeverity.ERROR,
            throttle_key=f"ratelimit:{service}",
        )

    # ── Inspection ───────────────────────────────────────────────────

    def stats(self) -> AlertStats:
        sent = list(self._recent_alerts.values())
        return AlertStats(recent_alert_count=len(sent), oldest_alert=min(sent) if sent else None)


__all__ = [
    "THROTTLE_MINUTES",
    "FAILURE_WINDOW_MINUTES",
    "FAILURE_SPIKE_THRESHOLD",
    "BACKLOG_THRESHOLD",
    "FailureWindowEntry",
    "AlertOutcome",
    "AlertStats",
    "AlertDispatcher",
]
