"""Alert channels.

Manifesto:
    Any Slack-compatible incoming webhook is a valid alert target. When
    no webhook is configured, or the POST fails, the alert still lands in
    the structured log so nothing is silently lost.

Tags:
    caseflow, alerts, webhook, slack, logging

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

import httpx

from caseflow.alerts.protocol import AlertPayload, AlertSeverity, DeliveryResult
from caseflow.core.errors import TransientError
from caseflow.core.logging import get_logger

logger = get_logger(__name__)

SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: "#FF0000",
    AlertSeverity.ERROR: "#FF6600",
    AlertSeverity.WARNING: "#FFCC00",
}


def slack_attachment_payload(payload: AlertPayload) -> dict[str, Any]:
    """Render an alert as a Slack attachment message."""
    return {
        "attachments": [
            {
                "color": SEVERITY_COLORS[payload.severity],
                "title": f"[{payload.severity.value.upper()}] {payload.type.value}",
                "text": payload.message,
                "fields": [
                    {"title": key, "value": str(value), "short": True}
                    for key, value in payload.details.items()
                ],
                "ts": int(payload.timestamp.timestamp()),
            }
        ]
    }


class WebhookChannel:
    """
    Slack-compatible webhook channel.

    POSTs an attachment payload to a URL. Any non-2xx response or
    transport error is reported as a failed delivery.
    """

    def __init__(
        self,
        url: str,
        *,
        name: str = "webhook",
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._name = name
        self._url = url
        self._timeout = timeout
        self._headers = headers or {}
        self._client = client

    @property
    def name(self) -> str:
        return self._name

    async def send(self, payload: AlertPayload) -> DeliveryResult:
        body = slack_attachment_payload(payload)
        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)

        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=body, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("alert.webhook_failed", channel=self._name, error=str(e))
            return DeliveryResult.fail(self._name, TransientError(str(e), cause=e))
        except Exception as e:
            logger.warning("alert.webhook_failed", channel=self._name, error=str(e))
            return DeliveryResult.fail(self._name, e)

        if not response.is_success:
            logger.warning("alert.webhook_rejected", channel=self._name, status=response.status_code)
            return DeliveryResult.fail(
                self._name,
                TransientError(f"Webhook returned HTTP {response.status_code}"),
            )
        return DeliveryResult.ok(self._name, response={"status": response.status_code})


class LogChannel:
    """Writes alerts to the structured log. Never fails."""

    _LEVELS = {
        AlertSeverity.CRITICAL: "critical",
        AlertSeverity.ERROR: "error",
        AlertSeverity.WARNING: "warning",
    }

    def __init__(self, *, name: str = "log"):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def send(self, payload: AlertPayload) -> DeliveryResult:
        log = getattr(logger, self._LEVELS[payload.severity])
        log(
            "alert.fallback",
            alert_type=payload.type.value,
            alert_message=payload.message,
            severity=payload.severity.value,
            details=payload.details,
        )
        return DeliveryResult.ok(self._name)


__all__ = ["SEVERITY_COLORS", "slack_attachment_payload", "WebhookChannel", "LogChannel"]
