"""
Operational alerting.

Throttled delivery to a Slack-compatible webhook with structured-log
fallback, plus sliding-window failure-spike detection.
"""

from caseflow.alerts.channels import LogChannel, WebhookChannel
from caseflow.alerts.dispatcher import AlertDispatcher, AlertOutcome, AlertStats
from caseflow.alerts.protocol import (
    AlertChannel,
    AlertPayload,
    AlertSeverity,
    AlertType,
    DeliveryResult,
)

__all__ = [
    # Enums
    "AlertSeverity",
    "AlertType",
    # Data classes
    "AlertPayload",
    "DeliveryResult",
    "AlertOutcome",
    "AlertStats",
    # Protocols
    "AlertChannel",
    # Implementations
    "LogChannel",
    "WebhookChannel",
    # Dispatcher
    "AlertDispatcher",
]
