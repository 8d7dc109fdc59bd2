"""
Shared pytest fixtures and configuration for caseflow tests.

This module provides:
- In-memory SQLite connections with the caseflow schema
- Ledger, usage log, quota engine and job repository fixtures
- A controllable clock for patching module-level ``utcnow()``
- A recording alert channel

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    def test_something(ledger, clock):
        ...
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Ensure caseflow package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from caseflow.alerts.protocol import AlertPayload, DeliveryResult
from caseflow.billing.entitlements import StaticEntitlementResolver
from caseflow.billing.ledger import CreditLedger
from caseflow.billing.quota import QuotaEngine
from caseflow.billing.usage import UsageLog
from caseflow.core.connection import create_connection
from caseflow.core.settings import clear_settings_cache
from caseflow.execution.repository import JobRepository


# =============================================================================
# Settings isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop cached settings before and after every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Storage fixtures
# =============================================================================


@pytest.fixture
def conn():
    """In-memory SQLite connection with all caseflow tables."""
    connection, _info = create_connection(None, init_schema=True)
    yield connection
    connection.close()


@pytest.fixture
def ledger(conn):
    return CreditLedger(conn)


@pytest.fixture
def usage_log(conn):
    return UsageLog(conn)


@pytest.fixture
def resolver():
    """Entitlement resolver; every unknown user is on the free tier."""
    return StaticEntitlementResolver()


@pytest.fixture
def quota(ledger, usage_log, resolver):
    return QuotaEngine(ledger, usage_log, resolver)


@pytest.fixture
def repository(conn):
    return JobRepository(conn)


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock fixed at 2026-03-15 12:00 UTC."""
    return FakeClock(datetime(2026, 3, 15, 12, 0, tzinfo=UTC))


# =============================================================================
# Alerts
# =============================================================================


class RecordingChannel:
    """Alert channel that stores payloads and can be told to fail."""

    def __init__(self, *, fail: bool = False, name: str = "recording"):
        self.sent: list[AlertPayload] = []
        self.fail = fail
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def send(self, payload: AlertPayload) -> DeliveryResult:
        if self.fail:
            return DeliveryResult.fail(self._name, RuntimeError("channel down"))
        self.sent.append(payload)
        return DeliveryResult.ok(self._name)


@pytest.fixture
def recording_channel():
    return RecordingChannel()
