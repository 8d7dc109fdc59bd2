"""Tests for structlog configuration and context helpers."""

from __future__ import annotations

import pytest
import structlog

from caseflow.core.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)


@pytest.fixture(autouse=True)
def _reset_context():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_bind_and_unbind():
    bind_context(job_key="extract:ev-1", case_id="case-9")
    assert structlog.contextvars.get_contextvars() == {"job_key": "extract:ev-1", "case_id": "case-9"}
    unbind_context("case_id")
    assert structlog.contextvars.get_contextvars() == {"job_key": "extract:ev-1"}


@pytest.mark.asyncio
async def test_log_context_is_scoped():
    async with LogContext(job_key="analyze:ev-1", case_id="case-9"):
        assert structlog.contextvars.get_contextvars() == {"job_key": "analyze:ev-1", "case_id": "case-9"}
    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.asyncio
async def test_log_context_keeps_outer_bindings():
    bind_context(user_id="u-1")
    async with LogContext(job_key="k-1"):
        assert structlog.contextvars.get_contextvars() == {"user_id": "u-1", "job_key": "k-1"}
    assert structlog.contextvars.get_contextvars() == {"user_id": "u-1"}


def test_configured_logger_emits_event():
    configure_logging(level="DEBUG", json_format=False)
    with structlog.testing.capture_logs() as logs:
        get_logger("caseflow.test").info("credits.consumed", user_id="u-1", remaining=4)
    assert logs == [{"event": "credits.consumed", "user_id": "u-1", "remaining": 4, "log_level": "info"}]
