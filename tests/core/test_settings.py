"""Tests for CaseflowSettings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from caseflow.core.settings import CaseflowSettings, clear_settings_cache, get_settings


class TestDefaults:
    def test_runner_defaults(self):
        s = CaseflowSettings(_env_file=None)
        assert s.global_concurrency == 2
        assert s.stale_threshold_minutes == 15
        assert s.max_retries == 3
        assert s.base_delay_seconds == 2.0
        assert s.jitter_max_seconds == 1.0

    def test_alert_defaults(self):
        s = CaseflowSettings(_env_file=None)
        assert s.alert_webhook_url is None
        assert s.throttle_minutes == 15
        assert s.failure_window_minutes == 10
        assert s.failure_spike_threshold == 10
        assert s.backlog_threshold == 20


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CASEFLOW_GLOBAL_CONCURRENCY", "5")
        monkeypatch.setenv("CASEFLOW_ALERT_WEBHOOK_URL", "https://hooks.example.test/abc")
        s = CaseflowSettings(_env_file=None)
        assert s.global_concurrency == 5
        assert s.alert_webhook_url == "https://hooks.example.test/abc"

    def test_blank_webhook_is_none(self, monkeypatch):
        monkeypatch.setenv("CASEFLOW_ALERT_WEBHOOK_URL", "   ")
        assert CaseflowSettings(_env_file=None).alert_webhook_url is None

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            CaseflowSettings(_env_file=None, log_format="xml")

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            CaseflowSettings(_env_file=None, global_concurrency=0)


class TestCache:
    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache_reloads(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("CASEFLOW_MAX_RETRIES", "7")
        clear_settings_cache()
        second = get_settings()
        assert second is not first
        assert second.max_retries == 7
