"""Tests for AlertDispatcher throttling, spike detection and fallback."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from caseflow.alerts.dispatcher import AlertDispatcher
from caseflow.alerts.protocol import AlertSeverity, AlertType
from caseflow.core.settings import CaseflowSettings

CLOCK = "caseflow.alerts.dispatcher.utcnow"


@pytest.fixture
def dispatcher(recording_channel):
    return AlertDispatcher(recording_channel)


class TestThrottle:
    @pytest.mark.asyncio
    async def test_same_key_within_window_is_dropped(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            first = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "db down", throttle_key="db")
            clock.advance(minutes=5)
            second = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "db down", throttle_key="db")

        assert first.delivered is True
        assert second.throttled is True
        assert len(recording_channel.sent) == 1

    @pytest.mark.asyncio
    async def test_window_expires(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "db down")
            clock.advance(minutes=15)
            outcome = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "db down")
        assert outcome.throttled is False
        assert len(recording_channel.sent) == 2

    @pytest.mark.asyncio
    async def test_distinct_keys_and_types_are_independent(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "a", throttle_key="one")
            await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "b", throttle_key="two")
            await dispatcher.send_alert(AlertType.QUOTA_EXCEEDED, "c", throttle_key="one")
        assert len(recording_channel.sent) == 3

    @pytest.mark.asyncio
    async def test_skip_throttle(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            for _ in range(3):
                await dispatcher.send_alert(AlertType.AUTH_ERROR, "bad key", skip_throttle=True)
        assert len(recording_channel.sent) == 3

    @pytest.mark.asyncio
    async def test_throttle_map_is_bounded(self, recording_channel, clock):
        dispatcher = AlertDispatcher(recording_channel, max_throttle_entries=10, throttle_evict_count=5)
        with patch(CLOCK, clock):
            for i in range(11):
                clock.advance(seconds=1)
                await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "x", throttle_key=f"k{i}")
            assert dispatcher.stats().recent_alert_count == 6
            # oldest keys were evicted, so they may fire again
            again = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "x", throttle_key="k0")
            still = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "x", throttle_key="k10")
        assert again.throttled is False
        assert still.throttled is True


class TestDelivery:
    @pytest.mark.asyncio
    async def test_failed_channel_falls_back_to_log(self, recording_channel, clock):
        recording_channel.fail = True
        dispatcher = AlertDispatcher(recording_channel)
        with patch(CLOCK, clock):
            outcome = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "webhook gone")
            repeat = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "webhook gone")

        assert outcome.delivered is True
        assert outcome.channel == "log"
        assert repeat.throttled is True

    @pytest.mark.asyncio
    async def test_raising_channel_falls_back_to_log(self, clock):
        class BrokenChannel:
            name = "broken"

            async def send(self, payload):
                raise ConnectionError("connection reset by peer")

        dispatcher = AlertDispatcher(BrokenChannel())
        with patch(CLOCK, clock):
            outcome = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "webhook gone")
            repeat = await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "webhook gone")

        assert outcome.delivered is True
        assert outcome.channel == "log"
        assert repeat.throttled is True
        assert dispatcher.stats().recent_alert_count == 1

    @pytest.mark.asyncio
    async def test_no_channel_logs_only(self):
        outcome = await AlertDispatcher().send_alert("system_error", "hello", severity="critical")
        assert outcome.channel == "log"
        assert outcome.payload.severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_payload_fields(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            await dispatcher.send_alert(
                AlertType.QUOTA_EXCEEDED,
                "user over quota",
                details={"user_id": "u-1"},
                severity=AlertSeverity.ERROR,
            )
        payload = recording_channel.sent[0]
        assert payload.to_dict() == {
            "type": "quota_exceeded",
            "message": "user over quota",
            "severity": "error",
            "details": {"user_id": "u-1"},
            "timestamp": clock().isoformat(),
        }


class TestFailureSpike:
    @pytest.mark.asyncio
    async def test_spike_fires_at_threshold(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            for i in range(9):
                assert await dispatcher.record_failure_for_alerting("fatal" if i % 2 else "rate_limited") is None
            outcome = await dispatcher.record_failure_for_alerting("fatal")

        assert outcome is not None and outcome.delivered
        alert = recording_channel.sent[0]
        assert alert.type == AlertType.FAILURES_SPIKE
        assert alert.severity == AlertSeverity.ERROR
        assert alert.message == "Failure spike detected: 10 failures in 10 minutes"
        assert alert.details == {"failure_count": 10, "type_counts": {"rate_limited": 5, "fatal": 5}}

    @pytest.mark.asyncio
    async def test_spread_out_failures_do_not_alert(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            for _ in range(20):
                await dispatcher.record_failure_for_alerting("fatal")
                clock.advance(minutes=2)
        assert recording_channel.sent == []
        assert dispatcher.failure_window_size == 6

    @pytest.mark.asyncio
    async def test_repeat_spike_is_throttled(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            for _ in range(15):
                await dispatcher.record_failure_for_alerting("fatal")
        assert len(recording_channel.sent) == 1
        assert dispatcher.failure_window_size == 15


class TestThresholds:
    @pytest.mark.asyncio
    async def test_backlog_at_threshold_is_quiet(self, dispatcher, recording_channel):
        assert await dispatcher.check_backlog_threshold(20) is None
        assert recording_channel.sent == []

    @pytest.mark.asyncio
    async def test_backlog_severity(self, recording_channel, clock):
        with patch(CLOCK, clock):
            warn = await AlertDispatcher(recording_channel).check_backlog_threshold(25)
            err = await AlertDispatcher(recording_channel).check_backlog_threshold(41)
        assert warn.payload.severity == AlertSeverity.WARNING
        assert err.payload.severity == AlertSeverity.ERROR
        assert err.payload.details == {"queued_count": 41, "threshold": 20}

    @pytest.mark.asyncio
    async def test_backlog_throttled(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            await dispatcher.check_backlog_threshold(30)
            second = await dispatcher.check_backlog_threshold(50, threshold=5)
        assert second.throttled is True

    @pytest.mark.asyncio
    async def test_auth_error_never_throttled_and_truncated(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            await dispatcher.alert_auth_error("ai_analysis", "x" * 500)
            await dispatcher.alert_auth_error("ai_analysis", "x" * 500)
        assert len(recording_channel.sent) == 2
        assert recording_channel.sent[0].severity == AlertSeverity.CRITICAL
        assert len(recording_channel.sent[0].details["error"]) == 200

    @pytest.mark.asyncio
    async def test_rate_limit_throttled_per_service(self, dispatcher, recording_channel, clock):
        with patch(CLOCK, clock):
            await dispatcher.alert_rate_limit_global("ocr")
            await dispatcher.alert_rate_limit_global("ocr")
            await dispatcher.alert_rate_limit_global("ai_analysis")
        assert [p.details["service"] for p in recording_channel.sent] == ["ocr", "ai_analysis"]


class TestStats:
    @pytest.mark.asyncio
    async def test_stats(self, dispatcher, clock):
        assert dispatcher.stats().to_dict() == {"recent_alert_count": 0, "oldest_alert": None}
        with patch(CLOCK, clock):
            await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "a", throttle_key="1")
            clock.advance(minutes=1)
            await dispatcher.send_alert(AlertType.SYSTEM_ERROR, "b", throttle_key="2")
        stats = dispatcher.stats()
        assert stats.recent_alert_count == 2
        assert stats.oldest_alert == clock.now.replace(minute=0)

    def test_from_settings(self):
        settings = CaseflowSettings(_env_file=None, alert_webhook_url="https://hooks.example.test/x", throttle_minutes=1)
        dispatcher = AlertDispatcher.from_settings(settings)
        assert dispatcher._channel.name == "webhook"
        assert AlertDispatcher.from_settings(CaseflowSettings(_env_file=None))._channel is None
