"""Tests for QuotaEngine admission decisions."""

from __future__ import annotations

import math
from contextlib import contextmanager
from unittest.mock import patch

import pytest

from caseflow.billing.entitlements import Entitlements, SubscriptionStatus, SubscriptionTier
from caseflow.billing.packs import ProcessingPack
from caseflow.billing.quota import GB, DenialCode, QuotaCheckType, get_tier_limits
from caseflow.billing.usage import UsageType


@contextmanager
def frozen(clock):
    with patch("caseflow.billing.usage.utcnow", clock), patch("caseflow.billing.quota.utcnow", clock):
        yield


def _on_tier(resolver, tier, user_id="u-1"):
    resolver.set(user_id, Entitlements(tier=tier, status=SubscriptionStatus.ACTIVE))


class TestCreditsFirst:
    def test_free_user_spends_credits_then_needs_plan(self, quota, ledger):
        ledger.add_pack_credits("u-1", 3, "pack_purchase:evt-1")

        results = [quota.check_quota("u-1", QuotaCheckType.AI_CALL) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results[:3]] == [2, 1, 0]
        assert all(r.used_credit for r in results[:3])
        assert results[0].code == DenialCode.CREDITS_CONSUMED
        assert results[3].code == DenialCode.PLAN_REQUIRED
        assert results[3].reason == "A paid plan is required to use this feature"
        assert ledger.get_balance("u-1") == 0

    def test_job_key_consumes_once(self, quota, ledger):
        ledger.add_pack_credits("u-1", 5, "pack_purchase:evt-1")
        quota.check_quota("u-1", "ocr_page", job_key="extract:ev-1")
        again = quota.check_quota("u-1", "ocr_page", job_key="extract:ev-1")
        assert again.allowed is True
        assert ledger.get_balance("u-1") == 4

    def test_uploads_never_use_credits(self, quota, ledger):
        ledger.add_pack_credits("u-1", 5, "pack_purchase:evt-1")
        result = quota.check_quota("u-1", QuotaCheckType.UPLOAD_BYTES, 1024)
        assert result.allowed is False
        assert result.code == DenialCode.PLAN_REQUIRED
        assert ledger.get_balance("u-1") == 5

    def test_credit_preferred_over_plan_allowance(self, quota, ledger, resolver):
        _on_tier(resolver, SubscriptionTier.CORE)
        ledger.add_pack_credits("u-1", 1, "pack_purchase:evt-1")
        result = quota.check_quota("u-1", QuotaCheckType.AI_CALL)
        assert result.used_credit is True
        assert ledger.get_balance("u-1") == 0


class TestComped:
    @pytest.mark.parametrize("lifetime", [False, True])
    def test_always_allowed_without_side_effects(self, quota, ledger, resolver, lifetime):
        resolver.set("vip", Entitlements.comped(lifetime=lifetime))
        ledger.add_pack_credits("vip", 5, "pack_purchase:evt-1")
        for check_type in QuotaCheckType:
            result = quota.check_quota("vip", check_type, 10**12)
            assert result.allowed is True
            assert result.used_credit is False
        assert ledger.get_balance("vip") == 5

    def test_remaining_is_infinite(self, quota, resolver):
        resolver.set("vip", Entitlements(is_lifetime=True))
        remaining = quota.get_quota_remaining("vip")
        assert remaining.is_comped is True
        assert remaining.ai_calls_remaining_today == math.inf
        assert remaining.to_dict()["upload_bytes_remaining_month"] is None


class TestWindows:
    def test_daily_limit_resets_next_day(self, quota, resolver, clock):
        _on_tier(resolver, SubscriptionTier.CORE)
        with frozen(clock):
            quota.record_usage("u-1", UsageType.AI_CALL, 50)
            denied = quota.check_quota("u-1", QuotaCheckType.AI_CALL)
            clock.advance(days=1)
            allowed = quota.check_quota("u-1", QuotaCheckType.AI_CALL)

        assert denied.allowed is False
        assert denied.code == DenialCode.NEEDS_PROCESSING_PACK
        assert denied.pack_suggested == ProcessingPack.OVERLIMIT_200
        assert denied.remaining == 0
        assert denied.reason == "Processing limit reached. Purchase a processing pack to continue."
        assert allowed.allowed is True
        assert allowed.remaining == 50

    def test_monthly_limit_binds_before_daily(self, quota, resolver, clock):
        _on_tier(resolver, SubscriptionTier.TRIAL)
        with frozen(clock):
            clock.advance(days=-1)
            quota.record_usage("u-1", UsageType.OCR_PAGE, 100)
            clock.advance(days=1)
            denied = quota.check_quota("u-1", QuotaCheckType.OCR_PAGE)
            clock.now = clock.now.replace(month=4, day=1)
            allowed = quota.check_quota("u-1", QuotaCheckType.OCR_PAGE, 20)

        assert denied.allowed is False
        assert denied.code == DenialCode.NEEDS_PROCESSING_PACK
        assert allowed.allowed is True
        assert allowed.remaining == 20

    def test_quantity_larger_than_remaining(self, quota, resolver, clock):
        _on_tier(resolver, SubscriptionTier.TRIAL)
        with frozen(clock):
            quota.record_usage("u-1", UsageType.OCR_PAGE, 15)
            assert quota.check_quota("u-1", QuotaCheckType.OCR_PAGE, 5).allowed is True
            result = quota.check_quota("u-1", QuotaCheckType.OCR_PAGE, 6)
        assert result.allowed is False
        assert result.remaining == 5

    def test_upload_monthly_limit(self, quota, resolver, clock):
        _on_tier(resolver, SubscriptionTier.CORE)
        with frozen(clock):
            quota.record_usage("u-1", UsageType.UPLOAD_BYTES, 30 * GB - 10)
            ok = quota.check_quota("u-1", QuotaCheckType.UPLOAD_BYTES, 10)
            denied = quota.check_quota("u-1", QuotaCheckType.UPLOAD_BYTES, 11)

        assert ok.allowed is True
        assert denied.allowed is False
        assert denied.code == DenialCode.MONTHLY_LIMIT
        assert denied.reason == "Monthly storage limit reached (30GB/month). Upgrade for more."

    def test_check_does_not_record_usage(self, quota, resolver, clock):
        _on_tier(resolver, SubscriptionTier.CORE)
        with frozen(clock):
            quota.check_quota("u-1", QuotaCheckType.AI_CALL)
            quota.check_quota("u-1", QuotaCheckType.AI_CALL)
            assert quota.get_usage("u-1").ai_calls_today == 0


class TestReporting:
    def test_usage_summary(self, quota, clock):
        with frozen(clock):
            quota.record_usage("u-1", "ocr_page", 7)
            quota.record_usage("u-1", "ai_tokens", 1200)
            clock.advance(days=-3)
            quota.record_usage("u-1", "ocr_page", 2)
            clock.advance(days=3)
            summary = quota.get_usage("u-1")

        assert summary.ocr_pages_today == 7
        assert summary.ocr_pages_month == 9
        assert summary.ai_tokens_month == 1200
        assert summary.to_dict()["ai_calls_today"] == 0

    def test_remaining_floors_at_zero(self, quota, resolver, clock):
        _on_tier(resolver, SubscriptionTier.TRIAL)
        with frozen(clock):
            quota.record_usage("u-1", "ai_call", 99)
            remaining = quota.get_quota_remaining("u-1")
        assert remaining.ai_calls_remaining_today == 0
        assert remaining.ai_calls_remaining_month == 0
        assert remaining.ocr_pages_remaining_today == 20

    def test_unknown_tier_limits_fall_back_to_free(self):
        assert get_tier_limits(SubscriptionTier.FREE).ai_calls_per_day == 0
        assert get_tier_limits(SubscriptionTier.PREMIUM).upload_bytes_per_month == 100 * GB
