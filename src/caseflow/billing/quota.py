"""Quota engine - tiered rolling-window admission checks.

Architecture:

    .. code-block:: text

        check_quota(user_id, type, quantity)
        ┌───────────────────────────────────────────────────────────┐
        │ 1. comped / lifetime ─────────────────────► allowed        │
        │ 2. ocr_page|ai_call and credits ≥ qty                      │
        │       └─ CreditLedger.consume_or_throw ──► CREDITS_CONSUMED│
        │ 3. tier == free ──────────────────────────► PLAN_REQUIRED  │
        │ 4. remaining = min(day_limit − today, month_limit − month) │
        │       qty > remaining                                      │
        │         ├─ ocr_page|ai_call ──────► NEEDS_PROCESSING_PACK  │
        │         └─ upload_bytes (month) ──► MONTHLY_LIMIT          │
        │       else ───────────────────────────────► allowed        │
        └───────────────────────────────────────────────────────────┘

Prepaid credits are drawn before tier quota. Denials are typed results,
never exceptions.

Windows are calendar-aligned in UTC: the day window starts at 00:00 UTC and
the month window on the 1st at 00:00 UTC.

The check does not record usage. Callers append a usage event with
:meth:`QuotaEngine.record_usage` once the work is done, so two concurrent
checks can both pass against the same remaining headroom.

Example:
    >>> engine = QuotaEngine(ledger, usage, resolver)
    >>> result = engine.check_quota("u-1", QuotaCheckType.AI_CALL, job_key="analyze:ev-9")
    >>> result.allowed, result.code
    (True, <DenialCode.CREDITS_CONSUMED: 'CREDITS_CONSUMED'>)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from caseflow.billing.entitlements import EntitlementResolver, SubscriptionTier
from caseflow.billing.ledger import CreditLedger
from caseflow.billing.packs import ProcessingPack
from caseflow.billing.usage import UsageEvent, UsageLog, UsageType
from caseflow.core.logging import get_logger
from caseflow.core.timestamps import generate_ulid, start_of_day, start_of_month

logger = get_logger(__name__)

GB = 1024 * 1024 * 1024


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class QuotaCheckType(str, Enum):
    OCR_PAGE = "ocr_page"
    AI_CALL = "ai_call"
    UPLOAD_BYTES = "upload_bytes"

    @property
    def creditable(self) -> bool:
        """Analysis actions can be paid for with prepaid credits."""
        return self in (QuotaCheckType.OCR_PAGE, QuotaCheckType.AI_CALL)


class DenialCode(str, Enum):
    PLAN_REQUIRED = "PLAN_REQUIRED"
    NEEDS_PROCESSING_PACK = "NEEDS_PROCESSING_PACK"
    MONTHLY_LIMIT = "MONTHLY_LIMIT"
    CREDITS_CONSUMED = "CREDITS_CONSUMED"


@dataclass(frozen=True)
class TierLimits:
    ocr_pages_per_day: int
    ocr_pages_per_month: int
    ai_calls_per_day: int
    ai_calls_per_month: int
    ai_tokens_per_month: int
    upload_bytes_per_month: int


TIER_QUOTAS: dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        ocr_pages_per_day=0,
        ocr_pages_per_month=0,
        ai_calls_per_day=0,
        ai_calls_per_month=0,
        ai_tokens_per_month=0,
        upload_bytes_per_month=0,
    ),
    SubscriptionTier.TRIAL: TierLimits(
        ocr_pages_per_day=20,
        ocr_pages_per_month=100,
        ai_calls_per_day=10,
        ai_calls_per_month=50,
        ai_tokens_per_month=100_000,
        upload_bytes_per_month=1 * GB,
    ),
    SubscriptionTier.CORE: TierLimits(
        ocr_pages_per_day=100,
        ocr_pages_per_month=1000,
        ai_calls_per_day=50,
        ai_calls_per_month=500,
        ai_tokens_per_month=1_000_000,
        upload_bytes_per_month=30 * GB,
    ),
    SubscriptionTier.PRO: TierLimits(
        ocr_pages_per_day=200,
        ocr_pages_per_month=3000,
        ai_calls_per_day=100,
        ai_calls_per_month=1500,
        ai_tokens_per_month=3_000_000,
        upload_bytes_per_month=50 * GB,
    ),
    SubscriptionTier.PREMIUM: TierLimits(
        ocr_pages_per_day=500,
        ocr_pages_per_month=10000,
        ai_calls_per_day=300,
        ai_calls_per_month=5000,
        ai_tokens_per_month=10_000_000,
        upload_bytes_per_month=100 * GB,
    ),
}


def get_tier_limits(tier: SubscriptionTier) -> TierLimits:
    return TIER_QUOTAS.get(tier, TIER_QUOTAS[SubscriptionTier.FREE])


@dataclass(frozen=True)
class QuotaCheckResult:
    allowed: bool
    code: DenialCode | None = None
    reason: str | None = None
    remaining: int | None = None
    used_credit: bool = False
    pack_suggested: ProcessingPack | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "code": self.code.value if self.code else None,
            "reason": self.reason,
            "remaining": self.remaining,
            "used_credit": self.used_credit,
            "pack_suggested": self.pack_suggested.value if self.pack_suggested else None,
        }


@dataclass(frozen=True)
class UsageSummary:
    ocr_pages_today: int = 0
    ocr_pages_month: int = 0
    ai_calls_today: int = 0
    ai_calls_month: int = 0
    ai_tokens_month: int = 0
    upload_bytes_month: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class QuotaRemaining:
    """Headroom per window; ``math.inf`` everywhere for comped users."""

    ocr_pages_remaining_today: float
    ocr_pages_remaining_month: float
    ai_calls_remaining_today: float
    ai_calls_remaining_month: float
    ai_tokens_remaining_month: float
    upload_bytes_remaining_month: float
    is_comped: bool = False

    def to_dict(self) -> dict[str, Any]:
        # JSON has no infinity; unlimited windows serialize as null
        return {
            key: (None if isinstance(value, float) and math.isinf(value) else value)
            for key, value in self.__dict__.items()
        }


class QuotaEngine:
    """Admission checks against tier quotas and prepaid credits."""

    def __init__(self, ledger: CreditLedger, usage: UsageLog, entitlements: EntitlementResolver):
        self._ledger = ledger
        self._usage = usage
        self._entitlements = entitlements

    def _limits_for(self, user_id: str) -> tuple[TierLimits, SubscriptionTier, bool]:
        resolved = self._entitlements.resolve(user_id)
        if resolved.unlimited:
            return TIER_QUOTAS[SubscriptionTier.PREMIUM], SubscriptionTier.PREMIUM, True
        return get_tier_limits(resolved.tier), resolved.tier, False

    # =========================================================================
    # ADMISSION
    # =========================================================================

    def check_quota(
        self,
        user_id: str,
        type: QuotaCheckType | str,
        quantity: int = 1,
        *,
        job_key: str | None = None,
        case_id: str | None = None,
    ) -> QuotaCheckResult:
        """Decide whether ``quantity`` units of ``type`` may run now.

        May draw prepaid credits as a side effect. Supply ``job_key`` so a
        retried admission for the same logical job draws at most once.
        """
        check_type = QuotaCheckType(type)
        limits, tier, unlimited = self._limits_for(user_id)

        if unlimited:
            return QuotaCheckResult(allowed=True)

        if check_type.creditable:
            balance = self._ledger.get_balance(user_id)
            if balance >= quantity or job_key is not None:
                key = job_key or f"quota:{check_type.value}:{generate_ulid()}"
                consumed = self._ledger.consume_or_throw(
                    user_id,
                    check_type.value,
                    key,
                    quantity=quantity,
                    case_id=case_id,
                )
                if consumed.consumed:
                    logger.info(
                        "quota.credit_consumed",
                        user_id=user_id,
                        type=check_type.value,
                        quantity=quantity,
                        remaining=consumed.remaining,
                    )
                    return QuotaCheckResult(
                        allowed=True,
                        code=DenialCode.CREDITS_CONSUMED,
                        remaining=consumed.remaining,
                        used_credit=True,
                    )

        if tier == SubscriptionTier.FREE:
            logger.info("quota.denied", user_id=user_id, type=check_type.value, code=DenialCode.PLAN_REQUIRED.value)
            return QuotaCheckResult(
                allowed=False,
                code=DenialCode.PLAN_REQUIRED,
                reason="A paid plan is required to use this feature",
            )

        usage = self.get_usage(user_id)

        if check_type == QuotaCheckType.UPLOAD_BYTES:
            remaining = limits.upload_bytes_per_month - usage.upload_bytes_month
            if quantity > remaining:
                limit_gb = round(limits.upload_bytes_per_month / GB)
                logger.info("quota.denied", user_id=user_id, type=check_type.value, code=DenialCode.MONTHLY_LIMIT.value)
                return QuotaCheckResult(
                    allowed=False,
                    code=DenialCode.MONTHLY_LIMIT,
                    reason=f"Monthly storage limit reached ({limit_gb}GB/month). Upgrade for more.",
                    remaining=remaining,
                )
            return QuotaCheckResult(allowed=True, remaining=remaining)

        if check_type == QuotaCheckType.OCR_PAGE:
            remaining = min(
                limits.ocr_pages_per_day - usage.ocr_pages_today,
                limits.ocr_pages_per_month - usage.ocr_pages_month,
            )
        else:
            remaining = min(
                limits.ai_calls_per_day - usage.ai_calls_today,
                limits.ai_calls_per_month - usage.ai_calls_month,
            )

        if quantity > remaining:
            logger.info(
                "quota.denied",
                user_id=user_id,
                type=check_type.value,
                code=DenialCode.NEEDS_PROCESSING_PACK.value,
                remaining=remaining,
            )
            return QuotaCheckResult(
                allowed=False,
                code=DenialCode.NEEDS_PROCESSING_PACK,
                reason="Processing limit reached. Purchase a processing pack to continue.",
                remaining=remaining,
                pack_suggested=ProcessingPack.OVERLIMIT_200,
            )
        return QuotaCheckResult(allowed=True, remaining=remaining)

    def record_usage(
        self,
        user_id: str,
        type: UsageType | str,
        quantity: int,
        case_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageEvent:
        return self._usage.record_usage(user_id, UsageType(type), quantity, case_id=case_id, metadata=metadata)

    # =========================================================================
    # REPORTING
    # =========================================================================

    def get_usage(self, user_id: str) -> UsageSummary:
        now = utcnow()
        today = self._usage.totals_since(user_id, start_of_day(now))
        month = self._usage.totals_since(user_id, start_of_month(now))
        return UsageSummary(
            ocr_pages_today=today[UsageType.OCR_PAGE],
            ocr_pages_month=month[UsageType.OCR_PAGE],
            ai_calls_today=today[UsageType.AI_CALL],
            ai_calls_month=month[UsageType.AI_CALL],
            ai_tokens_month=month[UsageType.AI_TOKENS],
            upload_bytes_month=month[UsageType.UPLOAD_BYTES],
        )

    def get_quota_remaining(self, user_id: str) -> QuotaRemaining:
        limits, _, unlimited = self._limits_for(user_id)
        if unlimited:
            return QuotaRemaining(
                ocr_pages_remaining_today=math.inf,
                ocr_pages_remaining_month=math.inf,
                ai_calls_remaining_today=math.inf,
                ai_calls_remaining_month=math.inf,
                ai_tokens_remaining_month=math.inf,
                upload_bytes_remaining_month=math.inf,
                is_comped=True,
            )

        usage = self.get_usage(user_id)
        return QuotaRemaining(
            ocr_pages_remaining_today=max(0, limits.ocr_pages_per_day - usage.ocr_pages_today),
            ocr_pages_remaining_month=max(0, limits.ocr_pages_per_month - usage.ocr_pages_month),
            ai_calls_remaining_today=max(0, limits.ai_calls_per_day - usage.ai_calls_today),
            ai_calls_remaining_month=max(0, limits.ai_calls_per_month - usage.ai_calls_month),
            ai_tokens_remaining_month=max(0, limits.ai_tokens_per_month - usage.ai_tokens_month),
            upload_bytes_remaining_month=max(0, limits.upload_bytes_per_month - usage.upload_bytes_month),
        )


__all__ = [
    "QuotaCheckType",
    "DenialCode",
    "TierLimits",
    "TIER_QUOTAS",
    "get_tier_limits",
    "QuotaCheckResult",
    "UsageSummary",
    "QuotaRemaining",
    "QuotaEngine",
]
