"""
Credits, usage metering and quota admission.
"""

from caseflow.billing.entitlements import (
    EntitlementResolver,
    Entitlements,
    StaticEntitlementResolver,
    SubscriptionStatus,
    SubscriptionTier,
)
from caseflow.billing.ledger import (
    ConsumeResult,
    CreditLedger,
    CreditReason,
    GrantResult,
    LedgerEntry,
    RefundResult,
)
from caseflow.billing.packs import ProcessingPack, grant_processing_pack
from caseflow.billing.quota import (
    TIER_QUOTAS,
    DenialCode,
    QuotaCheckResult,
    QuotaCheckType,
    QuotaEngine,
    QuotaRemaining,
    TierLimits,
    UsageSummary,
)
from caseflow.billing.usage import UsageEvent, UsageLog, UsageType

__all__ = [
    "EntitlementResolver",
    "Entitlements",
    "StaticEntitlementResolver",
    "SubscriptionStatus",
    "SubscriptionTier",
    "ConsumeResult",
    "CreditLedger",
    "CreditReason",
    "GrantResult",
    "LedgerEntry",
    "RefundResult",
    "ProcessingPack",
    "grant_processing_pack",
    "TIER_QUOTAS",
    "DenialCode",
    "QuotaCheckResult",
    "QuotaCheckType",
    "QuotaEngine",
    "QuotaRemaining",
    "TierLimits",
    "UsageSummary",
    "UsageEvent",
    "UsageLog",
    "UsageType",
]
