"""Resolved subscription entitlements.

The quota engine never reads subscription rows itself. It asks an
:class:`EntitlementResolver` for the user's tier and comped flags; the
production resolver lives with the billing integration, and
:class:`StaticEntitlementResolver` serves tests and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class SubscriptionTier(str, Enum):
    FREE = "free"
    TRIAL = "trial"
    CORE = "core"
    PRO = "pro"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    NONE = "none"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    COMPED = "comped"


@dataclass(frozen=True)
class Entitlements:
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.NONE
    is_comped: bool = False
    is_lifetime: bool = False

    @property
    def unlimited(self) -> bool:
        """Comped and lifetime users bypass quotas entirely."""
        return self.is_comped or self.is_lifetime

    @classmethod
    def comped(cls, *, lifetime: bool = False) -> Entitlements:
        return cls(
            tier=SubscriptionTier.PREMIUM,
            status=SubscriptionStatus.COMPED,
            is_comped=True,
            is_lifetime=lifetime,
        )


@runtime_checkable
class EntitlementResolver(Protocol):
    """Looks up a user's current entitlements."""

    def resolve(self, user_id: str) -> Entitlements: ...


class StaticEntitlementResolver:
    """In-memory resolver; unknown users get the free tier.

    Example:
        >>> resolver = StaticEntitlementResolver({"u-1": Entitlements(tier=SubscriptionTier.CORE)})
        >>> resolver.resolve("u-2").tier
        <SubscriptionTier.FREE: 'free'>
    """

    def __init__(self, entitlements: dict[str, Entitlements] | None = None, *, default: Entitlements | None = None):
        self._entitlements = dict(entitlements or {})
        self._default = default or Entitlements()

    def resolve(self, user_id: str) -> Entitlements:
        return self._entitlements.get(user_id, self._default)

    def set(self, user_id: str, entitlements: Entitlements) -> None:
        self._entitlements[user_id] = entitlements


__all__ = [
    "SubscriptionTier",
    "SubscriptionStatus",
    "Entitlements",
    "EntitlementResolver",
    "StaticEntitlementResolver",
]
