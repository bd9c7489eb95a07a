"""
Subscription tiers and plan entitlements.
Single source of truth for what each tier may do.

Tier ordering and quotas are kept as plain tables so the entitlement
logic stays a lookup:
- TIER_RANK orders tiers (higher rank satisfies lower requirements)
- BATCH_SIZE_LIMITS caps batch plant creation / batch measurements
- PLAN_FEATURES lists feature flags enabled for each tier
"""
from enum import Enum
from typing import Optional, TypedDict


class SubscriptionTier(str, Enum):
    """Subscription tier identifiers as stored on profiles.tier."""
    FREE = "free"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class Plan(TypedDict):
    tier: str
    rank: int
    batch_size_limit: int
    features: list[str]


TIER_RANK: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PREMIUM: 1,
    SubscriptionTier.ENTERPRISE: 2,
}

BATCH_SIZE_LIMITS: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PREMIUM: 10,
    SubscriptionTier.ENTERPRISE: 50,
}

_FREE_FEATURES = [
    "environmental_tracking",
    "task_reminders",
]

_PREMIUM_FEATURES = _FREE_FEATURES + [
    "batch_measurements",
    "batch_plant_creation",
    "advanced_analytics",
]

PLAN_FEATURES: dict[SubscriptionTier, list[str]] = {
    SubscriptionTier.FREE: _FREE_FEATURES,
    SubscriptionTier.PREMIUM: _PREMIUM_FEATURES,
    SubscriptionTier.ENTERPRISE: _PREMIUM_FEATURES + [
        "data_export",
        "priority_support",
    ],
}


def parse_tier(value) -> Optional[SubscriptionTier]:
    """Coerce a stored tier value to SubscriptionTier, None if unknown."""
    if isinstance(value, SubscriptionTier):
        return value
    try:
        return SubscriptionTier(value)
    except ValueError:
        return None


def tier_rank(tier: SubscriptionTier) -> int:
    return TIER_RANK[tier]


def satisfies(tier, required) -> bool:
    """True when `tier` ranks at or above `required`.

    Unknown tiers never satisfy anything.
    """
    actual = parse_tier(tier)
    needed = parse_tier(required)
    if actual is None or needed is None:
        return False
    return TIER_RANK[actual] >= TIER_RANK[needed]


def get_batch_size_limit(tier) -> int:
    """Batch quota for a tier; 0 for unknown or missing tiers."""
    parsed = parse_tier(tier)
    if parsed is None:
        return 0
    return BATCH_SIZE_LIMITS[parsed]


def has_feature(tier, feature: str) -> bool:
    parsed = parse_tier(tier)
    if parsed is None:
        return False
    return feature in PLAN_FEATURES[parsed]


def get_plan(tier) -> Plan:
    """Full entitlement view for a tier, defaults to FREE if unknown."""
    parsed = parse_tier(tier) or SubscriptionTier.FREE
    return {
        "tier": parsed.value,
        "rank": TIER_RANK[parsed],
        "batch_size_limit": BATCH_SIZE_LIMITS[parsed],
        "features": list(PLAN_FEATURES[parsed]),
    }
