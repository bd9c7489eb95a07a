from fastapi import APIRouter, Depends

from app.core.entitlements import (
    TierEvaluator,
    ensure_batch_size,
    get_tier_evaluator,
    require_tier,
)
from app.core.features import SubscriptionTier
from app.core.permissions import get_current_user_profile
from app.domain.schemas import (
    BatchSizeCheck,
    BatchSizeCheckResponse,
    EntitlementsResponse,
    Profile,
)

router = APIRouter()


@router.get("/me", response_model=Profile)
def get_my_profile(profile: dict = Depends(get_current_user_profile)):
    """Get the current user's profile."""
    return Profile(**profile)


@router.get("/entitlements", response_model=EntitlementsResponse)
def get_my_entitlements(evaluator: TierEvaluator = Depends(get_tier_evaluator)):
    """Tier, batch quota and feature flags for the current user."""
    return EntitlementsResponse(**evaluator.summary())


@router.post("/entitlements/batch", response_model=BatchSizeCheckResponse)
def check_batch_size(
    data: BatchSizeCheck,
    evaluator: TierEvaluator = Depends(require_tier(SubscriptionTier.PREMIUM)),
):
    """Check a batch size against the caller's quota before a batch operation.

    403 TIER_REQUIRED below Premium, 403 LIMIT_EXCEEDED above the quota.
    """
    limit = ensure_batch_size(evaluator, data.size, resource="plants")
    return BatchSizeCheckResponse(allowed=True, size=data.size, limit=limit)
