"""Superadmin-only API routes for support and debugging."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.entitlements import profile_cache
from app.core.security import require_superadmin
from app.domain.schemas import Profile, TierUpdate
from app.repositories.profile import ProfileRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.put("/users/{user_id}/tier", response_model=Profile)
def override_user_tier(
    user_id: str,
    data: TierUpdate,
    admin: dict = Depends(require_superadmin),
):
    """Force a user's tier outside the payment flow (superadmin only)."""
    profile = ProfileRepository.get_by_id(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")

    updated = ProfileRepository.update_tier(user_id, data.tier.value)
    if not updated:
        raise HTTPException(status_code=500, detail="Failed to update tier")

    profile_cache.invalidate(user_id)
    logger.warning(
        f"Tier override: user {user_id} {profile.get('tier')} -> {data.tier.value} by admin {admin.get('sub')}"
    )
    return Profile(**updated)
