from fastapi import Depends, HTTPException, status

from app.core.security import require_auth
from app.repositories.profile import ProfileRepository


def get_current_user_profile(auth_payload: dict = Depends(require_auth)) -> dict:
    """Get the profile row for the authenticated user.

    Args:
        auth_payload: JWT payload from require_auth dependency

    Returns:
        Profile dict from public.profiles

    Raises:
        HTTPException 404 if the profile does not exist yet
    """
    auth_id = auth_payload.get("sub")
    if not auth_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload: missing sub claim"
        )

    profile = ProfileRepository.get_by_id(auth_id)
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found. Please complete registration."
        )

    return profile
