from datetime import datetime, timezone

from database.connection import get_db, with_retry


class ProfileRepository:

    @staticmethod
    @with_retry()
    def get_by_id(user_id: str) -> dict | None:
        """Get a profile by user ID."""
        db = get_db()
        result = db.table("profiles").select("*").eq("id", user_id).maybe_single().execute()
        return result.data if result else None

    @staticmethod
    @with_retry()
    def update(user_id: str, **kwargs) -> dict | None:
        """Update a profile."""
        db = get_db()
        result = db.table("profiles").update(kwargs).eq("id", user_id).execute()
        return result.data[0] if result.data else None

    @staticmethod
    def update_tier(user_id: str, tier: str) -> dict | None:
        """Set the subscription tier on a profile."""
        return ProfileRepository.update(
            user_id,
            tier=tier,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
