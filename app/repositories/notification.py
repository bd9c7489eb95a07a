from datetime import datetime

from database.connection import get_db, with_retry


class NotificationRepository:

    @staticmethod
    @with_retry()
    def create(data: dict) -> dict | None:
        """Insert a notification row."""
        db = get_db()
        result = db.table("notifications").insert(data).execute()
        return result.data[0] if result.data else None

    @staticmethod
    @with_retry()
    def find_recent(
        user_id: str | None,
        type: str,
        match: dict,
        since: datetime | None,
    ) -> dict | None:
        """Newest notification of `type` whose metadata contains `match`.

        Only rows created after `since` count; `since=None` searches all history.
        """
        db = get_db()
        query = (
            db.table("notifications")
            .select("*")
            .eq("type", type)
        )
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        if user_id:
            query = query.eq("user_id", user_id)
        if match:
            query = query.contains("metadata", match)
        result = query.order("created_at", desc=True).limit(1).execute()
        return result.data[0] if result.data else None
