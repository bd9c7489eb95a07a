from database.connection import get_db, with_retry


class EnvironmentalRepository:

    @staticmethod
    @with_retry()
    def get_latest(grow_id: str, limit: int = 1) -> list[dict]:
        """Most recent readings for a grow, newest first."""
        db = get_db()
        result = (
            db.table("environmental_data")
            .select("*")
            .eq("grow_id", grow_id)
            .order("timestamp", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data or []
