from datetime import datetime

from database.connection import get_db, with_retry


class TaskRepository:

    @staticmethod
    @with_retry()
    def list_overdue(now: datetime) -> list[dict]:
        """Open tasks whose due date is before `now`, oldest due first."""
        db = get_db()
        result = (
            db.table("tasks")
            .select("*")
            .eq("completed", False)
            .lt("due_date", now.isoformat())
            .order("due_date")
            .execute()
        )
        return result.data or []
