from database.connection import get_db, with_retry


class GrowRepository:

    @staticmethod
    @with_retry()
    def list_by_stages(stages: list[str]) -> list[dict]:
        """List grows in any of the given stages, newest first."""
        db = get_db()
        query = db.table("grows").select("*")
        if len(stages) == 1:
            query = query.eq("stage", stages[0])
        else:
            query = query.in_("stage", stages)
        result = query.order("created_at", desc=True).execute()
        return result.data or []
