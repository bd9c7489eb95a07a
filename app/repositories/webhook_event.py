"""
Audit log of verified Stripe webhook events.
Stripe delivers at-least-once; the unique stripe_event_id makes re-delivery a no-op.
"""

from database.connection import get_db, with_retry


class WebhookEventRepository:

    @staticmethod
    @with_retry()
    def record(stripe_event_id: str, event_type: str, data: dict) -> bool:
        """Insert an event unless it is already recorded.

        Returns True if a new row was written, False for a replay.
        """
        db = get_db()
        result = db.table("stripe_webhook_events").upsert(
            {
                "stripe_event_id": stripe_event_id,
                "event_type": event_type,
                "data": data,
            },
            on_conflict="stripe_event_id",
            ignore_duplicates=True,
        ).execute()
        return bool(result.data)
