from database.connection import get_db, with_retry


class BillingRepository:
    """Stripe customer, plan and subscription tables."""

    @staticmethod
    @with_retry()
    def get_user_id_for_customer(stripe_customer_id: str) -> str | None:
        db = get_db()
        result = db.table("stripe_customers").select("user_id").eq(
            "stripe_customer_id", stripe_customer_id
        ).limit(1).execute()
        return result.data[0]["user_id"] if result.data else None

    @staticmethod
    @with_retry()
    def get_tier_for_price(stripe_price_id: str) -> str | None:
        """Plan name (a tier) sold under a Stripe price."""
        db = get_db()
        result = db.table("subscription_plans").select("name").eq(
            "stripe_price_id", stripe_price_id
        ).limit(1).execute()
        return result.data[0]["name"] if result.data else None

    @staticmethod
    @with_retry()
    def upsert_subscription(
        user_id: str,
        stripe_subscription_id: str,
        status: str,
        current_period_end: str | None,
        cancel_at_period_end: bool,
    ) -> dict | None:
        db = get_db()
        result = db.table("subscriptions").upsert({
            "user_id": user_id,
            "stripe_subscription_id": stripe_subscription_id,
            "status": status,
            "current_period_end": current_period_end,
            "cancel_at_period_end": cancel_at_period_end,
        }, on_conflict="stripe_subscription_id").execute()
        return result.data[0] if result.data else None
