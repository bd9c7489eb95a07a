"""
Stripe webhook processing.

Every verified event is appended to stripe_webhook_events keyed by the Stripe
event id. Stripe retries any non-2xx delivery, so the same event can arrive
more than once: the audit insert ignores duplicates and the subscription sync
only writes absolute values (upserts), which makes replays harmless.

Subscription lifecycle events also move the user's tier:
    customer.subscription.created / updated -> tier of the subscribed price
    customer.subscription.deleted           -> free
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

import stripe

from app.core.config import settings
from app.core.entitlements import profile_cache
from app.core.features import SubscriptionTier, parse_tier
from app.repositories.billing import BillingRepository
from app.repositories.profile import ProfileRepository
from app.repositories.webhook_event import WebhookEventRepository

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key

SUBSCRIPTION_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
}

# Subscription statuses that no longer grant a paid tier
INACTIVE_STATUSES = {"canceled", "unpaid", "incomplete_expired"}


class WebhookError(Exception):
    """Base class for webhook failures. `status_code` is the HTTP status to answer with."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WebhookVerificationError(WebhookError):
    status_code = 400


class WebhookStorageError(WebhookError):
    status_code = 500


class SubscriptionSyncError(WebhookError):
    status_code = 500


@dataclass
class WebhookResult:
    event_id: str
    event_type: str
    recorded: bool
    tier: Optional[str] = None


def _timestamp_to_iso(value) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


class StripeWebhookService:

    def __init__(self, webhook_secret: str):
        self.webhook_secret = webhook_secret

    def verify(self, payload: bytes, signature: str) -> dict:
        """Verify the Stripe-Signature header against the raw body.

        Returns:
            The event as a plain dict

        Raises:
            WebhookVerificationError: bad payload or signature
        """
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {e}")
            raise WebhookVerificationError("Invalid payload")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid webhook signature: {e}")
            raise WebhookVerificationError("Invalid signature")
        return json.loads(payload)

    def handle(self, payload: bytes, signature: str) -> WebhookResult:
        """Verify, record and apply a webhook delivery."""
        event = self.verify(payload, signature)
        event_id = event["id"]
        event_type = event["type"]
        data = event.get("data", {}).get("object", {})

        logger.info(f"Received webhook event {event_id}: {event_type}")

        try:
            recorded = WebhookEventRepository.record(event_id, event_type, data)
        except Exception as e:
            logger.error(f"Error inserting webhook event {event_id}: {e}")
            raise WebhookStorageError("Failed to process webhook")

        if not recorded:
            logger.info(f"Webhook event {event_id} already recorded, skipping audit insert")

        result = WebhookResult(event_id=event_id, event_type=event_type, recorded=recorded)
        if event_type in SUBSCRIPTION_EVENTS:
            result.tier = self.sync_subscription(event_type, data).value
        return result

    def sync_subscription(self, event_type: str, subscription: dict) -> SubscriptionTier:
        """Mirror a Stripe subscription onto subscriptions + profiles.tier."""
        try:
            customer_id = subscription.get("customer")
            user_id = BillingRepository.get_user_id_for_customer(customer_id) if customer_id else None
            if not user_id:
                raise ValueError(f"No user found for customer: {customer_id}")

            items = subscription.get("items", {}).get("data", [])
            item = items[0] if items else {}
            price_id = (item.get("price") or {}).get("id")
            if not price_id:
                raise ValueError("No price ID found in subscription")

            status = subscription.get("status", "")
            if event_type == "customer.subscription.deleted" or status in INACTIVE_STATUSES:
                tier = SubscriptionTier.FREE
            else:
                tier = parse_tier(BillingRepository.get_tier_for_price(price_id)) or SubscriptionTier.FREE

            BillingRepository.upsert_subscription(
                user_id=user_id,
                stripe_subscription_id=subscription["id"],
                status=status,
                current_period_end=_timestamp_to_iso(
                    subscription.get("current_period_end") or item.get("current_period_end")
                ),
                cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            )
            ProfileRepository.update_tier(user_id, tier.value)
        except Exception as e:
            logger.error(f"Error handling subscription event: {e}")
            raise SubscriptionSyncError("Failed to process subscription")

        profile_cache.invalidate(user_id)
        logger.info(f"Updated subscription and tier for user {user_id} to {tier.value}")
        return tier


@lru_cache
def get_webhook_service() -> StripeWebhookService:
    return StripeWebhookService(settings.stripe_webhook_secret)
