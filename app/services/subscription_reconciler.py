"""
Subscription Reconciler - applies LemonSqueezy webhook events to the
subscriptions table and the owning user's plan.
"""

import logging
from typing import Any, Dict

from supabase import Client

from app.core.plans import FREE, PREMIUM
from app.database.crud import update_plan, upsert_subscription
from app.schemas.billing import (
    IgnoredEvent,
    OrderCreatedEvent,
    SubscriptionChangedEvent,
    SubscriptionEndedEvent,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

PREMIUM_STATUSES = ("active", "trialing")

APPLIED = "applied"
SKIPPED = "skipped"
LOGGED = "logged"
IGNORED = "ignored"


def plan_for_status(status: str) -> str:
    return PREMIUM if status in PREMIUM_STATUSES else FREE


class SubscriptionReconciler:
    """
    Every branch writes values taken from the event alone, so delivering the
    same event twice leaves the same rows behind.

    Cancellation and expiry downgrade the user immediately rather than at
    the end of the paid period.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def apply(self, event: WebhookEvent) -> str:
        if isinstance(event, SubscriptionChangedEvent):
            return self._subscription_changed(event)
        if isinstance(event, SubscriptionEndedEvent):
            return self._subscription_ended(event)
        if isinstance(event, OrderCreatedEvent):
            logger.info(f"Order {event.order_id} created for user {event.user_id}")
            return LOGGED
        if isinstance(event, IgnoredEvent):
            logger.debug(f"Ignoring webhook event {event.event_name}")
        return IGNORED

    def _subscription_changed(self, event: SubscriptionChangedEvent) -> str:
        if not event.user_id:
            logger.warning(f"{event.event_name} for subscription {event.subscription.id} has no user_id, skipping")
            return SKIPPED

        attributes = event.subscription.attributes
        plan = plan_for_status(attributes.status)
        upsert_subscription(self.supabase, self._subscription_fields(event, plan, attributes.cancelled))
        update_plan(self.supabase, event.user_id, plan)
        logger.info(
            f"{event.event_name}: subscription {event.subscription.id} is {attributes.status}, "
            f"user {event.user_id} now on {plan}"
        )
        return APPLIED

    def _subscription_ended(self, event: SubscriptionEndedEvent) -> str:
        if not event.user_id:
            logger.warning(f"{event.event_name} for subscription {event.subscription.id} has no user_id, skipping")
            return SKIPPED

        upsert_subscription(self.supabase, self._subscription_fields(event, FREE, True))
        update_plan(self.supabase, event.user_id, FREE)
        logger.info(f"{event.event_name}: subscription {event.subscription.id} ended, user {event.user_id} now on free")
        return APPLIED

    @staticmethod
    def _subscription_fields(event, plan: str, cancel_at_period_end: bool) -> Dict[str, Any]:
        attributes = event.subscription.attributes
        fields = {
            "user_id": event.user_id,
            "lemonsqueezy_subscription_id": event.subscription.id,
            "lemonsqueezy_variant_id": attributes.variant_id,
            "status": attributes.status,
            "plan_type": plan,
            "current_period_start": attributes.created_at,
            "current_period_end": attributes.renews_at or attributes.ends_at,
            "cancel_at_period_end": cancel_at_period_end,
        }
        # Provider timestamps, never the local clock, so re-delivery is a no-op.
        if attributes.created_at:
            fields["created_at"] = attributes.created_at
        if attributes.updated_at:
            fields["updated_at"] = attributes.updated_at
        return fields
