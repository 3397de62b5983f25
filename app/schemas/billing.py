# app/schemas/billing.py

from pydantic import BaseModel, field_validator
from typing import Any, Dict, Literal, Optional, Union

# --- Checkout ---
class CheckoutRequest(BaseModel):
    plan: str

class CheckoutResponse(BaseModel):
    checkoutUrl: str
    checkoutId: str

# --- Webhook payloads (LemonSqueezy JSON:API) ---
SUBSCRIPTION_CHANGED_EVENTS = ("subscription_created", "subscription_updated")
SUBSCRIPTION_ENDED_EVENTS = ("subscription_cancelled", "subscription_expired")
ORDER_CREATED_EVENT = "order_created"


def _to_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class SubscriptionAttributes(BaseModel):
    status: str
    variant_id: Optional[str] = None
    cancelled: bool = False
    renews_at: Optional[str] = None
    ends_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("variant_id", mode="before")
    @classmethod
    def coerce_variant_id(cls, value):
        return _to_str(value)


class SubscriptionData(BaseModel):
    id: str
    attributes: SubscriptionAttributes

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return _to_str(value)


class SubscriptionChangedEvent(BaseModel):
    kind: Literal["subscription_changed"] = "subscription_changed"
    event_name: str
    user_id: Optional[str] = None
    subscription: SubscriptionData


class SubscriptionEndedEvent(BaseModel):
    kind: Literal["subscription_ended"] = "subscription_ended"
    event_name: str
    user_id: Optional[str] = None
    subscription: SubscriptionData


class OrderCreatedEvent(BaseModel):
    kind: Literal["order_created"] = "order_created"
    event_name: str = ORDER_CREATED_EVENT
    user_id: Optional[str] = None
    order_id: Optional[str] = None


class IgnoredEvent(BaseModel):
    kind: Literal["ignored"] = "ignored"
    event_name: Optional[str] = None


WebhookEvent = Union[SubscriptionChangedEvent, SubscriptionEndedEvent, OrderCreatedEvent, IgnoredEvent]


def parse_webhook_event(payload: Dict[str, Any]) -> WebhookEvent:
    """
    Turn a raw webhook body into one of the known event variants.

    Unknown event names become IgnoredEvent. A known event with a malformed
    body raises pydantic.ValidationError.
    """
    meta = payload.get("meta") or {}
    event_name = meta.get("event_name")
    custom_data = meta.get("custom_data") or {}
    user_id = _to_str(custom_data.get("user_id")) or None
    data = payload.get("data") or {}

    if event_name in SUBSCRIPTION_CHANGED_EVENTS:
        return SubscriptionChangedEvent(event_name=event_name, user_id=user_id, subscription=data)
    if event_name in SUBSCRIPTION_ENDED_EVENTS:
        return SubscriptionEndedEvent(event_name=event_name, user_id=user_id, subscription=data)
    if event_name == ORDER_CREATED_EVENT:
        return OrderCreatedEvent(user_id=user_id, order_id=_to_str(data.get("id")))
    return IgnoredEvent(event_name=event_name)
