import json
import logging

from fastapi import APIRouter, Depends, Request
from supabase import Client

from app.core.config import settings
from app.core.exceptions import InternalError, ValidationError
from app.core.security import verify_webhook_signature
from app.integrations.supabase_connect import get_supabase_client
from app.schemas.billing import parse_webhook_event
from app.services.subscription_reconciler import SubscriptionReconciler

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-Signature"


@router.post("/webhooks/payment")
async def payment_webhook(request: Request, supabase: Client = Depends(get_supabase_client)):
    """
    LemonSqueezy webhook.

    Only a missing or wrong signature (or a missing secret) is reported as an
    error. Once the signature checks out the provider always gets
    {"success": true}; reconciliation problems are logged, otherwise the
    provider would keep redelivering the event.
    """
    body = await request.body()

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise ValidationError("Missing signature")

    secret = settings.LEMON_SQUEEZY_WEBHOOK_SECRET
    if not secret:
        logger.error("LEMON_SQUEEZY_WEBHOOK_SECRET is not set, rejecting webhook")
        raise InternalError("Webhook secret not configured")

    verify_webhook_signature(body, signature, secret)

    try:
        event = parse_webhook_event(json.loads(body))
        outcome = SubscriptionReconciler(supabase).apply(event)
        logger.info(f"Webhook {event.event_name} {outcome}")
    except Exception as e:
        logger.warning(f"Webhook reconciliation failed, acknowledging anyway: {e}", exc_info=True)

    return {"success": True}
