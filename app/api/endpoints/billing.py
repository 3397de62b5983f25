import logging

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from supabase import Client

from app.core.config import settings
from app.core.exceptions import ProviderError, ValidationError
from app.database.crud import get_latest_subscription_for_user
from app.integrations.lemonsqueezy import LemonSqueezyClient, get_lemonsqueezy_client
from app.integrations.supabase_connect import get_supabase_client
from app.schemas.billing import CheckoutRequest, CheckoutResponse
from app.services.auth_services import CurrentUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()

BILLING_INTERVALS = ("monthly", "yearly")


@router.get("/subscription")
async def read_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
):
    subscription = {"plan": current_user.plan}

    latest = get_latest_subscription_for_user(supabase, current_user.id)
    if latest:
        subscription.update({
            "status": latest.status,
            "currentPeriodEnd": latest.current_period_end,
            "cancelAtPeriodEnd": latest.cancel_at_period_end,
        })

    return JSONResponse(content=jsonable_encoder({"subscription": subscription}), status_code=status.HTTP_200_OK)


@router.post("/checkout")
async def create_checkout(
    request: CheckoutRequest,
    current_user: CurrentUser = Depends(get_current_user),
    lemonsqueezy: LemonSqueezyClient = Depends(get_lemonsqueezy_client),
):
    if request.plan not in BILLING_INTERVALS:
        raise ValidationError("Invalid plan. Must be 'monthly' or 'yearly'")

    variant_id = settings.LEMON_SQUEEZY_VARIANT_IDS.get(request.plan)
    if not variant_id:
        logger.error(f"No LemonSqueezy variant configured for the {request.plan} plan")
        raise ProviderError("Checkout is not configured for this plan")

    checkout = await lemonsqueezy.create_checkout(
        variant_id=variant_id,
        user_id=current_user.id,
        email=current_user.email,
        redirect_url=f"{settings.FRONTEND_URL}/#upload",
    )
    return CheckoutResponse(checkoutUrl=checkout.url, checkoutId=checkout.checkout_id)


@router.post("/subscription/cancel")
async def cancel_subscription(current_user: CurrentUser = Depends(get_current_user)):
    # TODO: cancel through the LemonSqueezy subscriptions API once the product decides on immediate vs period-end
    return JSONResponse(
        content={"error": "Subscription cancellation is not implemented yet"},
        status_code=status.HTTP_501_NOT_IMPLEMENTED,
    )
