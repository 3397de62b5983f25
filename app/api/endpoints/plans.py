from fastapi import APIRouter
from fastapi.encoders import jsonable_encoder

from app.core.plans import USER_PLANS, get_plan_display_name, get_plan_features

router = APIRouter()


@router.get("/plans")
async def list_plans():
    """Public plan catalogue for the pricing page."""
    return {
        "plans": {
            name: {
                **jsonable_encoder(limits),
                "displayName": get_plan_display_name(name),
                "featuresList": get_plan_features(name),
            }
            for name, limits in USER_PLANS.items()
        }
    }
