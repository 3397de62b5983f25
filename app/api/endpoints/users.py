from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi import status

from app.core.plans import (
    calculate_remaining_conversions,
    can_convert_more,
    get_plan_limits,
    get_usage_percentage,
)
from app.schemas.users import UsageOut, UserOut
from app.services.auth_services import CurrentUser, get_current_user

router = APIRouter()


@router.get("/user")
async def read_user(current_user: CurrentUser = Depends(get_current_user)):
    user = UserOut(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        plan=current_user.plan,
        conversionCount=current_user.conversion_count,
        lastReset=current_user.last_reset,
    )
    return JSONResponse(content=jsonable_encoder(user), status_code=status.HTTP_200_OK)


@router.get("/usage")
async def read_usage(current_user: CurrentUser = Depends(get_current_user)):
    plan, count, last_reset = current_user.plan, current_user.conversion_count, current_user.last_reset
    usage = UsageOut(
        plan=get_plan_limits(plan).name,
        conversionCount=count,
        lastReset=last_reset,
        limit=get_plan_limits(plan).quotas.conversions_per_day,
        remaining=calculate_remaining_conversions(plan, count, last_reset),
        usagePercentage=get_usage_percentage(plan, count, last_reset),
        canConvertMore=can_convert_more(plan, count, last_reset),
    )
    return JSONResponse(content=jsonable_encoder(usage), status_code=status.HTTP_200_OK)
