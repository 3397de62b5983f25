import logging

from fastapi import APIRouter, Depends
from supabase import Client

from app.core.exceptions import ValidationError
from app.core.plans import (
    calculate_remaining_conversions,
    validate_conversion_count,
    validate_file,
    validate_file_count,
)
from app.database.crud import increment_conversion_count
from app.integrations.supabase_connect import get_supabase_client
from app.schemas.users import BatchLimitRequest
from app.services.auth_services import CurrentUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/check-batch-limit")
async def check_batch_limit(
    batch: BatchLimitRequest,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Tell the client up front whether a batch of files may be converted."""
    plan = current_user.plan
    file_count = max(batch.fileCount, len(batch.files))

    # N files fit when N - 1 files already queued still leave room for one more
    result = validate_file_count(file_count - 1, plan)
    if not result.is_valid:
        raise ValidationError(result.error)

    for file in batch.files:
        result = validate_file(file.size, file.type, plan)
        if not result.is_valid:
            raise ValidationError(result.error)

    result = validate_conversion_count(
        file_count, plan, current_user.conversion_count, current_user.last_reset
    )
    if not result.is_valid:
        raise ValidationError(result.error)

    return {
        "allowed": True,
        "remaining": calculate_remaining_conversions(plan, current_user.conversion_count, current_user.last_reset),
    }


@router.post("/conversions")
async def record_conversion(
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
):
    """Count one finished (client-side) conversion against the daily quota."""
    result = validate_conversion_count(1, current_user.plan, current_user.conversion_count, current_user.last_reset)
    if not result.is_valid:
        raise ValidationError(result.error)

    user = increment_conversion_count(supabase, current_user.id)
    logger.info(f"Conversion recorded for user {user.id} ({user.conversion_count} today)")
    return {
        "conversionCount": user.conversion_count,
        "remaining": calculate_remaining_conversions(user.plan, user.conversion_count, user.last_reset),
    }
