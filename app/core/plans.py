# app/core/plans.py
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from app.utils.conversion_messages import (
    daily_limit_reached,
    insufficient_conversions,
)

FREE = "free"
PREMIUM = "premium"
DEFAULT_PLAN = FREE

MB = 1024 * 1024


class PlanFeatures(BaseModel):
    model_config = ConfigDict(frozen=True)

    resumable_uploads: bool
    batch_conversion: bool
    priority_processing: bool
    api_access: bool
    custom_watermarks: bool
    advanced_settings: bool


class PlanQuotas(BaseModel):
    model_config = ConfigDict(frozen=True)

    conversions_per_day: int
    conversions_per_month: int  # not enforced server-side
    storage_gb: int


class PlanPrice(BaseModel):
    model_config = ConfigDict(frozen=True)

    monthly: Optional[float] = None
    yearly: Optional[float] = None


class PlanLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    max_files: int
    max_file_size_mb: int
    max_file_size_bytes: int
    supported_formats: List[str]
    quality_presets: List[str]
    features: PlanFeatures
    quotas: PlanQuotas
    price: Optional[PlanPrice] = None


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    error: Optional[str] = None


SUPPORTED_FILE_TYPES: Dict[str, List[str]] = {
    "image": [
        "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif",
        "image/bmp", "image/tiff", "image/svg+xml", "image/heic", "image/heif",
    ],
    "video": [
        "video/mp4", "video/webm", "video/avi", "video/mov", "video/mkv",
        "video/wmv", "video/flv", "video/m4v", "video/3gp", "video/quicktime",
    ],
    "audio": [
        "audio/mp3", "audio/mpeg", "audio/wav", "audio/ogg", "audio/m4a",
        "audio/aac", "audio/flac", "audio/wma", "audio/opus",
    ],
    "document": [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ],
}

USER_PLANS: Dict[str, PlanLimits] = {
    FREE: PlanLimits(
        name=FREE,
        max_files=5,
        max_file_size_mb=100,
        max_file_size_bytes=100 * MB,
        supported_formats=["image/*", "video/*", "audio/*"],
        quality_presets=["low", "medium"],
        features=PlanFeatures(
            resumable_uploads=False,
            batch_conversion=True,
            priority_processing=False,
            api_access=False,
            custom_watermarks=False,
            advanced_settings=False,
        ),
        quotas=PlanQuotas(conversions_per_day=10, conversions_per_month=100, storage_gb=1),
        price=None,
    ),
    PREMIUM: PlanLimits(
        name=PREMIUM,
        max_files=10,
        max_file_size_mb=2048,
        max_file_size_bytes=2048 * MB,
        supported_formats=["image/*", "video/*", "audio/*"],
        quality_presets=["low", "medium", "high"],
        features=PlanFeatures(
            resumable_uploads=True,
            batch_conversion=True,
            priority_processing=True,
            api_access=True,
            custom_watermarks=True,
            advanced_settings=True,
        ),
        quotas=PlanQuotas(conversions_per_day=100, conversions_per_month=1000, storage_gb=10),
        price=PlanPrice(monthly=5.99, yearly=59.99),
    ),
}


def get_plan_limits(plan: Optional[str]) -> PlanLimits:
    """Limits for a plan name. Unknown or empty names get the free plan."""
    return USER_PLANS.get(plan or DEFAULT_PLAN, USER_PLANS[DEFAULT_PLAN])


# --- File checks ---

def is_file_type_supported(mime_type: str, plan: str = DEFAULT_PLAN) -> bool:
    limits = get_plan_limits(plan)
    mime_type = (mime_type or "").lower()
    for pattern in limits.supported_formats:
        if pattern.endswith("/*"):
            if mime_type.startswith(pattern[:-1]):
                return True
        elif mime_type == pattern:
            return True
    return False


def is_file_size_allowed(size_bytes: int, plan: str) -> bool:
    return size_bytes <= get_plan_limits(plan).max_file_size_bytes


def can_upload_more_files(current_count: int, plan: str) -> bool:
    return current_count < get_plan_limits(plan).max_files


def get_file_type_category(mime_type: str) -> Optional[str]:
    for category, types in SUPPORTED_FILE_TYPES.items():
        if mime_type in types:
            return category
    return None


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    size = float(size_bytes)
    i = 0
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2):g} {units[i]}"


def get_plan_display_name(plan: str) -> str:
    return get_plan_limits(plan).name.capitalize()


def get_plan_features(plan: str) -> List[str]:
    """Human readable feature list, as shown on the pricing page."""
    limits = get_plan_limits(plan)
    if limits.max_file_size_mb >= 1024:
        size = f"{limits.max_file_size_mb // 1024}GB"
    else:
        size = f"{limits.max_file_size_mb}MB"

    features = [
        f"Up to {limits.max_files} files at once",
        f"{size} max file size",
        f"{limits.quotas.conversions_per_day} conversions/day",
    ]
    if limits.features.resumable_uploads:
        features.append("Resumable uploads")
    if limits.features.priority_processing:
        features.append("Priority processing")
    if limits.features.api_access:
        features.append("API access")
    if limits.features.custom_watermarks:
        features.append("Custom watermarks")
    if limits.features.advanced_settings:
        features.append("Advanced settings")
    return features


def validate_file(size_bytes: int, mime_type: str, plan: str) -> ValidationResult:
    if not is_file_type_supported(mime_type, plan):
        category = get_file_type_category(mime_type)
        label = category.capitalize() if category else "File type"
        return ValidationResult(
            is_valid=False,
            error=f"{label} not supported for {get_plan_display_name(plan)} plan",
        )

    if not is_file_size_allowed(size_bytes, plan):
        limit = format_file_size(get_plan_limits(plan).max_file_size_bytes)
        return ValidationResult(is_valid=False, error=f"File size exceeds {limit} limit")

    return ValidationResult(is_valid=True)


def validate_file_count(current_count: int, plan: str) -> ValidationResult:
    if not can_upload_more_files(current_count, plan):
        limits = get_plan_limits(plan)
        return ValidationResult(
            is_valid=False,
            error=f"Maximum {limits.max_files} files allowed for {get_plan_display_name(plan)} plan",
        )
    return ValidationResult(is_valid=True)


# --- Daily quota ---

def _as_utc(value: Union[datetime, str]) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def check_daily_reset(last_reset: Union[datetime, str, None], now: Optional[datetime] = None) -> bool:
    """True when the UTC calendar day of last_reset is not today's.

    A missing last_reset counts as a reset so the user starts with a fresh quota.
    """
    if last_reset is None:
        return True
    now = _as_utc(now) if now is not None else utc_now()
    return _as_utc(last_reset).date() != now.date()


def calculate_remaining_conversions(
    plan: str,
    conversion_count: int,
    last_reset: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> int:
    daily_limit = get_plan_limits(plan).quotas.conversions_per_day
    used = 0 if check_daily_reset(last_reset, now) else conversion_count
    return max(0, daily_limit - used)


def can_convert_more(
    plan: str,
    conversion_count: int,
    last_reset: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> bool:
    return calculate_remaining_conversions(plan, conversion_count, last_reset, now) > 0


def get_usage_percentage(
    plan: str,
    conversion_count: int,
    last_reset: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> float:
    daily_limit = get_plan_limits(plan).quotas.conversions_per_day
    used = daily_limit - calculate_remaining_conversions(plan, conversion_count, last_reset, now)
    return min(100.0, used / daily_limit * 100)


def validate_conversion_count(
    requested: int,
    plan: str,
    conversion_count: int,
    last_reset: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> ValidationResult:
    remaining = calculate_remaining_conversions(plan, conversion_count, last_reset, now)
    if remaining == 0:
        return ValidationResult(is_valid=False, error=daily_limit_reached(get_plan_limits(plan).name))
    if requested > remaining:
        return ValidationResult(is_valid=False, error=insufficient_conversions(remaining, requested))
    return ValidationResult(is_valid=True)
