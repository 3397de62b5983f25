# app/database/crud.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from app.core.exceptions import (
    DuplicateRowError,
    StoreConflictError,
    StoreError,
    StoreUnavailableError,
    UserNotFoundError,
    ValidationError,
)
from app.core.plans import DEFAULT_PLAN, check_daily_reset, get_plan_limits, utc_now
from app.database.models import SubscriptionModel, UserFileModel, UserModel
from app.utils.conversion_messages import daily_limit_reached

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
SUBSCRIPTIONS_TABLE = "subscriptions"
USER_FILES_TABLE = "user_files"

FILE_READY = "ready"
FILE_DOWNLOADED = "downloaded"
FILE_EXPIRED = "expired"

UNIQUE_VIOLATION = "23505"
MAX_UPDATE_ATTEMPTS = 5


def _execute(query, action: str):
    try:
        return query.execute()
    except APIError as e:
        if e.code == UNIQUE_VIOLATION:
            raise DuplicateRowError(f"Duplicate row while {action}") from e
        logger.error(f"Supabase error {action}: {e.message}")
        raise StoreError(f"Supabase error {action}: {e.message}") from e
    except httpx.HTTPError as e:
        logger.error(f"Supabase unreachable while {action}: {e}")
        raise StoreUnavailableError(f"Supabase unreachable while {action}") from e


def _first(response) -> Optional[Dict[str, Any]]:
    return response.data[0] if response.data else None


# --- Users ---

def _fetch_user_row(supabase: Client, user_id: str) -> Optional[Dict[str, Any]]:
    response = _execute(
        supabase.table(USERS_TABLE).select("*").eq("id", user_id).limit(1),
        "fetching user",
    )
    return _first(response)


def get_user(supabase: Client, user_id: str) -> Optional[UserModel]:
    row = _fetch_user_row(supabase, user_id)
    return UserModel.model_validate(row) if row else None


def get_or_create_user(supabase: Client, user_id: str, email: Optional[str] = None) -> UserModel:
    """
    Return the user row for an auth id, inserting a fresh free-plan row if absent.

    Two first requests can race on the insert; the loser gets a unique
    violation and simply re-reads the winner's row.
    """
    row = _fetch_user_row(supabase, user_id)
    if row:
        return UserModel.model_validate(row)

    now = utc_now().isoformat()
    try:
        response = _execute(
            supabase.table(USERS_TABLE).insert({
                "id": user_id,
                "email": email,
                "plan": DEFAULT_PLAN,
                "conversion_count": 0,
                "last_reset": now,
                "created_at": now,
                "updated_at": now,
            }),
            "creating user",
        )
        row = _first(response)
        logger.info(f"Created user row for {user_id}")
    except DuplicateRowError:
        logger.info(f"User {user_id} was created concurrently, re-reading")
        row = None

    if not row:
        row = _fetch_user_row(supabase, user_id)
    if not row:
        logger.error(f"User row for {user_id} missing after creation attempt; check table permissions")
        raise UserNotFoundError()
    return UserModel.model_validate(row)


def _compare_and_set_counter(
    supabase: Client, row: Dict[str, Any], values: Dict[str, Any]
) -> Optional[Dict[str, Any]]:
    """Update the counter fields only if nobody changed them since `row` was read."""
    query = (
        supabase.table(USERS_TABLE)
        .update(values)
        .eq("id", row["id"])
        .eq("conversion_count", row["conversion_count"])
        .eq("last_reset", row["last_reset"])
    )
    return _first(_execute(query, "updating conversion count"))


def apply_daily_reset(supabase: Client, user: UserModel, now: Optional[datetime] = None) -> UserModel:
    """Zero the counter of a user whose last_reset is on a previous day."""
    now = now or utc_now()
    for _ in range(MAX_UPDATE_ATTEMPTS):
        row = _fetch_user_row(supabase, user.id)
        if not row:
            raise UserNotFoundError()
        if not check_daily_reset(row["last_reset"], now):
            return UserModel.model_validate(row)
        updated = _compare_and_set_counter(supabase, row, {
            "conversion_count": 0,
            "last_reset": now.isoformat(),
            "updated_at": now.isoformat(),
        })
        if updated:
            logger.info(f"Daily conversion count reset for user {user.id}")
            return UserModel.model_validate(updated)
    raise StoreConflictError(f"Could not reset conversion count for {user.id}")


def increment_conversion_count(supabase: Client, user_id: str, now: Optional[datetime] = None) -> UserModel:
    """
    Count one conversion, starting over at 1 when the day has rolled over.

    Each attempt is a conditional update on the values just read, so two
    concurrent conversions can never both write count + 1. The plan's daily
    limit is checked against every fresh read, so a retry never pushes the
    counter past it.
    """
    now = now or utc_now()
    for attempt in range(MAX_UPDATE_ATTEMPTS):
        row = _fetch_user_row(supabase, user_id)
        if not row:
            raise UserNotFoundError()

        if check_daily_reset(row["last_reset"], now):
            values = {"conversion_count": 1, "last_reset": now.isoformat()}
        else:
            limits = get_plan_limits(row.get("plan"))
            if row["conversion_count"] >= limits.quotas.conversions_per_day:
                raise ValidationError(daily_limit_reached(limits.name))
            values = {"conversion_count": row["conversion_count"] + 1}
        values["updated_at"] = now.isoformat()

        updated = _compare_and_set_counter(supabase, row, values)
        if updated:
            return UserModel.model_validate(updated)
        logger.warning(f"Conversion count for {user_id} changed concurrently (attempt {attempt + 1})")

    raise StoreConflictError(f"Could not increment conversion count for {user_id}")


def update_plan(supabase: Client, user_id: str, plan: str) -> Optional[UserModel]:
    response = _execute(
        supabase.table(USERS_TABLE)
        .update({"plan": plan, "updated_at": utc_now().isoformat()})
        .eq("id", user_id),
        "updating plan",
    )
    row = _first(response)
    if not row:
        logger.warning(f"No user row {user_id} to update plan to {plan}")
        return None
    return UserModel.model_validate(row)


# --- Subscriptions ---

def get_subscription_by_provider_id(supabase: Client, provider_subscription_id: str) -> Optional[SubscriptionModel]:
    response = _execute(
        supabase.table(SUBSCRIPTIONS_TABLE)
        .select("*")
        .eq("lemonsqueezy_subscription_id", provider_subscription_id)
        .limit(1),
        "fetching subscription",
    )
    row = _first(response)
    return SubscriptionModel.model_validate(row) if row else None


def get_latest_subscription_for_user(supabase: Client, user_id: str) -> Optional[SubscriptionModel]:
    response = _execute(
        supabase.table(SUBSCRIPTIONS_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .order("updated_at", desc=True)
        .limit(1),
        "fetching user subscription",
    )
    row = _first(response)
    return SubscriptionModel.model_validate(row) if row else None


def upsert_subscription(supabase: Client, fields: Dict[str, Any]) -> SubscriptionModel:
    """
    Insert or update a subscription keyed by lemonsqueezy_subscription_id.

    `created_at` is only written on insert; every other field is replaced.
    """
    provider_id = fields["lemonsqueezy_subscription_id"]
    update_fields = {k: v for k, v in fields.items() if k != "created_at"}

    def _update() -> SubscriptionModel:
        response = _execute(
            supabase.table(SUBSCRIPTIONS_TABLE)
            .update(update_fields)
            .eq("lemonsqueezy_subscription_id", provider_id),
            "updating subscription",
        )
        row = _first(response)
        if not row:
            raise StoreError(f"Subscription {provider_id} vanished during update")
        return SubscriptionModel.model_validate(row)

    if get_subscription_by_provider_id(supabase, provider_id):
        return _update()

    insert_fields = dict(fields)
    if not insert_fields.get("created_at"):
        insert_fields["created_at"] = utc_now().isoformat()
    try:
        response = _execute(supabase.table(SUBSCRIPTIONS_TABLE).insert(insert_fields), "creating subscription")
    except DuplicateRowError:
        return _update()
    return SubscriptionModel.model_validate(_first(response))


# --- User files ---

def create_user_file(supabase: Client, fields: Dict[str, Any]) -> UserFileModel:
    response = _execute(supabase.table(USER_FILES_TABLE).insert(fields), "recording user file")
    return UserFileModel.model_validate(_first(response))


def list_user_files(supabase: Client, user_id: str, now: Optional[datetime] = None) -> List[UserFileModel]:
    """Ready, unexpired files of a user, newest first."""
    now = now or utc_now()
    response = _execute(
        supabase.table(USER_FILES_TABLE)
        .select("*")
        .eq("user_id", user_id)
        .eq("status", FILE_READY)
        .gt("expires_at", now.isoformat())
        .order("created_at", desc=True),
        "listing user files",
    )
    return [UserFileModel.model_validate(row) for row in response.data or []]


def get_user_file(supabase: Client, user_id: str, file_id: str) -> Optional[UserFileModel]:
    response = _execute(
        supabase.table(USER_FILES_TABLE)
        .select("*")
        .eq("id", file_id)
        .eq("user_id", user_id)
        .limit(1),
        "fetching user file",
    )
    row = _first(response)
    return UserFileModel.model_validate(row) if row else None


def mark_user_file_downloaded(
    supabase: Client, user_id: str, file_id: str, now: Optional[datetime] = None
) -> Optional[UserFileModel]:
    now = now or utc_now()
    response = _execute(
        supabase.table(USER_FILES_TABLE)
        .update({"status": FILE_DOWNLOADED, "last_downloaded_at": now.isoformat()})
        .eq("id", file_id)
        .eq("user_id", user_id),
        "marking user file downloaded",
    )
    row = _first(response)
    return UserFileModel.model_validate(row) if row else None


def delete_user_file(supabase: Client, user_id: str, file_id: str) -> bool:
    response = _execute(
        supabase.table(USER_FILES_TABLE).delete().eq("id", file_id).eq("user_id", user_id),
        "deleting user file",
    )
    return bool(response.data)


def expire_user_files(supabase: Client, now: Optional[datetime] = None) -> int:
    """Flip ready files past their expires_at to expired. Returns how many changed."""
    now = now or utc_now()
    response = _execute(
        supabase.table(USER_FILES_TABLE)
        .update({"status": FILE_EXPIRED})
        .eq("status", FILE_READY)
        .lt("expires_at", now.isoformat()),
        "expiring user files",
    )
    return len(response.data or [])
