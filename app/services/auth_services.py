import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from supabase import AuthApiError, Client

from app.core.exceptions import AuthError
from app.core.plans import check_daily_reset
from app.core.security import extract_bearer_token
from app.database.crud import apply_daily_reset, get_or_create_user
from app.integrations.supabase_connect import get_supabase_client

logger = logging.getLogger(__name__)

security_scheme = HTTPBearer(auto_error=False) # 401 with our own body instead of FastAPI's default


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    plan: str
    conversion_count: int
    last_reset: datetime


def _display_name(auth_user) -> Optional[str]:
    metadata = getattr(auth_user, "user_metadata", None) or {}
    return metadata.get("full_name") or auth_user.email


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    supabase: Client = Depends(get_supabase_client),
) -> CurrentUser:
    """
    Dependency that validates the bearer token with Supabase Auth and returns
    the caller's user row, creating it on first sight.
    """
    token = extract_bearer_token(credentials)

    try:
        response = supabase.auth.get_user(token)
    except AuthApiError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise AuthError("Invalid token") from e

    auth_user = getattr(response, "user", None)
    if not auth_user:
        raise AuthError("Invalid token")

    user = get_or_create_user(supabase, auth_user.id, auth_user.email)

    # Handle the daily quota reset before anyone reads the counter
    if check_daily_reset(user.last_reset):
        user = apply_daily_reset(supabase, user)

    return CurrentUser(
        id=user.id,
        email=auth_user.email,
        name=_display_name(auth_user),
        plan=user.plan,
        conversion_count=user.conversion_count,
        last_reset=user.last_reset,
    )
