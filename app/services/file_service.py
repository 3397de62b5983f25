import logging
from datetime import datetime
from typing import Optional

from supabase import Client

from app.core.exceptions import InternalError, NotFoundError
from app.core.plans import utc_now
from app.database.crud import FILE_EXPIRED, delete_user_file, get_user_file
from app.database.models import UserFileModel

logger = logging.getLogger(__name__)


def create_signed_url(supabase: Client, bucket: str, path: str, expires_in: int) -> str:
    """Signed download URL for an object; the key name differs across supabase-py versions."""
    signed = supabase.storage.from_(bucket).create_signed_url(path, expires_in)
    if not isinstance(signed, dict):
        signed = getattr(signed, "data", None) or {}
    url = signed.get("signedURL") or signed.get("signedUrl") or signed.get("signed_url")
    if not url:
        raise InternalError(f"Storage returned no signed URL for {path}")
    return url


def is_expired(user_file: UserFileModel, now: Optional[datetime] = None) -> bool:
    now = now or utc_now()
    return user_file.status == FILE_EXPIRED or user_file.expires_at <= now


def time_remaining_ms(user_file: UserFileModel, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    return max(0, int((user_file.expires_at - now).total_seconds() * 1000))


def get_downloadable_file(supabase: Client, user_id: str, file_id: str) -> UserFileModel:
    user_file = get_user_file(supabase, user_id, file_id)
    if user_file is None:
        raise NotFoundError("File not found")
    if is_expired(user_file):
        raise NotFoundError("File has expired")
    return user_file


def remove_user_file(supabase: Client, bucket: str, user_id: str, file_id: str) -> None:
    """Delete the stored object, then its user_files row."""
    user_file = get_user_file(supabase, user_id, file_id)
    if user_file is None:
        raise NotFoundError("File not found")

    supabase.storage.from_(bucket).remove([user_file.file_path])
    delete_user_file(supabase, user_id, file_id)
    logger.info(f"Deleted file {file_id} ({user_file.file_path}) for user {user_id}")
