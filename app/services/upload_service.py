import logging
import re
import uuid
from datetime import timedelta

from fastapi import UploadFile
from supabase import Client

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.plans import format_file_size, utc_now
from app.database.crud import FILE_READY, create_user_file
from app.services.upload_tracker import COMPLETED, FAILED, UPLOADING, UploadStatusTracker

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 1024 * 1024


def sanitize_file_name(file_name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", file_name or "upload")


def new_upload_id() -> str:
    return str(uuid.uuid4())


def size_limit_error(max_bytes: int) -> ValidationError:
    return ValidationError(f"File size exceeds {format_file_size(max_bytes)} limit")


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """
    Read an uploaded file, refusing anything larger than `max_bytes`.

    The declared size is checked before any byte is read; the chunked read
    covers parts that arrive without one.
    """
    if file.size is not None and file.size > max_bytes:
        raise size_limit_error(max_bytes)

    chunks = []
    total = 0
    while True:
        chunk = await file.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise size_limit_error(max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


def queue_upload(tracker: UploadStatusTracker, file_name: str) -> str:
    """Register a pending upload and return its id."""
    upload_id = new_upload_id()
    tracker.create(upload_id, file_name)
    logger.info(f"Queued upload {upload_id} ({file_name})")
    return upload_id


def process_upload(
    supabase: Client,
    tracker: UploadStatusTracker,
    bucket: str,
    upload_id: str,
    user_id: str,
    file_name: str,
    content: bytes,
    content_type: str,
) -> None:
    """
    Push a queued upload to Supabase Storage and record it in user_files.
    Runs as a background task, so failures end up in the tracker instead of
    propagating.
    """
    tracker.set_status(upload_id, UPLOADING)
    storage_path = f"{user_id}/{upload_id}-{sanitize_file_name(file_name)}"
    content_type = content_type or "application/octet-stream"

    try:
        supabase.storage.from_(bucket).upload(
            path=storage_path,
            file=content,
            file_options={"content-type": content_type},
        )
        now = utc_now()
        create_user_file(supabase, {
            "user_id": user_id,
            "file_name": file_name,
            "file_path": storage_path,
            "content_type": content_type,
            "file_size": len(content),
            "status": FILE_READY,
            "expires_at": (now + timedelta(hours=settings.USER_FILE_TTL_HOURS)).isoformat(),
            "created_at": now.isoformat(),
        })
    except Exception as e:
        logger.exception(f"Upload {upload_id} to {storage_path} failed: {e}")
        tracker.set_status(upload_id, FAILED, error="Failed to store uploaded file")
        return

    logger.info(f"Upload {upload_id} stored at {storage_path} ({len(content)} bytes)")
    tracker.set_status(upload_id, COMPLETED)
