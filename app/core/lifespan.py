import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from supabase import Client
from app.core.config import settings
from app.core.exceptions import StoreError
from app.database.crud import expire_user_files
from app.integrations.supabase_connect import get_supabase_client, initialize_supabase
from app.services.upload_tracker import UploadStatusTracker

logger = logging.getLogger(__name__)


async def sweep_upload_statuses(tracker: UploadStatusTracker, interval_seconds: float):
    """Periodically drop finished uploads from the in-memory status map."""
    while True:
        await asyncio.sleep(interval_seconds)
        tracker.sweep()


async def expire_stored_files(supabase: Client, interval_seconds: float):
    """Periodically mark user_files past their expires_at as expired."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            expired = expire_user_files(supabase)
        except StoreError as e:
            # next round retries
            logger.warning(f"Expiring stored files failed: {e}")
            continue
        if expired:
            logger.info(f"Marked {expired} stored files as expired")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Context Manager for FastAPI application lifespan events.
    Connects Supabase and owns the upload status tracker and the
    housekeeping tasks.
    """
    # Startup event
    await initialize_supabase()
    supabase = await get_supabase_client()

    missing = settings.missing_lemonsqueezy_settings()
    if missing:
        logger.error(f"Missing LemonSqueezy settings: {', '.join(missing)}")

    tracker = UploadStatusTracker(
        ttl_seconds=settings.UPLOAD_STATUS_TTL_SECONDS,
        max_entries=settings.UPLOAD_STATUS_MAX_ENTRIES,
    )
    app.state.upload_tracker = tracker
    interval = settings.UPLOAD_STATUS_SWEEP_INTERVAL_SECONDS
    tasks = [
        asyncio.create_task(sweep_upload_statuses(tracker, interval)),
        asyncio.create_task(expire_stored_files(supabase, interval)),
    ]

    yield # Application will run and handle requests here

    # Shutdown event
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
