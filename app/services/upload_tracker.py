import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from fastapi import Request
from pydantic import BaseModel

logger = logging.getLogger(__name__)

PENDING = "pending"
UPLOADING = "uploading"
COMPLETED = "completed"
FAILED = "failed"

UPLOAD_STATUSES = (PENDING, UPLOADING, COMPLETED, FAILED)
TERMINAL_STATUSES = (COMPLETED, FAILED)


class UploadStatus(BaseModel):
    upload_id: str
    status: str
    file_name: str
    created_at: float
    updated_at: float
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class UploadStatusTracker:
    """
    Process-local upload-id -> status map.

    Nothing here survives a restart. Terminal entries are dropped by `sweep`
    once older than `ttl_seconds`, and `create` evicts the oldest entries
    when more than `max_entries` are held.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._uploads: "OrderedDict[str, UploadStatus]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._uploads)

    def create(self, upload_id: str, file_name: str) -> UploadStatus:
        now = self._clock()
        record = UploadStatus(
            upload_id=upload_id,
            status=PENDING,
            file_name=file_name,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._uploads[upload_id] = record
            self._uploads.move_to_end(upload_id)
            self._evict_overflow()
        return record

    def set_status(self, upload_id: str, status: str, error: Optional[str] = None) -> Optional[UploadStatus]:
        if status not in UPLOAD_STATUSES:
            raise ValueError(f"Unknown upload status: {status}")
        with self._lock:
            record = self._uploads.get(upload_id)
            if record is None:
                logger.warning(f"Status update for unknown upload {upload_id}")
                return None
            record = record.model_copy(update={
                "status": status,
                "error": error if status == FAILED else None,
                "updated_at": self._clock(),
            })
            self._uploads[upload_id] = record
        return record

    def get(self, upload_id: str) -> Optional[UploadStatus]:
        with self._lock:
            return self._uploads.get(upload_id)

    def sweep(self) -> int:
        """Drop finished uploads older than the TTL. Returns how many were removed."""
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [
                upload_id for upload_id, record in self._uploads.items()
                if record.is_terminal and record.updated_at < cutoff
            ]
            for upload_id in expired:
                del self._uploads[upload_id]
        if expired:
            logger.info(f"Swept {len(expired)} finished uploads from the status map")
        return len(expired)

    def _evict_overflow(self) -> None:
        # Oldest finished uploads go first, then the oldest of anything.
        overflow = len(self._uploads) - self.max_entries
        if overflow <= 0:
            return
        victims = [uid for uid, record in self._uploads.items() if record.is_terminal][:overflow]
        if len(victims) < overflow:
            rest = [uid for uid in self._uploads if uid not in victims]
            victims.extend(rest[: overflow - len(victims)])
        for upload_id in victims:
            del self._uploads[upload_id]
        logger.warning(f"Upload status map full, evicted {len(victims)} entries")


def get_upload_tracker(request: Request) -> UploadStatusTracker:
    return request.app.state.upload_tracker
