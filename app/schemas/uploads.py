from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class UploadQueuedOut(BaseModel):
    uploadId: str
    status: str
    fileName: str


class UploadStatusOut(BaseModel):
    uploadId: str
    status: str
    fileName: str
    createdAt: datetime
    error: Optional[str] = None
    message: Optional[str] = None
