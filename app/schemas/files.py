from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class UserFileOut(BaseModel):
    id: str
    fileName: str
    fileSize: int
    contentType: Optional[str] = None
    status: str
    createdAt: Optional[datetime] = None
    expiresAt: datetime
    downloadUrl: str
    timeRemaining: int  # milliseconds until expiresAt


class MarkDownloadedRequest(BaseModel):
    fileId: str
