from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional


class UserOut(BaseModel):
    id: str = Field(..., description="User id")
    email: Optional[str] = Field(None, description="User email")
    name: Optional[str] = Field(None, description="Display name")
    plan: str = Field("free", description="User plan")
    conversionCount: int = Field(0, description="Conversions since lastReset")
    lastReset: datetime = Field(..., description="When the daily counter was last zeroed")


class UsageOut(BaseModel):
    plan: str
    conversionCount: int
    lastReset: datetime
    limit: int
    remaining: int
    usagePercentage: float
    canConvertMore: bool


class FileInfo(BaseModel):
    size: int = Field(..., ge=0)
    type: str


class BatchLimitRequest(BaseModel):
    fileCount: int = Field(..., ge=1)
    files: List[FileInfo] = []
