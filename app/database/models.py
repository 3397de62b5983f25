from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional


class UserModel(BaseModel):
    """A row of the `users` table."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Supabase auth user id")
    email: Optional[str] = Field(None, description="User email")
    plan: str = Field("free", description="User plan")
    conversion_count: int = Field(0, ge=0, description="Conversions since last_reset")
    last_reset: datetime = Field(..., description="When conversion_count was last zeroed")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriptionModel(BaseModel):
    """A row of the `subscriptions` table."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    lemonsqueezy_subscription_id: str
    lemonsqueezy_variant_id: Optional[str] = None
    status: str
    plan_type: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserFileModel(BaseModel):
    """A row of the `user_files` table: a stored file the user can download until expires_at."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    file_name: str
    file_path: str = Field(..., description="Object path inside the upload bucket")
    content_type: Optional[str] = None
    file_size: int = Field(0, ge=0)
    status: str = "ready"
    expires_at: datetime
    created_at: Optional[datetime] = None
    last_downloaded_at: Optional[datetime] = None
