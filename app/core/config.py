from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    PROJECT_NAME: str = "Convertor API"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # CORS settings
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    FRONTEND_URL: str = "http://localhost:3000"

    # Supabase settings
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_UPLOAD_BUCKET_NAME: str = "uploads"

    # LemonSqueezy settings
    LEMON_SQUEEZY_API_URL: str = "https://api.lemonsqueezy.com/v1"
    LEMON_SQUEEZY_API_KEY: Optional[str] = None
    LEMON_SQUEEZY_STORE_ID: Optional[str] = None
    LEMON_SQUEEZY_MONTHLY_VARIANT_ID: Optional[str] = None
    LEMON_SQUEEZY_YEARLY_VARIANT_ID: Optional[str] = None
    LEMON_SQUEEZY_WEBHOOK_SECRET: Optional[str] = None

    # Upload status tracking
    UPLOAD_STATUS_TTL_SECONDS: int = 60 * 60
    UPLOAD_STATUS_MAX_ENTRIES: int = 10_000
    UPLOAD_STATUS_SWEEP_INTERVAL_SECONDS: int = 10 * 60

    # Stored files
    USER_FILE_TTL_HOURS: int = 24
    DOWNLOAD_URL_TTL_SECONDS: int = 5 * 60
    LIST_URL_TTL_SECONDS: int = 10 * 60

    @property
    def LEMON_SQUEEZY_VARIANT_IDS(self) -> dict:
        return {
            "monthly": self.LEMON_SQUEEZY_MONTHLY_VARIANT_ID,
            "yearly": self.LEMON_SQUEEZY_YEARLY_VARIANT_ID,
        }

    def missing_lemonsqueezy_settings(self) -> List[str]:
        required = [
            "LEMON_SQUEEZY_API_KEY",
            "LEMON_SQUEEZY_STORE_ID",
            "LEMON_SQUEEZY_MONTHLY_VARIANT_ID",
            "LEMON_SQUEEZY_YEARLY_VARIANT_ID",
            "LEMON_SQUEEZY_WEBHOOK_SECRET",
        ]
        return [name for name in required if not getattr(self, name)]


settings = Settings()
