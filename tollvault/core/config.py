"""
Application Configuration
"""
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    APP_NAME: str = "TollVault"
    DEBUG: bool = False

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 8080

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data.db"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgres:// or postgresql:// to postgresql+asyncpg:// for async support"""
        if v:
            if v.startswith("postgres://"):
                return v.replace("postgres://", "postgresql+asyncpg://", 1)
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+asyncpg://", 1)
            if v.startswith("sqlite:///"):
                return v.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return v

    # Telegram
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_ADMIN_CHAT_ID: Optional[str] = None  # only this chat may upload/query when set
    TELEGRAM_WEBHOOK_SECRET_TOKEN: str = ""  # openssl rand -hex 32

    @field_validator("TELEGRAM_ADMIN_CHAT_ID", mode="before")
    @classmethod
    def normalize_admin_chat_id(cls, v: Optional[str]) -> Optional[str]:
        """Empty string and "0" both mean "no admin chat configured\""""
        if v is None:
            return None
        v = str(v).strip()
        if not v or v == "0":
            return None
        return v

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    # Off by default: upload reports then go through FastAPI BackgroundTasks
    CELERY_NOTIFICATIONS_ENABLED: bool = False

    # Reports
    REPORT_TIMEZONE: str = "Asia/Kolkata"

    @field_validator("REPORT_TIMEZONE", mode="after")
    @classmethod
    def validate_report_timezone(cls, v: str) -> str:
        """Fail at startup rather than on the first upload"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"REPORT_TIMEZONE='{v}' is not a known IANA timezone") from exc
        return v

    # File Upload
    UPLOAD_DIR: str = "./uploads"
    MAX_FILE_SIZE: int = 20 * 1024 * 1024  # 20MB

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Cross-field warnings for a deployment that talks to Telegram."""
        import warnings

        if self.TELEGRAM_BOT_TOKEN and not self.TELEGRAM_WEBHOOK_SECRET_TOKEN:
            warnings.warn(
                "TELEGRAM_WEBHOOK_SECRET_TOKEN is empty - the Telegram webhook is not authenticated. "
                "Set it with: export TELEGRAM_WEBHOOK_SECRET_TOKEN=$(openssl rand -hex 32) "
                "and pass the same secret_token to setWebhook.",
                stacklevel=2,
            )
        if self.TELEGRAM_BOT_TOKEN and not self.TELEGRAM_ADMIN_CHAT_ID:
            warnings.warn(
                "TELEGRAM_ADMIN_CHAT_ID is empty - any Telegram chat can upload files and read reports.",
                stacklevel=2,
            )
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()


def local_now() -> datetime:
    """Current wall-clock time in the reporting timezone"""
    return datetime.now(ZoneInfo(settings.REPORT_TIMEZONE))


def current_batch_date() -> date:
    """Upload batch date for an ingestion happening right now"""
    return local_now().date()
