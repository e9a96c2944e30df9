import json
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "DC Procurement Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Document numbering, e.g. PO/DC/25-26/00001
    COMPANY_CODE: str = "DC"

    # Approval capability tokens
    TOKEN_SECRET: str
    TOKEN_SALT: str = "dc-procurement-approval-salt"
    APPROVAL_TOKEN_EXPIRE_MINUTES: int = 60
    APPROVAL_OVERRIDE_PASSWORD: Optional[str] = None  # Unset disables the check

    # SKU splitting
    UNIT_CODE_LENGTH: int = 12

    # Approval recipients per role
    APPROVAL_EMAIL_CREATOR: str = ""
    APPROVAL_EMAIL_CATEGORY_HEAD: str = ""
    APPROVAL_EMAIL_ADMIN: str = ""

    # Email/SMTP Settings
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""  # Sender email (defaults to SMTP_USER)
    SMTP_FROM_NAME: str = "DC Procurement"

    # Frontend URL for approval links
    FRONTEND_URL: str = "http://localhost:3000"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
