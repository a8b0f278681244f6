import os
from functools import lru_cache

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Runtime configuration for the identity service."""

    database_path: str = Field(default_factory=lambda: os.getenv("CONTACTS_DB_PATH", "contacts.db"))
    busy_timeout: float = Field(default_factory=lambda: float(os.getenv("DB_BUSY_TIMEOUT", "5.0")))
    identify_max_attempts: int = Field(default_factory=lambda: int(os.getenv("IDENTIFY_MAX_ATTEMPTS", "3")))
    identify_retry_backoff: float = Field(default_factory=lambda: float(os.getenv("IDENTIFY_RETRY_BACKOFF", "0.05")))
    cors_origins: list[str] = Field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    service_name: str = Field(default_factory=lambda: os.getenv("SERVICE_NAME", "bitespeed-identity"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
