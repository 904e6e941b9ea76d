"""Application configuration"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    app_name: str = "Team Todo"
    log_level: str = "INFO"
    site_origin: str = "http://localhost:3000"

    # Hosted backend
    api_url: str = ""
    api_key: str = ""
    connect_timeout: float = 5.0
    read_timeout: float = 30.0

    # Change feed
    redis_url: str = "redis://localhost:6379"

    # Local cache
    cache_path: str = ".local/teamtodo/cache.json"

    # Teams
    invitation_ttl_days: int = 7
    invite_redirect_delay: float = 3.0

    # Profiles
    avatar_bucket: str = "avatars"
    avatar_max_bytes: int = 5 * 1024 * 1024
    password_min_length: int = 6

    # Stats (python weekday of the first day of a week, 6 = Sunday)
    week_start: int = 6

    # Email ("sendgrid" or "smtp")
    email_provider: str = "sendgrid"
    email_from_email: Optional[str] = None
    email_from_name: str = "Team Todo"
    sendgrid_api_key: Optional[str] = None
    smtp_host: str = "smtp.office365.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def validate_settings(settings: Settings) -> list:
    """Validate that the backend connection is configured"""
    errors = []

    if not settings.api_url:
        errors.append("API_URL is required to reach the backend")

    if not settings.api_key:
        errors.append("API_KEY is required to reach the backend")

    if not 0 <= settings.week_start <= 6:
        errors.append("WEEK_START must be a weekday number between 0 and 6")

    return errors


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    settings = Settings()

    for error in validate_settings(settings):
        logger.warning(f"Config warning: {error}")

    return settings
