"""
Configuration settings for the Terra Chat backend.
Uses pydantic-settings for environment variable support.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
import secrets
import os


# backend/ directory
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def get_or_create_secret_key():
    """Get secret key from file or generate a new one."""
    secret_file = ".secret_key"
    if os.path.exists(secret_file):
        try:
            with open(secret_file, "r") as f:
                return f.read().strip()
        except OSError:
            pass

    key = secrets.token_urlsafe(32)
    try:
        with open(secret_file, "w") as f:
            f.write(key)
    except OSError:
        pass  # read-only fs: keep the key in memory only

    return key


class Settings(BaseSettings):
    """Application configuration settings."""

    # Application
    APP_NAME: str = "Terra Chat"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = f"sqlite+aiosqlite:///{os.path.join(BASE_DIR, 'terra_chat.db')}"

    # Identity tokens (issued by the wallet login service)
    SECRET_KEY: str = Field(default_factory=get_or_create_secret_key)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Messages
    MAX_TEXT_LENGTH: int = 500
    MAX_NAME_LENGTH: int = 120
    MAX_ATTACHMENT_SIZE: int = 25 * 1024 * 1024  # 25 MiB
    PLAYABLE_AUDIO_TYPES: list = ["audio/mpeg", "audio/mp4", "audio/aac", "audio/wav", "audio/x-wav"]
    PREVIEW_DIR: str = os.path.join(BASE_DIR, "previews")

    # Notifications
    NOTIFICATION_LIMIT: int = 12

    # Client
    API_BASE_URL: str = "http://localhost:6680"
    SEND_TIMEOUT_SECONDS: float = 20.0
    POLL_INTERVAL_SECONDS: float = 2.5

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 6680

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
