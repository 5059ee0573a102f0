"""Application settings loaded from environment variables"""
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings(BaseModel):
    """Runtime configuration, read once from the environment"""
    # Database
    DATABASE_URL: str = f"sqlite:///{os.path.join(os.path.dirname(__file__), 'ayurclinic_dev.db')}"
    DB_ECHO: bool = False

    # Sessions
    SESSION_COOKIE_NAME: str = "ayur.sid"
    SESSION_TTL_SECONDS: int = 7 * 24 * 60 * 60  # 7 days, renewed on activity
    SESSION_COOKIE_SECURE: bool = False
    REDIS_URL: Optional[str] = None

    # HTTP
    FRONTEND_URL: str = "http://localhost:5173"
    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "5/minute"

    # Uploads
    UPLOAD_DIR: str = os.path.join(os.path.dirname(__file__), "uploads")
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Password hashing
    BCRYPT_ROUNDS: int = 12

    # Google OAuth (optional)
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/api/auth/google/callback"

    LOG_LEVEL: str = "INFO"

    @property
    def google_enabled(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)


def load_settings() -> Settings:
    """Build settings from the current environment"""
    defaults = Settings()
    return Settings(
        DATABASE_URL=os.getenv("DATABASE_URL", defaults.DATABASE_URL),
        DB_ECHO=_env_bool("DB_ECHO", "false"),
        SESSION_COOKIE_NAME=os.getenv("SESSION_COOKIE_NAME", defaults.SESSION_COOKIE_NAME),
        SESSION_TTL_SECONDS=int(os.getenv("SESSION_TTL_SECONDS", defaults.SESSION_TTL_SECONDS)),
        SESSION_COOKIE_SECURE=_env_bool("SESSION_COOKIE_SECURE", "false"),
        REDIS_URL=os.getenv("REDIS_URL") or None,
        FRONTEND_URL=os.getenv("FRONTEND_URL", defaults.FRONTEND_URL),
        RATE_LIMIT_ENABLED=_env_bool("RATE_LIMIT_ENABLED", "true"),
        LOGIN_RATE_LIMIT=os.getenv("LOGIN_RATE_LIMIT", defaults.LOGIN_RATE_LIMIT),
        UPLOAD_DIR=os.getenv("UPLOAD_DIR", defaults.UPLOAD_DIR),
        MAX_UPLOAD_BYTES=int(os.getenv("MAX_UPLOAD_BYTES", defaults.MAX_UPLOAD_BYTES)),
        BCRYPT_ROUNDS=int(os.getenv("BCRYPT_ROUNDS", defaults.BCRYPT_ROUNDS)),
        GOOGLE_CLIENT_ID=os.getenv("GOOGLE_CLIENT_ID") or None,
        GOOGLE_CLIENT_SECRET=os.getenv("GOOGLE_CLIENT_SECRET") or None,
        GOOGLE_REDIRECT_URI=os.getenv("GOOGLE_REDIRECT_URI", defaults.GOOGLE_REDIRECT_URI),
        LOG_LEVEL=os.getenv("LOG_LEVEL", defaults.LOG_LEVEL),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
