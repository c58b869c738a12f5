"""
Application Configuration
Uses Pydantic Settings for environment-based configuration.

A single Settings instance is built at startup by create_app() and handed to
the token signer, refresh token ledger, cookie transport and identity
verifier. Nothing below reads the environment at import time.
"""

from enum import Enum
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Book Tracker API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|test|staging|production)$")
    DEBUG: bool = Field(default=False)
    API_V1_STR: str = "/api/v1"

    # Security
    JWT_ACCESS_SECRET: str = Field(min_length=16)
    # Falls back to JWT_ACCESS_SECRET when unset
    JWT_REFRESH_SECRET: str | None = Field(default=None, min_length=16)
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=15, gt=0)
    REFRESH_TOKEN_EXPIRE_DAYS: int = Field(default=7, gt=0)
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)

    # Refresh token cookie
    REFRESH_TOKEN_COOKIE_NAME: str = "refreshToken"
    COOKIE_DOMAIN: str | None = None
    COOKIE_SAMESITE: Literal["lax", "strict", "none"] | None = None

    # CORS
    # Allow str because it can be a comma-separated string in .env
    CORS_ORIGINS: str | list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"]
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./booktracker.db"
    DB_ECHO: bool = False
    DB_CREATE_TABLES: bool = True

    # Google sign-in
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_JWKS_URL: str = "https://www.googleapis.com/oauth2/v3/certs"
    GOOGLE_ISSUERS: str | list[str] = Field(
        default=["accounts.google.com", "https://accounts.google.com"]
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CORS_ORIGINS", "GOOGLE_ISSUERS", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated lists from .env"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @model_validator(mode="after")
    def default_refresh_secret(self) -> "Settings":
        if self.JWT_REFRESH_SECRET is None:
            self.JWT_REFRESH_SECRET = self.JWT_ACCESS_SECRET
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def access_token_expire_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies in production, or whenever SameSite=None is in effect."""
        return self.is_production or self.cookie_samesite == "none"

    @property
    def cookie_samesite(self) -> Literal["lax", "strict", "none"]:
        """
        SameSite policy for the refresh cookie.

        The frontend and backend live on different domains in production, so the
        cookie has to be sent on cross-site fetches there.
        """
        if self.COOKIE_SAMESITE is not None:
            return self.COOKIE_SAMESITE
        return "none" if self.is_production else "lax"


@lru_cache
def get_settings() -> Settings:
    """Build settings from the process environment (and .env) once."""
    load_dotenv()
    return Settings()  # type: ignore[call-arg]


class UserRole(str, Enum):
    """Roles a user can hold"""

    USER = "user"
    ADMIN = "admin"


class AuthProvider(str, Enum):
    """Where a user's identity comes from"""

    LOCAL = "local"
    GOOGLE = "google"


class RevokeReason(str, Enum):
    """Why a refresh token record was revoked"""

    ROTATED = "rotated"
    EXPIRED = "expired"
    REUSE_DETECTED = "reuse-detected"
    USER_LOGOUT = "user-logout"
    ADMIN_BAN = "admin-ban"
    USER_DELETED = "user-deleted"


class AdminActionType:
    """Admin action type constants for audit logging"""

    BAN_USER = "BAN_USER"
    UNBAN_USER = "UNBAN_USER"
