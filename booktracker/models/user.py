"""
SQLModel-based User models with inheritance for security

UserBase (shared public fields)
    └─> Users (database table, adds internal/sensitive fields)

Public API output goes through booktracker.schemas.user.PublicUser, never
through Users directly.
"""

from datetime import datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from booktracker.config import AuthProvider, UserRole
from booktracker.core.security import utcnow
from booktracker.models.types import UTCDateTime


def normalize_email(email: str) -> str:
    """Emails are compared and stored case-insensitively."""
    return email.strip().lower()


class UserBase(SQLModel):
    """Base model with fields safe to expose via the API."""

    name: str = Field(max_length=100)
    email: str = Field(max_length=254)


class Users(UserBase, table=True):
    """
    Database table for users with internal and sensitive fields.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password_hash: Authentication (highly sensitive)
    - federated_subject: Identity provider account id
    """

    __tablename__ = "users"

    __table_args__ = (
        Index("idx_users_email", "email", unique=True),
        Index("idx_users_created_at", "created_at"),
    )

    # Primary key
    user_id: int | None = Field(default=None, primary_key=True)

    # Access control
    role: str = Field(default=UserRole.USER.value, max_length=20)
    is_banned: bool = Field(default=False)

    # Authentication (highly sensitive - never expose)
    password_hash: str = Field(max_length=255)
    provider: str = Field(default=AuthProvider.LOCAL.value, max_length=20)
    federated_subject: str | None = Field(default=None, max_length=255)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(
        default_factory=utcnow, sa_type=UTCDateTime, sa_column_kwargs={"onupdate": utcnow}
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
