"""
SQLModel-based RefreshToken model for JWT authentication.

One row per issued refresh token. Rows linked through replaced_by_token form a
lineage: one continuous login session that has been rotated forward.

Security features:
- The bearer value handed to the client is a signed JWT; only its opaque
  token_id (the JWT's jti) is stored
- Rotation chain tracking for reuse detection
- Revocation with reason, time and IP for auditing
- Passive expiry: expires_at is checked when the token is presented
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from booktracker.core.security import utcnow
from booktracker.models.types import UTCDateTime


class RefreshTokens(SQLModel, table=True):
    """Database table for issued refresh tokens."""

    __tablename__ = "refresh_tokens"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_refresh_tokens_user_id",
        ),
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_token_id", "token_id", unique=True),
        Index("idx_refresh_tokens_expires_at", "expires_at"),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    # Opaque server-generated identifier (not the bearer value)
    token_id: str = Field(max_length=64)

    # User reference
    user_id: int = Field(foreign_key="users.user_id")

    # Expiration
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(sa_type=UTCDateTime)

    # Security tracking
    created_by_ip: str | None = Field(default=None, max_length=45)  # Supports IPv6
    user_agent: str | None = Field(default=None, max_length=255)

    # Revocation
    is_revoked: bool = Field(default=False)
    revoked_at: datetime | None = Field(default=None, sa_type=UTCDateTime)
    revoked_by_ip: str | None = Field(default=None, max_length=45)
    revoked_reason: str | None = Field(default=None, max_length=32)

    # Successor token_id once rotated
    replaced_by_token: str | None = Field(default=None, max_length=64)

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utcnow()
