"""
SQLModel-based AdminAction model for audit logging

Append-only audit trail of privileged actions (ban/unban today; request
approvals and catalogue edits share the same table).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKeyConstraint, Index
from sqlmodel import Column, Field, SQLModel

from booktracker.core.security import utcnow
from booktracker.models.types import UTCDateTime


class AdminActions(SQLModel, table=True):
    """
    Audit log for admin actions.

    It stores:
    - Who performed the action
    - What type of action (AdminActionType)
    - References to the affected user, book request or book
    - JSON details with context (e.g. previous ban status)
    """

    __tablename__ = "admin_actions"

    __table_args__ = (
        ForeignKeyConstraint(
            ["admin_id"],
            ["users.user_id"],
            ondelete="SET NULL",
            onupdate="CASCADE",
            name="fk_admin_actions_admin_id",
        ),
        ForeignKeyConstraint(
            ["target_user_id"],
            ["users.user_id"],
            ondelete="SET NULL",
            onupdate="CASCADE",
            name="fk_admin_actions_target_user_id",
        ),
        Index("idx_admin_actions_admin_created", "admin_id", "created_at"),
        Index("idx_admin_actions_action_created", "action", "created_at"),
    )

    # Primary key
    action_id: int | None = Field(default=None, primary_key=True)

    # Admin who performed the action
    admin_id: int | None = Field(default=None, foreign_key="users.user_id")

    action: str = Field(max_length=50)

    # Related entities (nullable - not all actions have all references).
    # Book requests and books live outside this service, so only plain ids are kept.
    target_user_id: int | None = Field(default=None, foreign_key="users.user_id")
    target_request_id: int | None = Field(default=None)
    target_book_id: int | None = Field(default=None)

    # Examples:
    # - BAN_USER: {"previous_status": false}
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
