"""
Admin API endpoints for user moderation.

Every route here requires the admin role and provides:
- User listing
- Ban / unban (toggle), which also ends the target's sessions
- Audit log of admin actions
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.api.dependencies import Client, Ledger
from booktracker.core.auth import AdminAuth
from booktracker.core.database import get_db
from booktracker.models.user import Users
from booktracker.schemas.admin import AuditLogData, AuditLogEntry, AuditLogResponse, AuditLogUser
from booktracker.schemas.user import (
    PublicUser,
    UserData,
    UserEnvelope,
    UserListData,
    UserListResponse,
)
from booktracker.services import moderation

router = APIRouter(prefix="/admin", tags=["admin"])


def _audit_user(user: Users | None) -> AuditLogUser | None:
    if user is None or user.user_id is None:
        return None
    return AuditLogUser(id=user.user_id, name=user.name, email=user.email)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    _: AdminAuth,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserListResponse:
    """All users, newest first."""
    users = [PublicUser.from_user(u) for u in await moderation.list_users(db)]
    return UserListResponse(results=len(users), data=UserListData(users=users))


@router.patch("/users/{user_id}/toggle-ban", response_model=UserEnvelope)
async def toggle_ban_user(
    user_id: Annotated[int, Path(description="User ID to ban or unban")],
    admin: AdminAuth,
    ledger: Ledger,
    client: Client,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserEnvelope:
    """
    Ban or unban a user.

    Admins cannot ban themselves or other admins. Banning revokes all of the
    target's refresh tokens; every toggle is written to the audit log.
    """
    user = await moderation.toggle_ban(db, ledger, admin.user, user_id, ip=client.ip)
    return UserEnvelope(data=UserData(user=PublicUser.from_user(user)))


@router.get("/audit-logs", response_model=AuditLogResponse)
async def get_audit_logs(
    _: AdminAuth,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuditLogResponse:
    """The 50 most recent admin actions."""
    rows = await moderation.recent_admin_actions(db)
    logs = [
        AuditLogEntry(
            id=action.action_id,
            admin=_audit_user(acting_admin),
            action=action.action,
            target_user=_audit_user(target),
            target_request=action.target_request_id,
            target_book=action.target_book_id,
            metadata=action.details,
            created_at=action.created_at,
        )
        for action, acting_admin, target in rows
        if action.action_id is not None
    ]
    return AuditLogResponse(results=len(logs), data=AuditLogData(logs=logs))
