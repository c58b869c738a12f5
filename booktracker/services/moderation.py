"""
Admin moderation: user listing, ban toggling and the audit trail.
"""

from collections.abc import Sequence

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.config import AdminActionType, RevokeReason
from booktracker.core.errors import BadRequest, NotFound
from booktracker.core.logging import get_logger
from booktracker.models.admin_action import AdminActions
from booktracker.models.user import Users
from booktracker.services.auth import get_user_by_id
from booktracker.services.refresh_tokens import RefreshTokenLedger

logger = get_logger(__name__)

AUDIT_LOG_LIMIT = 50


async def list_users(db: AsyncSession) -> Sequence[Users]:
    result = await db.execute(
        select(Users).order_by(desc(Users.created_at), desc(Users.user_id))  # type: ignore[arg-type]
    )
    return result.scalars().all()


async def toggle_ban(
    db: AsyncSession,
    ledger: RefreshTokenLedger,
    admin: Users,
    target_user_id: int,
    ip: str | None = None,
) -> Users:
    """
    Flip a user's ban flag and record it in the audit log.

    A ban also revokes every refresh token of the target, so their sessions
    end at the next refresh; their next authenticated request is rejected by
    the ban check regardless.

    Raises:
        BadRequest: admin targets themselves, or the target is an admin
        NotFound: no such user
    """
    if target_user_id == admin.user_id:
        raise BadRequest("You cannot ban yourself.")

    user = await get_user_by_id(db, target_user_id)
    if user is None:
        raise NotFound("User not found.")

    if user.is_admin:
        raise BadRequest("Cannot ban another admin")

    previous_status = user.is_banned
    user.is_banned = not user.is_banned

    db.add(
        AdminActions(
            admin_id=admin.user_id,
            action=AdminActionType.BAN_USER if user.is_banned else AdminActionType.UNBAN_USER,
            target_user_id=user.user_id,
            details={"previous_status": previous_status},
        )
    )
    await db.commit()

    if user.is_banned:
        await ledger.revoke_by_user_id(target_user_id, RevokeReason.ADMIN_BAN, ip)

    logger.info(
        "user_ban_toggled",
        admin_id=admin.user_id,
        target_user_id=target_user_id,
        is_banned=user.is_banned,
    )
    return user


async def recent_admin_actions(
    db: AsyncSession, limit: int = AUDIT_LOG_LIMIT
) -> list[tuple[AdminActions, Users | None, Users | None]]:
    """Latest admin actions with the acting admin and target user loaded."""
    result = await db.execute(
        select(AdminActions)
        .order_by(desc(AdminActions.created_at), desc(AdminActions.action_id))  # type: ignore[arg-type]
        .limit(limit)
    )
    actions = result.scalars().all()

    user_ids = {
        uid for action in actions for uid in (action.admin_id, action.target_user_id) if uid is not None
    }
    users: dict[int, Users] = {}
    if user_ids:
        user_result = await db.execute(select(Users).where(Users.user_id.in_(user_ids)))  # type: ignore[union-attr]
        users = {u.user_id: u for u in user_result.scalars().all() if u.user_id is not None}

    return [
        (
            action,
            users.get(action.admin_id) if action.admin_id is not None else None,
            users.get(action.target_user_id) if action.target_user_id is not None else None,
        )
        for action in actions
    ]
