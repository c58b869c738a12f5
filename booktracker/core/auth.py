"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Extracting and verifying the bearer access token
- Loading the current user and enforcing bans
- Gating routes by role
- Reading client IP / user agent for auditing
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.core.database import get_db
from booktracker.core.errors import (
    AccountBanned,
    AppError,
    Forbidden,
    InvalidToken,
    Unauthenticated,
)
from booktracker.core.logging import bind_user, get_logger
from booktracker.core.security import AccessTokenClaims, AccessTokenSigner
from booktracker.models.user import Users
from booktracker.services.auth import get_user_by_id

logger = get_logger(__name__)

# auto_error=False so a missing header goes through our own error envelope
bearer_scheme = HTTPBearer(auto_error=False)

BANNED_MESSAGE = "Account has been banned by admin"


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller of a request."""

    user: Users
    claims: AccessTokenClaims

    @property
    def user_id(self) -> int:
        return self.claims.user_id

    @property
    def role(self) -> str:
        return self.user.role


def get_token_signer(request: Request) -> AccessTokenSigner:
    return request.app.state.token_signer


async def _resolve(
    credentials: HTTPAuthorizationCredentials | None,
    signer: AccessTokenSigner,
    db: AsyncSession,
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()

    try:
        claims = signer.verify(credentials.credentials)
    except InvalidToken as e:
        # Client only sees the generic message; the reason stays server-side
        logger.info("access_token_rejected", reason=type(e).__name__)
        raise Unauthenticated("Invalid or expired token. Please log in again.") from e

    user = await get_user_by_id(db, claims.user_id)
    if user is None:
        raise Unauthenticated("User no longer exists.")

    if user.is_banned:
        raise AccountBanned(BANNED_MESSAGE)

    return AuthContext(user=user, claims=claims)


async def require_auth(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    signer: Annotated[AccessTokenSigner, Depends(get_token_signer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthContext:
    """
    Resolve the caller from `Authorization: Bearer <token>`.

    Access tokens are never read from cookies.

    Raises:
        Unauthenticated: 401 if the token is missing, invalid, expired, or the user is gone
        AccountBanned: 403 if the user is banned, even with a still-valid token
    """
    context = await _resolve(credentials, signer, db)
    bind_user(context.user_id)
    return context


async def optional_auth(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    signer: Annotated[AccessTokenSigner, Depends(get_token_signer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AuthContext | None:
    """
    Resolve the caller if possible, otherwise return None.

    Useful for public endpoints that personalise their output for signed-in
    users. Banned users are treated as anonymous here rather than rejected.
    """
    if credentials is None:
        return None
    try:
        return await _resolve(credentials, signer, db)
    except AppError:
        return None


def require_role(*allowed_roles: str):
    """
    Build a dependency that only admits users holding one of `allowed_roles`.

    Usage:
        @router.get("/admin/stats", dependencies=[Depends(require_role("admin"))])
    """
    allowed = frozenset(allowed_roles)

    async def check_role(context: Annotated[AuthContext, Depends(require_auth)]) -> AuthContext:
        if context.user.role not in allowed:
            logger.info("role_check_failed", user_id=context.user_id, role=context.user.role)
            raise Forbidden()
        return context

    return check_role


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for proxies/load balancers),
    falls back to direct client IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "unknown")


# Type aliases for dependency injection
CurrentAuth = Annotated[AuthContext, Depends(require_auth)]
OptionalAuth = Annotated[AuthContext | None, Depends(optional_auth)]
AdminAuth = Annotated[AuthContext, Depends(require_role("admin"))]
