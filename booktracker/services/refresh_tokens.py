"""
Refresh token ledger: issue, rotate and revoke refresh tokens.

Each issued refresh token is a row in refresh_tokens. The client receives a
signed bearer value (a JWT signed with the refresh secret) carrying the row's
token_id and the owning user id; the row itself never leaves the server.

Rotation is one-shot: presenting a bearer whose row was already rotated (or
never existed for that user) is treated as theft and revokes every active
token of the user.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import jwt
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.config import RevokeReason, Settings
from booktracker.core.logging import get_logger
from booktracker.core.security import generate_token_id, utcnow
from booktracker.models.refresh_token import RefreshTokens

logger = get_logger(__name__)

TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class ClientInfo:
    """Where a token request came from, for auditing."""

    ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class IssuedRefreshToken:
    bearer: str
    token_id: str
    user_id: int
    expires_at: datetime


class RotationStatus(str, Enum):
    ROTATED = "rotated"
    REUSED = "reused"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class RotationResult:
    status: RotationStatus
    user_id: int | None = None
    token: IssuedRefreshToken | None = None
    reason: str | None = None

    @property
    def rotated(self) -> bool:
        return self.status is RotationStatus.ROTATED


class RefreshTokenLedger:
    """Persistent record of refresh tokens for one database session."""

    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self._secret = settings.JWT_REFRESH_SECRET or settings.JWT_ACCESS_SECRET
        self._algorithm = settings.ALGORITHM
        self._lifetime = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def _sign(self, user_id: int, token_id: str, issued_at: datetime, expires_at: datetime) -> str:
        payload = {
            "sub": str(user_id),
            "jti": token_id,
            "type": TOKEN_TYPE,
            "iat": issued_at,
            "exp": expires_at,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def _decode(self, bearer: str, verify_exp: bool = True) -> tuple[int, str] | None:
        """Return (user_id, token_id) from a bearer value, or None if missing claims."""
        payload = jwt.decode(
            bearer,
            self._secret,
            algorithms=[self._algorithm],
            options={"verify_exp": verify_exp},
        )
        token_id = payload.get("jti")
        if payload.get("type") != TOKEN_TYPE or not isinstance(token_id, str) or not token_id:
            return None
        try:
            return int(payload["sub"]), token_id
        except (KeyError, TypeError, ValueError):
            return None

    async def create_token(
        self,
        user_id: int,
        client: ClientInfo | None = None,
        token_id: str | None = None,
    ) -> IssuedRefreshToken:
        """Issue a new refresh token and commit its record."""
        issued = await self._add_token(user_id, client or ClientInfo(), token_id)
        await self.db.commit()
        return issued

    async def _add_token(
        self, user_id: int, client: ClientInfo, token_id: str | None = None
    ) -> IssuedRefreshToken:
        token_id = token_id or generate_token_id()
        issued_at = utcnow()
        expires_at = issued_at + self._lifetime

        self.db.add(
            RefreshTokens(
                token_id=token_id,
                user_id=user_id,
                created_at=issued_at,
                expires_at=expires_at,
                created_by_ip=client.ip,
                user_agent=client.user_agent[:255] if client.user_agent else None,
            )
        )
        await self.db.flush()

        return IssuedRefreshToken(
            bearer=self._sign(user_id, token_id, issued_at, expires_at),
            token_id=token_id,
            user_id=user_id,
            expires_at=expires_at,
        )

    async def rotate_token(self, bearer: str, client: ClientInfo | None = None) -> RotationResult:
        """
        Exchange a refresh bearer for a successor.

        Returns:
            RotationResult with status
            - invalid: signature/expiry/claims check failed; nothing touched
            - reused: unknown or already-revoked token; all user tokens revoked
            - expired: record past expires_at; record revoked
            - rotated: old record revoked, successor issued
        """
        client = client or ClientInfo()

        try:
            decoded = self._decode(bearer)
        except jwt.PyJWTError as e:
            logger.info("refresh_token_invalid", reason="verify-failed", error=type(e).__name__)
            return RotationResult(RotationStatus.INVALID, reason="verify-failed")
        if decoded is None:
            logger.info("refresh_token_invalid", reason="missing-claims")
            return RotationResult(RotationStatus.INVALID, reason="missing-claims")

        user_id, token_id = decoded

        result = await self.db.execute(
            select(RefreshTokens).where(
                RefreshTokens.token_id == token_id,  # type: ignore[arg-type]
                RefreshTokens.user_id == user_id,  # type: ignore[arg-type]
            )
        )
        record = result.scalar_one_or_none()

        if record is None or record.is_revoked:
            return await self._reuse_detected(user_id, token_id, client)

        now = utcnow()
        if record.is_expired:
            await self._revoke_one(token_id, RevokeReason.EXPIRED, client.ip, now)
            await self.db.commit()
            logger.info("refresh_token_expired", user_id=user_id)
            return RotationResult(RotationStatus.EXPIRED, user_id=user_id, reason="expired")

        # Conditional revoke closes the race between two concurrent rotations of
        # the same token: only one UPDATE can flip is_revoked.
        successor_id = generate_token_id()
        won = await self._revoke_one(
            token_id, RevokeReason.ROTATED, client.ip, now, replaced_by=successor_id
        )
        if not won:
            return await self._reuse_detected(user_id, token_id, client)

        successor = await self._add_token(user_id, client, token_id=successor_id)
        await self.db.commit()
        logger.info("refresh_token_rotated", user_id=user_id, ip=client.ip)
        return RotationResult(RotationStatus.ROTATED, user_id=user_id, token=successor)

    async def revoke_by_user_id(
        self,
        user_id: int,
        reason: RevokeReason,
        ip: str | None = None,
    ) -> int:
        """Revoke every active refresh token of a user. Returns how many were revoked."""
        result = await self.db.execute(
            update(RefreshTokens)
            .where(
                RefreshTokens.user_id == user_id,  # type: ignore[arg-type]
                RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
            )
            .values(
                is_revoked=True,
                revoked_at=utcnow(),
                revoked_by_ip=ip,
                revoked_reason=reason.value,
            )
        )
        revoked = result.rowcount or 0  # type: ignore[attr-defined]
        await self.db.commit()
        logger.info("refresh_tokens_revoked", user_id=user_id, reason=reason.value, count=revoked)
        return revoked

    def get_user_id_from_token(self, bearer: str | None) -> int | None:
        """
        Best-effort owner lookup for a bearer value.

        The signature must be valid, but an expired token still identifies its
        owner, so logout works with a stale cookie. Never raises.
        """
        if not bearer:
            return None
        try:
            decoded = self._decode(bearer, verify_exp=False)
        except jwt.PyJWTError:
            return None
        return decoded[0] if decoded else None

    async def _revoke_one(
        self,
        token_id: str,
        reason: RevokeReason,
        ip: str | None,
        now: datetime,
        replaced_by: str | None = None,
    ) -> bool:
        """Revoke a single record if it is still active. Returns True if this call revoked it."""
        result = await self.db.execute(
            update(RefreshTokens)
            .where(
                RefreshTokens.token_id == token_id,  # type: ignore[arg-type]
                RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
            )
            .values(
                is_revoked=True,
                revoked_at=now,
                revoked_by_ip=ip,
                revoked_reason=reason.value,
                replaced_by_token=replaced_by,
            )
        )
        return (result.rowcount or 0) == 1  # type: ignore[attr-defined]

    async def _reuse_detected(self, user_id: int, token_id: str, client: ClientInfo) -> RotationResult:
        revoked = await self.revoke_by_user_id(user_id, RevokeReason.REUSE_DETECTED, client.ip)
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=user_id,
            ip=client.ip,
            user_agent=client.user_agent,
            revoked_count=revoked,
        )
        return RotationResult(RotationStatus.REUSED, user_id=user_id, reason="reuse-detected")
