"""
Authentication flows: register, login, Google sign-in, refresh and logout.

The service only decides *what* happens; the route layer turns an
AuthSession into the JSON body plus the refresh cookie.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.config import AuthProvider, RevokeReason, Settings, UserRole
from booktracker.core.errors import (
    AccountBanned,
    DuplicateEmail,
    InvalidCredentials,
    InvalidFederatedToken,
    InvalidRefreshToken,
    NoRefreshToken,
    SuspiciousActivity,
    Unauthenticated,
)
from booktracker.core.federated import GoogleIdentityVerifier
from booktracker.core.logging import get_logger
from booktracker.core.security import (
    AccessTokenSigner,
    burn_password_check,
    get_password_hash,
    unusable_password_hash,
    verify_password,
)
from booktracker.models.user import Users, normalize_email
from booktracker.services.refresh_tokens import (
    ClientInfo,
    IssuedRefreshToken,
    RefreshTokenLedger,
    RotationStatus,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthSession:
    """Result of a successful authentication."""

    user: Users
    access_token: str
    expires_in: int
    refresh_token: IssuedRefreshToken
    created: bool = False


async def get_user_by_id(db: AsyncSession, user_id: int) -> Users | None:
    result = await db.execute(select(Users).where(Users.user_id == user_id))  # type: ignore[arg-type]
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Users | None:
    result = await db.execute(
        select(Users).where(Users.email == normalize_email(email))  # type: ignore[arg-type]
    )
    return result.scalar_one_or_none()


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        signer: AccessTokenSigner,
        ledger: RefreshTokenLedger,
    ) -> None:
        self.db = db
        self.settings = settings
        self.signer = signer
        self.ledger = ledger

    async def _issue_session(self, user: Users, client: ClientInfo, created: bool = False) -> AuthSession:
        """Mint an access token and a fresh refresh token lineage for a user."""
        if user.user_id is None:
            raise ValueError("User ID cannot be None")
        refresh_token = await self.ledger.create_token(user.user_id, client)
        return AuthSession(
            user=user,
            access_token=self.signer.issue(user.user_id, user.role),
            expires_in=self.signer.expires_in,
            refresh_token=refresh_token,
            created=created,
        )

    async def register(self, name: str, email: str, password: str, client: ClientInfo) -> AuthSession:
        """
        Create a local account and log it in.

        Raises:
            DuplicateEmail: an account already uses this email (case-insensitive)
        """
        email = normalize_email(email)
        if await get_user_by_email(self.db, email):
            raise DuplicateEmail()

        user = Users(
            name=name,
            email=email,
            password_hash=get_password_hash(password, rounds=self.settings.BCRYPT_ROUNDS),
            role=UserRole.USER.value,
            provider=AuthProvider.LOCAL.value,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration for the same email
            await self.db.rollback()
            raise DuplicateEmail() from e
        await self.db.refresh(user)

        logger.info("user_registered", user_id=user.user_id, ip=client.ip)
        return await self._issue_session(user, client, created=True)

    async def login(self, email: str, password: str, client: ClientInfo) -> AuthSession:
        """
        Password login.

        Ban status is reported separately from bad credentials; that confirms
        the account exists, which is accepted for the clearer message.

        Raises:
            InvalidCredentials: unknown email or wrong password
            AccountBanned: the account is banned
        """
        user = await get_user_by_email(self.db, email)

        if user is None:
            burn_password_check(password, rounds=self.settings.BCRYPT_ROUNDS)
            logger.info("login_failed", reason="unknown_email", ip=client.ip)
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            logger.info("login_failed", reason="bad_password", user_id=user.user_id, ip=client.ip)
            raise InvalidCredentials()

        if user.is_banned:
            logger.warning("login_blocked_banned", user_id=user.user_id, ip=client.ip)
            raise AccountBanned()

        logger.info("user_logged_in", user_id=user.user_id, ip=client.ip)
        return await self._issue_session(user, client)

    async def login_with_federated_identity(
        self,
        credential: str,
        verifier: GoogleIdentityVerifier,
        client: ClientInfo,
    ) -> AuthSession:
        """
        Google sign-in: verify the ID token, then find or create the account.

        Raises:
            IdentityProviderUnavailable: Google sign-in is not configured
            InvalidFederatedToken: the credential did not verify or its email
                is unverified
            AccountBanned: the account is banned
        """
        identity = await verifier.verify(credential)
        if not identity.email_verified:
            logger.warning("login_blocked_unverified_email", ip=client.ip, provider="google")
            raise InvalidFederatedToken()

        created = False
        user = await get_user_by_email(self.db, identity.email)
        if user is None:
            user = Users(
                name=identity.name or identity.email.split("@", 1)[0],
                email=identity.email,
                password_hash=unusable_password_hash(rounds=self.settings.BCRYPT_ROUNDS),
                role=UserRole.USER.value,
                provider=AuthProvider.GOOGLE.value,
                federated_subject=identity.subject,
            )
            self.db.add(user)
            created = True
        elif user.federated_subject is None:
            user.federated_subject = identity.subject

        await self.db.commit()
        await self.db.refresh(user)

        if user.is_banned:
            logger.warning("login_blocked_banned", user_id=user.user_id, ip=client.ip, provider="google")
            raise AccountBanned()

        logger.info(
            "user_logged_in",
            user_id=user.user_id,
            ip=client.ip,
            provider="google",
            created=created,
        )
        return await self._issue_session(user, client, created=created)

    async def refresh(self, bearer: str | None, client: ClientInfo) -> AuthSession:
        """
        Rotate the refresh token and mint a new access token.

        Every failure clears the refresh cookie except a missing cookie.

        Raises:
            NoRefreshToken: no cookie was sent
            SuspiciousActivity: the token had already been used
            InvalidRefreshToken: bad, expired or unknown token
            Unauthenticated: the owning user no longer exists
            AccountBanned: the owning user is banned, whatever the ledger said
        """
        if not bearer:
            raise NoRefreshToken()

        result = await self.ledger.rotate_token(bearer, client)

        user = None
        if result.user_id is not None:
            user = await get_user_by_id(self.db, result.user_id)

        # Checked before the ledger outcome; a ban has already revoked the tokens
        if user is not None and user.is_banned:
            await self.ledger.revoke_by_user_id(result.user_id, RevokeReason.ADMIN_BAN, client.ip)
            logger.warning("refresh_blocked_banned", user_id=user.user_id, ip=client.ip)
            raise AccountBanned(clear_refresh_cookie=True)

        if result.status is RotationStatus.REUSED:
            raise SuspiciousActivity(clear_refresh_cookie=True)
        if not result.rotated or result.token is None:
            raise InvalidRefreshToken(clear_refresh_cookie=True)

        if user is None or user.user_id is None:
            # The successor is already committed; it must not outlive its owner
            await self.ledger.revoke_by_user_id(
                result.token.user_id, RevokeReason.USER_DELETED, client.ip
            )
            raise Unauthenticated("User no longer exists.", clear_refresh_cookie=True)
        return AuthSession(
            user=user,
            access_token=self.signer.issue(user.user_id, user.role),
            expires_in=self.signer.expires_in,
            refresh_token=result.token,
        )

    async def logout(self, bearer: str | None, client: ClientInfo) -> int | None:
        """
        End every session of the token's owner, not only the current device.

        Best effort: an undecodable cookie just means nothing is revoked.

        Returns:
            The user id whose tokens were revoked, if any
        """
        user_id = self.ledger.get_user_id_from_token(bearer)
        if user_id is None:
            return None

        await self.ledger.revoke_by_user_id(user_id, RevokeReason.USER_LOGOUT, client.ip)
        logger.info("user_logged_out", user_id=user_id, ip=client.ip)
        return user_id
