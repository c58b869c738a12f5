"""
Security utilities for authentication.

This module provides:
- Password hashing and verification using bcrypt
- Access token signing and verification (short-lived JWTs)
- Random identifiers for refresh tokens and placeholder passwords
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache

import bcrypt
import jwt

from booktracker.config import Settings
from booktracker.core.errors import ExpiredToken, InvalidToken


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _prepare_password_for_bcrypt(password: str) -> str:
    """
    Prepare password for bcrypt by handling long passwords.

    Bcrypt has a 72 byte limit. For passwords longer than 72 bytes,
    we SHA256 hash them first and encode as base64.
    """
    password_bytes = password.encode("utf-8")

    if len(password_bytes) <= 72:
        return password

    # SHA256 produces 32 bytes, base64 encoding produces 44 chars (well under 72)
    hashed = hashlib.sha256(password_bytes).digest()
    return base64.b64encode(hashed).decode("ascii")


def get_password_hash(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: The plain text password to hash
        rounds: bcrypt cost factor

    Returns:
        The bcrypt hashed password
    """
    prepared_password = _prepare_password_for_bcrypt(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(prepared_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a bcrypt hash.

    Returns False (rather than raising) for malformed hashes.
    """
    prepared_password = _prepare_password_for_bcrypt(plain_password)
    try:
        return bcrypt.checkpw(prepared_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=8)
def _dummy_hash(rounds: int) -> str:
    return get_password_hash(secrets.token_urlsafe(16), rounds=rounds)


def burn_password_check(plain_password: str, rounds: int = 12) -> None:
    """
    Run a bcrypt comparison against a throwaway hash.

    Used when the account does not exist, so a login for an unknown email costs
    the same as a login with a wrong password.
    """
    verify_password(plain_password, _dummy_hash(rounds))


def generate_token_id() -> str:
    """
    Create a cryptographically secure opaque identifier.

    Returns:
        URL-safe random token string (43 characters)
    """
    return secrets.token_urlsafe(32)


def unusable_password_hash(rounds: int = 12) -> str:
    """Hash of a random secret nobody knows, for accounts without a local password."""
    return get_password_hash(secrets.token_urlsafe(48), rounds=rounds)


@dataclass(frozen=True)
class AccessTokenClaims:
    """What a verified access token asserts about its bearer."""

    user_id: int
    role: str
    issued_at: datetime
    expires_at: datetime


class AccessTokenSigner:
    """
    Issues and verifies short-lived access tokens.

    Verification is a pure function of the secret and the token; no store
    lookup happens here.
    """

    TOKEN_TYPE = "access"

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.JWT_ACCESS_SECRET
        self._algorithm = settings.ALGORITHM
        self._expires = timedelta(seconds=settings.access_token_expire_seconds)

    @property
    def expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self._expires.total_seconds())

    def issue(self, user_id: int, role: str, expires_delta: timedelta | None = None) -> str:
        """
        Create a signed access token.

        Args:
            user_id: The user ID to encode in the token
            role: The user's role at issuance time
            expires_delta: Optional custom lifetime (defaults to the configured one)
        """
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "role": role,
            "type": self.TOKEN_TYPE,
            "iat": now,
            "exp": now + (expires_delta if expires_delta is not None else self._expires),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> AccessTokenClaims:
        """
        Verify and decode an access token.

        Raises:
            ExpiredToken: the token is past its expiry
            InvalidToken: bad signature, malformed token, wrong type or claims
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"], "verify_exp": True, "verify_signature": True},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken() from e
        except jwt.PyJWTError as e:
            raise InvalidToken() from e

        if payload.get("type") != self.TOKEN_TYPE:
            raise InvalidToken()

        role = payload.get("role")
        if not isinstance(role, str):
            raise InvalidToken()

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError) as e:
            raise InvalidToken() from e

        return AccessTokenClaims(
            user_id=user_id,
            role=role,
            issued_at=datetime.fromtimestamp(payload.get("iat", 0), tz=UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        )
