"""
Google ID token verification for "Sign in with Google".

The frontend obtains an ID token (the `credential`) from Google Identity
Services and posts it to /auth/login/federated. We check its RS256 signature
against Google's published key set, its audience (our client id), issuer and
expiry, then hand back the identity claims.
"""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Any, Protocol

import jwt

from booktracker.config import Settings
from booktracker.core.errors import IdentityProviderUnavailable, InvalidFederatedToken
from booktracker.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FederatedIdentity:
    """Identity asserted by the external provider."""

    subject: str
    email: str
    name: str | None
    email_verified: bool


class SigningKeySource(Protocol):
    def get_signing_key_from_jwt(self, token: str) -> Any: ...


class GoogleIdentityVerifier:
    """
    Verifies Google ID tokens.

    The JWKS fetch is a blocking network call, so verification runs in the
    default executor.
    """

    def __init__(self, settings: Settings, jwks_client: SigningKeySource | None = None) -> None:
        self.client_id = settings.GOOGLE_CLIENT_ID
        self.issuers = list(settings.GOOGLE_ISSUERS)
        self._jwks_client = jwks_client or jwt.PyJWKClient(settings.GOOGLE_JWKS_URL, cache_keys=True)

    @property
    def configured(self) -> bool:
        return bool(self.client_id)

    async def verify(self, credential: str) -> FederatedIdentity:
        """
        Verify an ID token and return the identity it asserts.

        Raises:
            IdentityProviderUnavailable: no client id configured
            InvalidFederatedToken: verification failed, no email claim or the
                email is not verified
        """
        if not self.configured:
            raise IdentityProviderUnavailable()

        loop = asyncio.get_running_loop()
        claims = await loop.run_in_executor(None, partial(self._decode, credential))

        email = claims.get("email")
        subject = claims.get("sub")
        if not isinstance(email, str) or not email or not isinstance(subject, str):
            logger.warning("federated_token_missing_claims")
            raise InvalidFederatedToken()

        # Accounts are matched by email, so an unverified address must never sign in
        if claims.get("email_verified") not in (True, "true"):
            logger.warning("federated_email_unverified", subject=subject)
            raise InvalidFederatedToken()

        return FederatedIdentity(
            subject=subject,
            email=email.strip().lower(),
            name=claims.get("name"),
            email_verified=True,
        )

    def _decode(self, credential: str) -> dict[str, Any]:
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(credential)
            claims: dict[str, Any] = jwt.decode(
                credential,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
            # Google issues tokens under two issuer spellings
            if claims.get("iss") not in self.issuers:
                raise jwt.InvalidIssuerError("Invalid issuer")
        except jwt.PyJWTError as e:
            logger.warning("federated_token_rejected", reason=type(e).__name__)
            raise InvalidFederatedToken() from e
        return claims
