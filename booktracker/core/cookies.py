"""
Refresh token cookie transport.

The refresh token only ever travels in an HttpOnly cookie. Access tokens are
never written to cookies; they travel in the Authorization header.
"""

from datetime import datetime

from fastapi import Request, Response

from booktracker.config import Settings
from booktracker.core.security import utcnow


class RefreshCookieTransport:
    """Builds, clears and reads the refresh token cookie."""

    def __init__(self, settings: Settings) -> None:
        self.name = settings.REFRESH_TOKEN_COOKIE_NAME
        self.secure = settings.cookie_secure
        self.samesite = settings.cookie_samesite
        self.domain = settings.COOKIE_DOMAIN if settings.is_production else None
        self.path = "/"

    def set(self, response: Response, bearer: str, expires_at: datetime) -> None:
        """Attach the refresh token; Max-Age mirrors the token's remaining lifetime."""
        max_age = max(int((expires_at - utcnow()).total_seconds()), 0)
        response.set_cookie(
            key=self.name,
            value=bearer,
            max_age=max_age,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    def clear(self, response: Response) -> None:
        """Expire the cookie immediately (match set() attributes)."""
        response.set_cookie(
            key=self.name,
            value="",
            max_age=0,
            expires=0,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    def read(self, request: Request) -> str | None:
        return request.cookies.get(self.name) or None
