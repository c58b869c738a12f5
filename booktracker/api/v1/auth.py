"""
Authentication API endpoints.

This module provides endpoints for:
- Registration and password login
- Google sign-in
- Access token refresh (with refresh token rotation)
- Logout (revokes every session of the user)
- Current user info

The refresh token travels only in an HttpOnly cookie; the access token is
returned in the body and sent back in the Authorization header.
"""

from fastapi import APIRouter, Request, Response, status

from booktracker.api.dependencies import Auth, Client, CookieTransport, IdentityVerifier
from booktracker.core.auth import CurrentAuth
from booktracker.schemas.auth import (
    AccessTokenData,
    FederatedLoginRequest,
    LoginRequest,
    MessageResponse,
    RefreshResponse,
    RegisterRequest,
    SessionData,
    SessionResponse,
)
from booktracker.schemas.user import PublicUser, UserData, UserEnvelope
from booktracker.services.auth import AuthSession

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _session_response(
    session: AuthSession,
    response: Response,
    cookies: CookieTransport,
    message: str,
) -> SessionResponse:
    cookies.set(response, session.refresh_token.bearer, session.refresh_token.expires_at)
    return SessionResponse(
        message=message,
        data=SessionData(
            user=PublicUser.from_user(session.user),
            access_token=session.access_token,
            expires_in=session.expires_in,
        ),
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    response: Response,
    auth: Auth,
    client: Client,
    cookies: CookieTransport,
) -> SessionResponse:
    """
    Create an account and log it in.

    Emails are unique case-insensitively; a collision returns 400.
    """
    session = await auth.register(payload.name, payload.email, payload.password, client)
    return _session_response(session, response, cookies, "Registration successful.")


@router.post("/login", response_model=SessionResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    auth: Auth,
    client: Client,
    cookies: CookieTransport,
) -> SessionResponse:
    """
    Authenticate with email and password.

    Returns 401 for unknown email or wrong password and 403 for banned accounts.
    """
    session = await auth.login(payload.email, payload.password, client)
    return _session_response(session, response, cookies, "Login successful.")


@router.post(
    "/login/federated",
    response_model=SessionResponse,
    responses={201: {"description": "Account created on first Google sign-in"}},
)
async def login_federated(
    payload: FederatedLoginRequest,
    response: Response,
    auth: Auth,
    client: Client,
    cookies: CookieTransport,
    verifier: IdentityVerifier,
) -> SessionResponse:
    """
    Sign in with a Google ID token.

    The first sign-in for an email creates the account and answers 201.
    """
    session = await auth.login_with_federated_identity(payload.credential, verifier, client)
    if session.created:
        response.status_code = status.HTTP_201_CREATED
        return _session_response(session, response, cookies, "Registration successful.")
    return _session_response(session, response, cookies, "Login successful.")


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    request: Request,
    response: Response,
    auth: Auth,
    client: Client,
    cookies: CookieTransport,
) -> RefreshResponse:
    """
    Exchange the refresh cookie for a new access token.

    The refresh token is rotated on every call. Replaying an already used
    refresh token revokes all of the user's sessions (401).
    """
    session = await auth.refresh(cookies.read(request), client)
    cookies.set(response, session.refresh_token.bearer, session.refresh_token.expires_at)
    return RefreshResponse(
        data=AccessTokenData(access_token=session.access_token, expires_in=session.expires_in)
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    auth: Auth,
    client: Client,
    cookies: CookieTransport,
) -> MessageResponse:
    """
    Log out everywhere.

    Revokes every refresh token of the cookie's owner, not only this device,
    and always clears the cookie.
    """
    await auth.logout(cookies.read(request), client)
    cookies.clear(response)
    return MessageResponse(message="Logged out successfully.")


@router.get("/me", response_model=UserEnvelope)
async def get_current_user_info(context: CurrentAuth) -> UserEnvelope:
    """Get the current authenticated user."""
    return UserEnvelope(data=UserData(user=PublicUser.from_user(context.user)))
