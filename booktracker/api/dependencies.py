"""
Service wiring for route handlers.

Settings and the stateless helpers (token signer, cookie transport, Google
verifier) are built once in create_app() and kept on app.state; the
session-bound services are built per request from them.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from booktracker.config import Settings
from booktracker.core.auth import get_client_ip, get_token_signer, get_user_agent
from booktracker.core.cookies import RefreshCookieTransport
from booktracker.core.database import get_db
from booktracker.core.federated import GoogleIdentityVerifier
from booktracker.core.security import AccessTokenSigner
from booktracker.services.auth import AuthService
from booktracker.services.refresh_tokens import ClientInfo, RefreshTokenLedger


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cookie_transport(request: Request) -> RefreshCookieTransport:
    return request.app.state.cookie_transport


def get_identity_verifier(request: Request) -> GoogleIdentityVerifier:
    return request.app.state.identity_verifier


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(ip=get_client_ip(request), user_agent=get_user_agent(request))


def get_ledger(
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> RefreshTokenLedger:
    return RefreshTokenLedger(db, settings)


def get_auth_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    signer: Annotated[AccessTokenSigner, Depends(get_token_signer)],
    ledger: Annotated[RefreshTokenLedger, Depends(get_ledger)],
) -> AuthService:
    return AuthService(db, settings, signer, ledger)


Client = Annotated[ClientInfo, Depends(get_client_info)]
CookieTransport = Annotated[RefreshCookieTransport, Depends(get_cookie_transport)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
Ledger = Annotated[RefreshTokenLedger, Depends(get_ledger)]
IdentityVerifier = Annotated[GoogleIdentityVerifier, Depends(get_identity_verifier)]
