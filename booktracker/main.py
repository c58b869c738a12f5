"""
FastAPI Application - Book Tracker API

Run with:
    uvicorn booktracker.main:create_app --factory
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from booktracker.api.v1 import router as api_v1_router
from booktracker.config import Settings, get_settings
from booktracker.core.cookies import RefreshCookieTransport
from booktracker.core.database import create_engine_from_settings, create_session_factory, create_tables
from booktracker.core.errors import register_exception_handlers
from booktracker.core.federated import GoogleIdentityVerifier
from booktracker.core.logging import bind_request, clear_request, configure_logging, get_logger
from booktracker.core.security import AccessTokenSigner

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    settings: Settings = app.state.settings
    logger.info(
        "app_starting",
        environment=settings.ENVIRONMENT,
        database=settings.DATABASE_URL.split("@")[-1],
        google_sign_in=app.state.identity_verifier.configured,
    )
    if settings.DB_CREATE_TABLES:
        await create_tables(app.state.engine)
    yield
    await app.state.engine.dispose()
    logger.info("app_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application and its long-lived collaborators from one Settings."""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Authentication and session management for the book tracker",
        version=settings.VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    engine = create_engine_from_settings(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.token_signer = AccessTokenSigner(settings)
    app.state.cookie_transport = RefreshCookieTransport(settings)
    app.state.identity_verifier = GoogleIdentityVerifier(settings)

    # Configure CORS; credentials are required for the refresh cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        bind_request(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request()
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint - API information"""
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint"""
        return {"status": "healthy"}

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)

    return app
