"""
Error taxonomy and global exception handlers.

Every error response has the same envelope:

    {"status": "fail" | "error", "message": "..."}

"fail" is used for expected client errors (4xx) and "error" for everything
else. Stack traces, secrets and tokens never reach the response body.

Handlers:
    app_error_handler: Renders AppError subclasses
    http_exception_handler: Renders Starlette/FastAPI HTTPException
    validation_exception_handler: Renders RequestValidationError as 400
    generic_exception_handler: Catches all unhandled exceptions
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from booktracker.core.logging import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Something went wrong."

    def __init__(self, message: str | None = None, *, clear_refresh_cookie: bool = False) -> None:
        self.message = message or self.message
        self.clear_refresh_cookie = clear_refresh_cookie
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class BadRequest(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Bad request."


class DuplicateEmail(BadRequest):
    message = "User with this email already exists."


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "You are not logged in. Please log in to access."


class InvalidCredentials(Unauthenticated):
    message = "Invalid email or password."


class InvalidToken(Unauthenticated):
    message = "Invalid token. Please log in again."


class ExpiredToken(InvalidToken):
    message = "Your token has expired. Please log in again."


class NoRefreshToken(Unauthenticated):
    message = "Refresh token not found. Please log in again."


class InvalidRefreshToken(Unauthenticated):
    message = "Invalid or expired refresh token. Please log in again."


class SuspiciousActivity(Unauthenticated):
    message = (
        "Refresh token reuse detected. All sessions have been revoked for security. "
        "Please log in again."
    )


class InvalidFederatedToken(Unauthenticated):
    message = "Google sign-in failed. Please try again."


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "You do not have permission to perform this action."


class AccountBanned(Forbidden):
    message = "Your account has been banned. Please contact support."


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found."


class IdentityProviderUnavailable(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Google sign-in is not configured."


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body: dict[str, Any] = {
        "status": "fail" if 400 <= status_code < 500 else "error",
        "message": message,
    }
    body.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, AppError)
    response = error_response(exc.status_code, exc.message)
    if exc.clear_refresh_cookie:
        request.app.state.cookie_transport.clear(response)
    if isinstance(exc, Unauthenticated):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    response = error_response(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed.", errors=errors)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred."
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
