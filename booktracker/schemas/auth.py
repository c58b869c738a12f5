"""
Authentication schemas for request/response validation.

This module defines Pydantic models for authentication-related API operations:
- Registration and login credentials
- Google sign-in credential
- Token responses
"""

from pydantic import BaseModel, EmailStr, Field, field_validator

from booktracker.schemas.base import CamelModel
from booktracker.schemas.user import PublicUser


class RegisterRequest(BaseModel):
    """Request schema for user registration."""

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=255)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)


class FederatedLoginRequest(BaseModel):
    """Request schema for Google sign-in (the ID token from Google Identity Services)."""

    credential: str = Field(..., min_length=1)


class SessionData(CamelModel):
    user: PublicUser
    access_token: str
    expires_in: int = Field(..., description="Access token expiration time in seconds from now")


class SessionResponse(CamelModel):
    """Response schema for successful register/login."""

    status: str = "success"
    message: str
    data: SessionData


class AccessTokenData(CamelModel):
    access_token: str
    expires_in: int = Field(..., description="Access token expiration time in seconds from now")


class RefreshResponse(CamelModel):
    """Response schema for a successful refresh."""

    status: str = "success"
    message: str = "Token refreshed."
    data: AccessTokenData


class MessageResponse(BaseModel):
    """Generic message response."""

    status: str = "success"
    message: str
