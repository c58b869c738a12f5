"""
Pydantic schemas for users as seen by clients
"""

from pydantic import Field

from booktracker.models.user import Users
from booktracker.schemas.base import CamelModel, UTCDatetime


class PublicUser(CamelModel):
    """
    The only user shape that ever leaves the service.

    Built explicitly from a Users row so the password hash and provider
    details can never leak through attribute copying.
    """

    id: int
    name: str
    email: str
    role: str
    is_banned: bool = False
    created_at: UTCDatetime

    @classmethod
    def from_user(cls, user: Users) -> "PublicUser":
        if user.user_id is None:
            raise ValueError("User ID cannot be None")
        return cls(
            id=user.user_id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_banned=user.is_banned,
            created_at=user.created_at,
        )


class UserData(CamelModel):
    user: PublicUser


class UserEnvelope(CamelModel):
    """Response wrapping a single user."""

    status: str = "success"
    data: UserData


class UserListData(CamelModel):
    users: list[PublicUser]


class UserListResponse(CamelModel):
    status: str = "success"
    results: int = Field(..., description="Number of users returned")
    data: UserListData
