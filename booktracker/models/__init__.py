"""
SQLModel table models.

Importing this package registers every table with SQLModel.metadata.
"""

from booktracker.models.admin_action import AdminActions
from booktracker.models.refresh_token import RefreshTokens
from booktracker.models.user import Users

__all__ = [
    "Users",
    "RefreshTokens",
    "AdminActions",
]
