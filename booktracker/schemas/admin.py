"""
Pydantic schemas for admin moderation endpoints
"""

from typing import Any

from booktracker.schemas.base import CamelModel, UTCDatetime


class AuditLogUser(CamelModel):
    id: int
    name: str
    email: str


class AuditLogEntry(CamelModel):
    id: int
    admin: AuditLogUser | None = None
    action: str
    target_user: AuditLogUser | None = None
    target_request: int | None = None
    target_book: int | None = None
    metadata: dict[str, Any] | None = None
    created_at: UTCDatetime


class AuditLogData(CamelModel):
    logs: list[AuditLogEntry]


class AuditLogResponse(CamelModel):
    status: str = "success"
    results: int
    data: AuditLogData
