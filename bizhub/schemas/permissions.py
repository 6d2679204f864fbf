from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from bizhub.core.permissions import PermissionAction, PermissionResource
from bizhub.models.security_event import SecuritySeverity


class PermissionExceptionCreate(BaseModel):
    user_id: uuid.UUID
    resource: PermissionResource
    action: PermissionAction
    expires_at: datetime
    starts_at: datetime | None = None
    reason: str | None = Field(default=None, max_length=2000)

    @field_validator("expires_at", "starts_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class PermissionExceptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    resource: PermissionResource
    action: PermissionAction
    reason: str | None = None
    granted_by: uuid.UUID | None = None
    starts_at: datetime
    expires_at: datetime
    is_active: bool
    times_used: int
    last_used_at: datetime | None = None

    model_config = {"from_attributes": True}


class SecurityEventResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID | None = None
    event_type: str
    severity: SecuritySeverity
    risk_score: int
    source: str
    is_blocked: bool
    event_data: dict
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SecurityEventPage(BaseModel):
    items: list[SecurityEventResponse]
    total: int
