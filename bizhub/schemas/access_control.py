from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from bizhub.core.permissions import EnhancedUserRole
from bizhub.models.invitation import InvitationStatus


class AllowedDomainsConfig(BaseModel):
    """Email domains allowed to self-register.

    ``require_domain`` switches between strict mode (domain match or invitation
    required) and permissive mode.
    """

    domains: list[str] = []
    require_domain: bool = False

    def normalized(self) -> AllowedDomainsConfig:
        return AllowedDomainsConfig(
            domains=[d.strip().lower() for d in self.domains],
            require_domain=self.require_domain,
        )


class InvitationCreate(BaseModel):
    email: EmailStr
    role: EnhancedUserRole = EnhancedUserRole.EMPLOYEE
    expires_in_days: int | None = Field(default=None, gt=0, le=365)
    notes: str | None = Field(default=None, max_length=2000)


class InvitationDetails(InvitationCreate):
    invited_by: uuid.UUID | None = None


class InvitationCreatedResponse(BaseModel):
    token: str
    expires_at: datetime


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: EnhancedUserRole
    status: InvitationStatus
    invited_by: uuid.UUID | None = None
    expires_at: datetime
    notes: str | None = None
    accepted_at: datetime | None = None
    accepted_by_user_id: uuid.UUID | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class InvitationValidationResponse(BaseModel):
    valid: bool
    reason: str | None = None
    email: str | None = None
    role: EnhancedUserRole | None = None
    expires_at: datetime | None = None


class RegistrationCheckRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=320)
    invitation_token: str | None = None


class RegistrationCheckResponse(BaseModel):
    allowed: bool
    reason: str
    invitation_role: EnhancedUserRole | None = None
