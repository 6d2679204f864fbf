"""Registration gate, allowed email domains and invitations."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bizhub.api.deps import get_current_user, require_permission, require_resource_permission
from bizhub.config import settings
from bizhub.core.exceptions import AccessControlError, InvitationError
from bizhub.core.permissions import Department, PermissionAction, PermissionResource
from bizhub.core.rate_limit import limiter
from bizhub.database import get_db
from bizhub.models.invitation import InvitationStatus
from bizhub.models.user import User
from bizhub.schemas.access_control import (
    AllowedDomainsConfig,
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationDetails,
    InvitationResponse,
    InvitationValidationResponse,
    RegistrationCheckRequest,
    RegistrationCheckResponse,
)
from bizhub.services.access_control_service import REASON_NOT_FOUND, AccessControlService

router = APIRouter(prefix="/access-control", tags=["access-control"])

_ADMIN = Department.ADMIN


def _http_error(exc: AccessControlError) -> HTTPException:
    if isinstance(exc, InvitationError):
        status = 404 if exc.reason == REASON_NOT_FOUND else 409
        return HTTPException(status, exc.reason)
    return HTTPException(500, str(exc))


# ---------------------------------------------------------------------------
# Allowed domains
# ---------------------------------------------------------------------------

@router.get("/domains", response_model=AllowedDomainsConfig)
async def get_allowed_domains(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_resource_permission(PermissionResource.SYSTEM_SETTINGS, _ADMIN)),
):
    try:
        return await AccessControlService.get_allowed_domains(db)
    except AccessControlError as exc:
        raise _http_error(exc)


@router.put("/domains", response_model=AllowedDomainsConfig)
async def update_allowed_domains(
    body: AllowedDomainsConfig,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_resource_permission(PermissionResource.SYSTEM_SETTINGS, _ADMIN)),
):
    try:
        config = await AccessControlService.update_allowed_domains(db, body, user.id)
    except AccessControlError as exc:
        raise _http_error(exc)
    await db.commit()
    return config


# ---------------------------------------------------------------------------
# Registration gate (public)
# ---------------------------------------------------------------------------

@router.post("/registration-check", response_model=RegistrationCheckResponse)
@limiter.limit(settings.REGISTRATION_RATE_LIMIT)
async def registration_check(
    request: Request, body: RegistrationCheckRequest, db: AsyncSession = Depends(get_db)
):
    decision = await AccessControlService.can_user_register(db, body.email, body.invitation_token)
    # Validation may have flipped a stale invitation to expired
    await db.commit()
    return RegistrationCheckResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        invitation_role=decision.invitation.role if decision.invitation else None,
    )


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.post("/invitations", response_model=InvitationCreatedResponse, status_code=201)
async def create_invitation(
    body: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.USERS, PermissionAction.CREATE, _ADMIN)
    ),
):
    details = InvitationDetails(**body.model_dump(), invited_by=user.id)
    try:
        created = await AccessControlService.create_invitation(db, details)
    except AccessControlError as exc:
        raise _http_error(exc)
    await db.commit()
    return InvitationCreatedResponse(token=created.token, expires_at=created.expires_at)


@router.get("/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    status: InvitationStatus | None = None,
    include_expired: bool = False,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.USERS, PermissionAction.READ, _ADMIN)
    ),
):
    try:
        return await AccessControlService.get_all_invitations(
            db, status=status, include_expired=include_expired
        )
    except AccessControlError as exc:
        raise _http_error(exc)


@router.post("/invitations/cleanup")
async def cleanup_invitations(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.USERS, PermissionAction.UPDATE, _ADMIN)
    ),
):
    expired = await AccessControlService.cleanup_expired_invitations(db)
    await db.commit()
    return {"expired": expired}


@router.get("/invitations/{token}/validate", response_model=InvitationValidationResponse)
@limiter.limit(settings.REGISTRATION_RATE_LIMIT)
async def validate_invitation(
    request: Request,
    token: str,
    email: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    check = await AccessControlService.validate_invitation(db, token, email)
    await db.commit()
    if not check.valid:
        return InvitationValidationResponse(valid=False, reason=check.reason)
    inv = check.invitation
    return InvitationValidationResponse(
        valid=True, email=inv.email, role=inv.role, expires_at=inv.expires_at
    )


@router.post("/invitations/{token}/accept", response_model=InvitationResponse)
async def accept_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check = await AccessControlService.validate_invitation(db, token, user.email)
    if not check.valid:
        await db.commit()
        raise _http_error(InvitationError(check.reason))
    try:
        invitation = await AccessControlService.accept_invitation(db, token, user.id)
    except AccessControlError as exc:
        raise _http_error(exc)
    await db.commit()
    return invitation


@router.post("/invitations/{token}/revoke", response_model=InvitationResponse)
async def revoke_invitation(
    token: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.USERS, PermissionAction.DELETE, _ADMIN)
    ),
):
    try:
        invitation = await AccessControlService.revoke_invitation(db, token, user.id)
    except AccessControlError as exc:
        raise _http_error(exc)
    await db.commit()
    return invitation
