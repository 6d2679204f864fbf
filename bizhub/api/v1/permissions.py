"""Permission introspection, temporary permission exceptions and the security event log."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bizhub.api.deps import get_current_user, require_permission
from bizhub.core.permissions import (
    RESOURCE_PERMISSIONS,
    ROLE_PERMISSION_TEMPLATES,
    Department,
    PermissionAction,
    PermissionResource,
)
from bizhub.database import get_db
from bizhub.models.security_event import SecuritySeverity
from bizhub.models.user import User
from bizhub.schemas.permissions import (
    PermissionExceptionCreate,
    PermissionExceptionResponse,
    SecurityEventPage,
    SecurityEventResponse,
)
from bizhub.services.audit_service import get_security_events
from bizhub.services.permission_service import PermissionService

router = APIRouter(prefix="/permissions", tags=["permissions"])

_ADMIN = Department.ADMIN


@router.get("/me")
async def my_permissions(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Effective permissions of the calling user."""
    return await PermissionService.get_effective_permissions(db, user)


@router.get("/roles")
async def list_role_templates(
    user: User = Depends(
        require_permission(PermissionResource.ROLES, PermissionAction.READ, _ADMIN)
    ),
):
    return [
        {
            "role": role.value,
            "description": template.description,
            "departments": sorted(d.value for d in template.departments),
            "permissions": sorted(template.permission_keys),
        }
        for role, template in ROLE_PERMISSION_TEMPLATES.items()
    ]


@router.get("/resources")
async def list_resources(user: User = Depends(get_current_user)):
    return [
        {
            "resource": resource.value,
            "description": meta.description,
            "sensitive": meta.sensitive,
            "audit_required": meta.audit_required,
            "requires_approval": meta.requires_approval,
        }
        for resource, meta in RESOURCE_PERMISSIONS.items()
    ]


# ---------------------------------------------------------------------------
# Permission exceptions
# ---------------------------------------------------------------------------

@router.post("/exceptions", response_model=PermissionExceptionResponse, status_code=201)
async def grant_exception(
    body: PermissionExceptionCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(
            PermissionResource.PERMISSIONS, PermissionAction.UPDATE, _ADMIN, require_mfa=True
        )
    ),
):
    target = await db.execute(select(User.id).where(User.id == body.user_id))
    if target.scalar_one_or_none() is None:
        raise HTTPException(404, "User not found")
    try:
        exception = await PermissionService.grant_exception(
            db,
            user_id=body.user_id,
            resource=body.resource,
            action=body.action,
            granted_by=user.id,
            expires_at=body.expires_at,
            starts_at=body.starts_at,
            reason=body.reason,
        )
    except ValueError as exc:
        raise HTTPException(422, str(exc))
    await db.commit()
    return exception


@router.get("/exceptions", response_model=list[PermissionExceptionResponse])
async def list_exceptions(
    user_id: uuid.UUID | None = None,
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.PERMISSIONS, PermissionAction.READ, _ADMIN)
    ),
):
    return await PermissionService.list_exceptions(db, user_id=user_id, active_only=active_only)


@router.delete("/exceptions/{exception_id}", status_code=204)
async def revoke_exception(
    exception_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.PERMISSIONS, PermissionAction.UPDATE, _ADMIN)
    ),
):
    exception = await PermissionService.revoke_exception(db, exception_id, user.id)
    if exception is None:
        raise HTTPException(404, "Permission exception not found")
    await db.commit()


# ---------------------------------------------------------------------------
# Security events
# ---------------------------------------------------------------------------

@router.get("/security-events", response_model=SecurityEventPage)
async def list_security_events(
    user_id: uuid.UUID | None = None,
    event_type: str | None = None,
    severity: SecuritySeverity | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(
        require_permission(PermissionResource.AUDIT_LOGS, PermissionAction.READ, _ADMIN)
    ),
):
    events, total = await get_security_events(
        db, user_id=user_id, event_type=event_type, severity=severity, limit=limit, offset=offset
    )
    return SecurityEventPage(
        items=[SecurityEventResponse.model_validate(e) for e in events], total=total
    )
