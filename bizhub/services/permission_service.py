"""Centralized resource authorization. All route handlers should use this."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bizhub.core.metrics import permission_checks_total
from bizhub.core.permissions import (
    Department,
    PermissionAction,
    PermissionResource,
    get_resources_for_user,
    get_user_permissions,
    has_permission,
    is_sensitive_resource,
)
from bizhub.models.base import utcnow
from bizhub.models.permission_exception import PermissionException
from bizhub.models.security_event import SecuritySeverity
from bizhub.models.user import User
from bizhub.services.audit_service import log_security_event

logger = logging.getLogger(__name__)


def _active_exception_filter(
    user_id: uuid.UUID, resource: PermissionResource, action: PermissionAction, now: datetime
):
    return (
        PermissionException.user_id == user_id,
        PermissionException.resource == resource,
        PermissionException.action == action,
        PermissionException.is_active == True,  # noqa: E712
        PermissionException.starts_at <= now,
        PermissionException.expires_at > now,
    )


class PermissionService:
    """Centralized permission checking. All route handlers should use this."""

    @staticmethod
    async def has_active_exception(
        db: AsyncSession,
        user_id: uuid.UUID,
        resource: PermissionResource,
        action: PermissionAction,
    ) -> bool:
        """True if a temporary exception currently grants ``resource:action``."""
        result = await db.execute(
            select(PermissionException.id)
            .where(*_active_exception_filter(user_id, resource, action, utcnow()))
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def _track_exception_usage(
        db: AsyncSession,
        user_id: uuid.UUID,
        resource: PermissionResource,
        action: PermissionAction,
    ) -> None:
        now = utcnow()
        await db.execute(
            update(PermissionException)
            .where(*_active_exception_filter(user_id, resource, action, now))
            .values(times_used=PermissionException.times_used + 1, last_used_at=now)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def check_permission(
        db: AsyncSession,
        user: User,
        resource: PermissionResource,
        action: PermissionAction,
        department: Department | None = None,
    ) -> bool:
        """Role template first, then active permission exceptions.

        ``department`` overrides the user's own department for the template
        check (e.g. ``Department.ADMIN`` for administrative routes).
        """
        if not user.is_active or user.department is None:
            permission_checks_total.labels(result="denied").inc()
            return False

        if has_permission(user.role, department or user.department, resource, action):
            permission_checks_total.labels(result="granted").inc()
            return True

        if await PermissionService.has_active_exception(db, user.id, resource, action):
            await PermissionService._track_exception_usage(db, user.id, resource, action)
            permission_checks_total.labels(result="exception").inc()
            return True

        permission_checks_total.labels(result="denied").inc()
        return False

    @staticmethod
    async def require_permission(
        db: AsyncSession,
        user: User,
        resource: PermissionResource,
        action: PermissionAction,
        department: Department | None = None,
        require_mfa: bool = False,
    ) -> None:
        """Raise 403 if the permission check fails."""
        if require_mfa and not user.mfa_enabled:
            await log_security_event(
                db,
                user_id=user.id,
                event_type="mfa_required_access_denied",
                severity=SecuritySeverity.MEDIUM,
                risk_score=40,
                event_data={
                    "resource": resource.value,
                    "action": action.value,
                    "reason": "MFA required but not enabled",
                },
            )
            raise HTTPException(403, "Multi-factor authentication required for this action")

        if not await PermissionService.check_permission(db, user, resource, action, department):
            effective_department = department or user.department
            required = (
                f"{effective_department.value}:{resource.value}:{action.value}"
                if effective_department
                else f"*:{resource.value}:{action.value}"
            )
            logger.info("Access denied for user %s: %s", user.id, required)
            await log_security_event(
                db,
                user_id=user.id,
                event_type="access_denied",
                severity=SecuritySeverity.MEDIUM,
                risk_score=40,
                event_data={
                    "required_permission": required,
                    "user_role": user.role.value,
                    "user_department": user.department.value if user.department else None,
                },
            )
            raise HTTPException(403, "Insufficient permissions")

        if is_sensitive_resource(resource):
            await log_security_event(
                db,
                user_id=user.id,
                event_type="sensitive_access_granted",
                severity=SecuritySeverity.LOW,
                risk_score=10,
                event_data={"resource": resource.value, "action": action.value},
            )

    @staticmethod
    async def get_effective_permissions(db: AsyncSession, user: User) -> dict:
        """Return the user's permission keys, resources and active exceptions."""
        permissions = get_user_permissions(user.role, user.department)
        resources = get_resources_for_user(user.role, user.department)
        exceptions = await PermissionService.list_exceptions(db, user_id=user.id)
        return {
            "role": user.role.value,
            "department": user.department.value if user.department else None,
            "permissions": sorted(str(p) for p in permissions),
            "resources": sorted(r.value for r in resources),
            "exceptions": [
                {
                    "id": str(e.id),
                    "resource": e.resource.value,
                    "action": e.action.value,
                    "expires_at": e.expires_at.isoformat(),
                }
                for e in exceptions
            ],
        }

    # ------------------------------------------------------------------
    # Permission exceptions
    # ------------------------------------------------------------------

    @staticmethod
    async def grant_exception(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        resource: PermissionResource,
        action: PermissionAction,
        granted_by: uuid.UUID | None,
        expires_at: datetime,
        starts_at: datetime | None = None,
        reason: str | None = None,
    ) -> PermissionException:
        starts_at = starts_at or utcnow()
        if expires_at <= starts_at:
            raise ValueError("Permission exception must expire after it starts")

        exception = PermissionException(
            user_id=user_id,
            resource=resource,
            action=action,
            reason=reason,
            granted_by=granted_by,
            starts_at=starts_at,
            expires_at=expires_at,
            is_active=True,
            times_used=0,
        )
        db.add(exception)
        await db.flush()

        await log_security_event(
            db,
            user_id=granted_by,
            event_type="permission_exception_granted",
            severity=SecuritySeverity.HIGH,
            risk_score=50,
            event_data={
                "exception_id": str(exception.id),
                "target_user_id": str(user_id),
                "resource": resource.value,
                "action": action.value,
                "expires_at": expires_at.isoformat(),
            },
        )
        return exception

    @staticmethod
    async def revoke_exception(
        db: AsyncSession, exception_id: uuid.UUID, revoked_by: uuid.UUID | None
    ) -> PermissionException | None:
        result = await db.execute(
            select(PermissionException).where(PermissionException.id == exception_id)
        )
        exception = result.scalar_one_or_none()
        if exception is None:
            return None
        exception.is_active = False
        await db.flush()

        await log_security_event(
            db,
            user_id=revoked_by,
            event_type="permission_exception_revoked",
            severity=SecuritySeverity.LOW,
            risk_score=5,
            event_data={"exception_id": str(exception.id)},
        )
        return exception

    @staticmethod
    async def list_exceptions(
        db: AsyncSession, user_id: uuid.UUID | None = None, active_only: bool = True
    ) -> list[PermissionException]:
        query = select(PermissionException)
        if user_id:
            query = query.where(PermissionException.user_id == user_id)
        if active_only:
            now = utcnow()
            query = query.where(
                PermissionException.is_active == True,  # noqa: E712
                PermissionException.expires_at > now,
            )
        result = await db.execute(query.order_by(PermissionException.expires_at))
        return list(result.scalars().all())
