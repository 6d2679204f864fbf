from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bizhub.core.permissions import (
    Department,
    EnhancedUserRole,
    PermissionAction,
    PermissionResource,
    method_to_action,
)
from bizhub.core.security import decode_access_token
from bizhub.database import get_db
from bizhub.models.user import User


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = auth[7:]
    payload = decode_access_token(token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_permission(
    resource: PermissionResource,
    action: PermissionAction,
    department: Department | None = None,
    require_mfa: bool = False,
):
    """Dependency factory that checks one resource permission via PermissionService."""
    async def _check(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        from bizhub.services.permission_service import PermissionService

        try:
            await PermissionService.require_permission(
                db, user, resource, action, department=department, require_mfa=require_mfa
            )
        finally:
            # Audit rows and exception usage are kept whether or not access is granted
            await db.commit()
        return user
    return _check


def require_resource_permission(
    resource: PermissionResource,
    department: Department | None = None,
    require_mfa: bool = False,
):
    """Like require_permission, with the action taken from the request method."""
    async def _check(
        request: Request,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        from bizhub.services.permission_service import PermissionService

        action = method_to_action(request.method)
        try:
            await PermissionService.require_permission(
                db, user, resource, action, department=department, require_mfa=require_mfa
            )
        finally:
            await db.commit()
        return user
    return _check


def require_role(*roles: EnhancedUserRole):
    """Raise 403 unless the user holds one of ``roles``. super_admin always passes."""
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role is EnhancedUserRole.SUPER_ADMIN or user.role in roles:
            return user
        raise HTTPException(status_code=403, detail="Insufficient role privileges")
    return _check


def require_department(*departments: Department):
    """Raise 403 unless the user works in one of ``departments``. super_admin always passes."""
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role is EnhancedUserRole.SUPER_ADMIN or user.department in departments:
            return user
        raise HTTPException(status_code=403, detail="Department access denied")
    return _check
