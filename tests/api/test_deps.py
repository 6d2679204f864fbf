"""Integration tests for the auth dependencies in api/deps.py.

Tests get_current_user and the require_permission, require_resource_permission,
require_role and require_department dependency factories on a small test app.
"""

from __future__ import annotations

import uuid

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from bizhub.api.deps import (
    get_current_user,
    require_department,
    require_permission,
    require_resource_permission,
    require_role,
)
from bizhub.core.permissions import (
    Department,
    EnhancedUserRole,
    PermissionAction,
    PermissionResource,
)
from bizhub.core.security import create_access_token
from bizhub.database import get_db
from bizhub.models.security_event import SecurityEvent
from tests.conftest import auth_headers, create_user


@pytest.fixture
async def dep_client(db):
    """HTTP client for an app exposing one route per dependency."""
    deps_app = FastAPI()

    @deps_app.get("/whoami")
    async def whoami(user=Depends(get_current_user)):
        return {"id": str(user.id)}

    @deps_app.get("/managers")
    async def managers(
        user=Depends(require_role(EnhancedUserRole.MANAGER, EnhancedUserRole.ADMIN)),
    ):
        return {"ok": True}

    @deps_app.get("/finance")
    async def finance(user=Depends(require_department(Department.FINANCE))):
        return {"ok": True}

    @deps_app.get("/tasks")
    async def delete_tasks(
        user=Depends(require_permission(PermissionResource.TASKS, PermissionAction.DELETE)),
    ):
        return {"ok": True}

    task_access = require_resource_permission(PermissionResource.TASKS)

    @deps_app.get("/task-board")
    async def read_board(user=Depends(task_access)):
        return {"ok": True}

    @deps_app.delete("/task-board")
    async def clear_board(user=Depends(task_access)):
        return {"ok": True}

    async def _override_get_db():
        yield db

    deps_app.dependency_overrides[get_db] = _override_get_db
    async with AsyncClient(transport=ASGITransport(app=deps_app), base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# get_current_user
# ---------------------------------------------------------------------------


class TestGetCurrentUser:
    async def test_no_auth_header_returns_401(self, dep_client):
        resp = await dep_client.get("/whoami")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Not authenticated"

    async def test_malformed_auth_header_returns_401(self, dep_client):
        resp = await dep_client.get("/whoami", headers={"Authorization": "Token abc123"})
        assert resp.status_code == 401

    async def test_unknown_user_returns_401(self, dep_client):
        token = create_access_token(uuid.uuid4())
        resp = await dep_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "User not found or inactive"

    async def test_non_uuid_subject_returns_401(self, dep_client):
        token = create_access_token("not-a-uuid")
        resp = await dep_client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    async def test_valid_token(self, dep_client, employee_user):
        resp = await dep_client.get("/whoami", headers=auth_headers(employee_user))
        assert resp.status_code == 200
        assert resp.json()["id"] == str(employee_user.id)


# ---------------------------------------------------------------------------
# require_role / require_department
# ---------------------------------------------------------------------------


class TestRequireRole:
    async def test_listed_role_passes(self, dep_client, db):
        manager = await create_user(db, role=EnhancedUserRole.MANAGER, department=Department.SALES)
        resp = await dep_client.get("/managers", headers=auth_headers(manager))
        assert resp.status_code == 200

    async def test_other_role_forbidden(self, dep_client, employee_user):
        resp = await dep_client.get("/managers", headers=auth_headers(employee_user))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Insufficient role privileges"

    async def test_super_admin_always_passes(self, dep_client, super_admin_user):
        resp = await dep_client.get("/managers", headers=auth_headers(super_admin_user))
        assert resp.status_code == 200


class TestRequireDepartment:
    async def test_matching_department(self, dep_client, db):
        user = await create_user(db, department=Department.FINANCE)
        resp = await dep_client.get("/finance", headers=auth_headers(user))
        assert resp.status_code == 200

    async def test_other_department_forbidden(self, dep_client, employee_user):
        resp = await dep_client.get("/finance", headers=auth_headers(employee_user))
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Department access denied"

    async def test_super_admin_always_passes(self, dep_client, super_admin_user):
        resp = await dep_client.get("/finance", headers=auth_headers(super_admin_user))
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# require_permission
# ---------------------------------------------------------------------------


class TestRequirePermission:
    async def test_uses_own_department_by_default(self, dep_client, db, employee_user):
        resp = await dep_client.get("/tasks", headers=auth_headers(employee_user))
        assert resp.status_code == 403

        manager = await create_user(
            db, role=EnhancedUserRole.MANAGER, department=Department.OPERATIONS
        )
        resp = await dep_client.get("/tasks", headers=auth_headers(manager))
        assert resp.status_code == 200

    async def test_manager_in_wrong_department(self, dep_client, db):
        manager = await create_user(db, role=EnhancedUserRole.MANAGER, department=Department.SALES)
        resp = await dep_client.get("/tasks", headers=auth_headers(manager))
        assert resp.status_code == 403


class TestRequireResourcePermission:
    async def test_action_follows_http_method(self, dep_client, employee_user):
        read = await dep_client.get("/task-board", headers=auth_headers(employee_user))
        assert read.status_code == 200

        delete = await dep_client.delete("/task-board", headers=auth_headers(employee_user))
        assert delete.status_code == 403
        assert delete.json()["detail"] == "Insufficient permissions"

    async def test_denial_names_derived_action(self, dep_client, db, employee_user):
        await dep_client.delete("/task-board", headers=auth_headers(employee_user))
        result = await db.execute(
            select(SecurityEvent).where(SecurityEvent.event_type == "access_denied")
        )
        event = result.scalar_one()
        assert event.event_data["required_permission"] == "operations:tasks:delete"
