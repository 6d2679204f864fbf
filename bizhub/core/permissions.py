"""Permission model: single source of truth for departments, resources, actions and roles.

A permission is the exact triple ``department:resource:action``. Role templates
grant a fixed set of triples within a fixed set of departments. Every query in
this module is pure and total: unknown or out-of-template inputs produce
``False`` or an empty set, never an exception, so a denial can never surface as
an unhandled error inside an authorization check.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import NamedTuple

# ---------------------------------------------------------------------------
# Closed value sets
# ---------------------------------------------------------------------------


class Department(str, enum.Enum):
    EXECUTIVE = "executive"
    SALES = "sales"
    FINANCE = "finance"
    OPERATIONS = "operations"
    SUPPORT = "support"
    MARKETING = "marketing"
    HR = "hr"
    IT = "it"
    ADMIN = "admin"


class PermissionAction(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ADMIN = "admin"
    APPROVE = "approve"
    EXPORT = "export"
    IMPORT = "import"


class PermissionResource(str, enum.Enum):
    # User & access management
    USERS = "users"
    ROLES = "roles"
    PERMISSIONS = "permissions"
    AUDIT_LOGS = "audit_logs"

    # Business data
    CLIENTS = "clients"
    COMPANIES = "companies"
    PROJECTS = "projects"
    TASKS = "tasks"
    OPPORTUNITIES = "opportunities"
    INVOICES = "invoices"
    EXPENSES = "expenses"
    TIME_ENTRIES = "time_entries"

    # Content & documents
    DOCUMENTS = "documents"
    KNOWLEDGE_ARTICLES = "knowledge_articles"
    MARKETING_CAMPAIGNS = "marketing_campaigns"
    SUPPORT_TICKETS = "support_tickets"

    # System & configuration
    SYSTEM_SETTINGS = "system_settings"
    BACKUP_MANAGEMENT = "backup_management"
    INTEGRATIONS = "integrations"
    REPORTS = "reports"
    ANALYTICS = "analytics"

    # Financial
    FINANCIAL_REPORTS = "financial_reports"
    BUDGET_MANAGEMENT = "budget_management"
    PAYMENT_PROCESSING = "payment_processing"

    # Administrative
    USER_MANAGEMENT = "user_management"
    DEPARTMENT_MANAGEMENT = "department_management"
    NOTIFICATION_SETTINGS = "notification_settings"


class EnhancedUserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    CONTRACTOR = "contractor"
    VIEWER = "viewer"
    CLIENT = "client"


# ---------------------------------------------------------------------------
# Permission triple
# ---------------------------------------------------------------------------


class Permission(NamedTuple):
    department: Department
    resource: PermissionResource
    action: PermissionAction

    def __str__(self) -> str:
        return f"{self.department.value}:{self.resource.value}:{self.action.value}"

    @property
    def key(self) -> str:
        return str(self)

    @classmethod
    def parse(cls, key: str) -> Permission:
        """Parse ``department:resource:action``. Raises ValueError on malformed keys."""
        parts = key.split(":")
        if len(parts) != 3:
            raise ValueError(f"Permission key '{key}' must be department:resource:action")
        department, resource, action = parts
        return cls(Department(department), PermissionResource(resource), PermissionAction(action))


def _perms(*keys: str) -> frozenset[Permission]:
    return frozenset(Permission.parse(k) for k in keys)


def _crud(department: str, resource: str, *extra: str) -> tuple[str, ...]:
    actions = ("create", "read", "update", "delete") + extra
    return tuple(f"{department}:{resource}:{a}" for a in actions)


# ---------------------------------------------------------------------------
# Role templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RolePermissionTemplate:
    departments: frozenset[Department]
    permissions: frozenset[Permission]
    description: str
    permission_keys: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "permission_keys", frozenset(str(p) for p in self.permissions))


ALL_PERMISSIONS: frozenset[Permission] = frozenset(
    Permission(d, r, a) for d in Department for r in PermissionResource for a in PermissionAction
)

ROLE_PERMISSION_TEMPLATES: dict[EnhancedUserRole, RolePermissionTemplate] = {
    EnhancedUserRole.SUPER_ADMIN: RolePermissionTemplate(
        departments=frozenset(Department),
        permissions=ALL_PERMISSIONS,
        description="Full system access across all departments and resources",
    ),
    EnhancedUserRole.ADMIN: RolePermissionTemplate(
        departments=frozenset(
            {
                Department.ADMIN,
                Department.IT,
                Department.SALES,
                Department.OPERATIONS,
                Department.FINANCE,
                Department.MARKETING,
                Department.SUPPORT,
            }
        ),
        permissions=_perms(
            # User management
            *_crud("admin", "users"),
            *_crud("admin", "roles"),
            "admin:permissions:read", "admin:permissions:update",
            "admin:audit_logs:read", "admin:audit_logs:export",
            # System management
            "admin:system_settings:read", "admin:system_settings:update",
            "admin:backup_management:read", "admin:backup_management:admin",
            "admin:integrations:read", "admin:integrations:update", "admin:integrations:admin",
            # Reports and analytics
            "admin:reports:read", "admin:reports:create", "admin:reports:export",
            "admin:analytics:read",
            # Department management
            "admin:department_management:read", "admin:department_management:update",
            "admin:notification_settings:read", "admin:notification_settings:update",
            # Business data
            *_crud("admin", "clients"),
            *_crud("admin", "companies"),
            *_crud("admin", "projects"),
            *_crud("admin", "tasks"),
            *_crud("admin", "opportunities"),
            # Financial management
            *_crud("admin", "invoices"),
            *_crud("admin", "expenses", "approve"),
            *_crud("admin", "time_entries", "approve"),
            "admin:financial_reports:read", "admin:financial_reports:create",
            "admin:financial_reports:export",
            "admin:budget_management:read", "admin:budget_management:update",
            # Content management
            *_crud("admin", "documents"),
            *_crud("admin", "knowledge_articles"),
            *_crud("admin", "marketing_campaigns"),
            *_crud("admin", "support_tickets"),
        ),
        description=(
            "Administrative access with full business operations and system management "
            "capabilities"
        ),
    ),
    EnhancedUserRole.MANAGER: RolePermissionTemplate(
        departments=frozenset(
            {Department.SALES, Department.OPERATIONS, Department.MARKETING, Department.SUPPORT}
        ),
        permissions=_perms(
            # Team management
            "sales:users:read", "operations:users:read",
            "marketing:users:read", "support:users:read",
            # Business data
            "sales:clients:create", "sales:clients:read", "sales:clients:update",
            "sales:companies:create", "sales:companies:read", "sales:companies:update",
            *_crud("sales", "opportunities"),
            "sales:projects:create", "sales:projects:read", "sales:projects:update",
            "operations:projects:read", "operations:projects:update",
            *_crud("operations", "tasks"),
            # Approval workflows
            "finance:expenses:approve", "operations:time_entries:approve",
            # Reports
            "sales:reports:read", "sales:reports:create", "sales:reports:export",
            "operations:reports:read", "operations:reports:create",
            "marketing:reports:read", "marketing:reports:create",
            "support:reports:read",
        ),
        description="Management access with team oversight and approval capabilities",
    ),
    EnhancedUserRole.EMPLOYEE: RolePermissionTemplate(
        departments=frozenset(
            {
                Department.SALES,
                Department.OPERATIONS,
                Department.MARKETING,
                Department.SUPPORT,
                Department.FINANCE,
            }
        ),
        permissions=_perms(
            "sales:clients:read", "sales:companies:read",
            "sales:opportunities:create", "sales:opportunities:read",
            "sales:opportunities:update",
            "operations:projects:read",
            "operations:tasks:create", "operations:tasks:read", "operations:tasks:update",
            "operations:time_entries:create", "operations:time_entries:read",
            "operations:time_entries:update",
            "finance:expenses:create", "finance:expenses:read", "finance:expenses:update",
            # Content creation
            "operations:documents:create", "operations:documents:read",
            "operations:knowledge_articles:create", "operations:knowledge_articles:read",
            "operations:knowledge_articles:update",
            "marketing:marketing_campaigns:read",
            "support:support_tickets:create", "support:support_tickets:read",
            "support:support_tickets:update",
            "operations:reports:read",
        ),
        description="Standard employee access for daily work activities",
    ),
    EnhancedUserRole.CONTRACTOR: RolePermissionTemplate(
        departments=frozenset({Department.OPERATIONS}),
        permissions=_perms(
            "operations:projects:read",
            "operations:tasks:read", "operations:tasks:update",
            "operations:time_entries:create", "operations:time_entries:read",
            "operations:documents:read",
            "operations:expenses:create", "operations:expenses:read",
        ),
        description="Limited access for external contractors",
    ),
    EnhancedUserRole.VIEWER: RolePermissionTemplate(
        departments=frozenset({Department.OPERATIONS}),
        permissions=_perms(
            "operations:projects:read",
            "operations:tasks:read",
            "operations:documents:read",
            "operations:knowledge_articles:read",
            "operations:reports:read",
        ),
        description="Read-only access for stakeholders and observers",
    ),
    EnhancedUserRole.CLIENT: RolePermissionTemplate(
        departments=frozenset({Department.SALES}),
        permissions=_perms(
            "sales:projects:read",
            "sales:tasks:read",
            "sales:documents:read",
            "sales:invoices:read",
            "sales:support_tickets:create", "sales:support_tickets:read",
        ),
        description="External client access to their projects and data",
    ),
}

# ---------------------------------------------------------------------------
# Resource metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceMetadata:
    description: str
    sensitive: bool
    audit_required: bool
    requires_approval: bool = False


_R = PermissionResource

RESOURCE_PERMISSIONS: dict[PermissionResource, ResourceMetadata] = {
    _R.USERS: ResourceMetadata("User account management", True, True),
    _R.ROLES: ResourceMetadata("Role and permission management", True, True),
    _R.PERMISSIONS: ResourceMetadata("Permission system management", True, True),
    _R.AUDIT_LOGS: ResourceMetadata("System audit trails", True, True),
    _R.CLIENTS: ResourceMetadata("Client contact management", False, True),
    _R.COMPANIES: ResourceMetadata("Company information management", False, True),
    _R.PROJECTS: ResourceMetadata("Project management", False, True),
    _R.TASKS: ResourceMetadata("Task management", False, False),
    _R.OPPORTUNITIES: ResourceMetadata("Sales opportunity management", False, True),
    _R.INVOICES: ResourceMetadata("Invoice management", True, True),
    _R.EXPENSES: ResourceMetadata("Expense management", True, True, requires_approval=True),
    _R.TIME_ENTRIES: ResourceMetadata("Time tracking", False, False, requires_approval=True),
    _R.DOCUMENTS: ResourceMetadata("Document management", False, False),
    _R.KNOWLEDGE_ARTICLES: ResourceMetadata("Knowledge base management", False, False),
    _R.MARKETING_CAMPAIGNS: ResourceMetadata("Marketing campaign management", False, True),
    _R.SUPPORT_TICKETS: ResourceMetadata("Support ticket management", False, False),
    _R.SYSTEM_SETTINGS: ResourceMetadata("System configuration", True, True),
    _R.BACKUP_MANAGEMENT: ResourceMetadata("Backup system management", True, True),
    _R.INTEGRATIONS: ResourceMetadata("Third-party integrations", True, True),
    _R.REPORTS: ResourceMetadata("Report generation and access", False, False),
    _R.ANALYTICS: ResourceMetadata("Analytics and insights", False, False),
    _R.FINANCIAL_REPORTS: ResourceMetadata("Financial reporting", True, True),
    _R.BUDGET_MANAGEMENT: ResourceMetadata("Budget planning and management", True, True),
    _R.PAYMENT_PROCESSING: ResourceMetadata("Payment processing", True, True),
    _R.USER_MANAGEMENT: ResourceMetadata("User administration", True, True),
    _R.DEPARTMENT_MANAGEMENT: ResourceMetadata("Department administration", True, True),
    _R.NOTIFICATION_SETTINGS: ResourceMetadata("Notification configuration", False, False),
}

# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _coerce(enum_cls, value):
    """Return the enum member for ``value`` or None when it is not in the closed set."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def has_permission(role, department, resource, action) -> bool:
    """Exact-triple check of ``department:resource:action`` against the role template.

    ``super_admin`` bypasses the department gate and is always granted.
    """
    role = _coerce(EnhancedUserRole, role)
    department = _coerce(Department, department)
    resource = _coerce(PermissionResource, resource)
    action = _coerce(PermissionAction, action)
    if role is None or department is None or resource is None or action is None:
        return False

    if role is EnhancedUserRole.SUPER_ADMIN:
        return True

    template = ROLE_PERMISSION_TEMPLATES.get(role)
    if template is None or department not in template.departments:
        return False
    return Permission(department, resource, action) in template.permissions


def get_user_permissions(role, department) -> frozenset[Permission]:
    """Permissions effective for a user of ``role`` working in ``department``.

    The admin role additionally keeps every ``admin:*`` permission whatever
    its own department is.
    """
    role = _coerce(EnhancedUserRole, role)
    if role is None:
        return frozenset()
    template = ROLE_PERMISSION_TEMPLATES.get(role)
    if template is None:
        return frozenset()

    if role is EnhancedUserRole.SUPER_ADMIN:
        return template.permissions

    department = _coerce(Department, department)
    return frozenset(
        p
        for p in template.permissions
        if (department is not None and p.department is department)
        or (role is EnhancedUserRole.ADMIN and p.department is Department.ADMIN)
    )


def get_resources_for_user(role, department) -> frozenset[PermissionResource]:
    return frozenset(p.resource for p in get_user_permissions(role, department))


def can_access_resource(role, department, resource) -> bool:
    resource = _coerce(PermissionResource, resource)
    if resource is None:
        return False
    return resource in get_resources_for_user(role, department)


def _metadata(resource) -> ResourceMetadata | None:
    resource = _coerce(PermissionResource, resource)
    if resource is None:
        return None
    return RESOURCE_PERMISSIONS.get(resource)


def requires_audit_log(resource) -> bool:
    meta = _metadata(resource)
    return bool(meta and meta.audit_required)


def is_sensitive_resource(resource) -> bool:
    meta = _metadata(resource)
    return bool(meta and meta.sensitive)


def requires_approval(resource) -> bool:
    meta = _metadata(resource)
    return bool(meta and meta.requires_approval)


def method_to_action(method: str) -> PermissionAction:
    """Map an HTTP method onto the action it performs."""
    return {
        "GET": PermissionAction.READ,
        "POST": PermissionAction.CREATE,
        "PUT": PermissionAction.UPDATE,
        "PATCH": PermissionAction.UPDATE,
        "DELETE": PermissionAction.DELETE,
    }.get(method.upper(), PermissionAction.READ)


def validate_permission_templates() -> None:
    """Check the static tables against the enum domains. Call once at startup."""
    missing_roles = set(EnhancedUserRole) - set(ROLE_PERMISSION_TEMPLATES)
    if missing_roles:
        names = ", ".join(sorted(r.value for r in missing_roles))
        raise RuntimeError(f"Roles without a permission template: {names}")

    missing_resources = set(PermissionResource) - set(RESOURCE_PERMISSIONS)
    if missing_resources:
        names = ", ".join(sorted(r.value for r in missing_resources))
        raise RuntimeError(f"Resources without metadata: {names}")

    super_admin = ROLE_PERMISSION_TEMPLATES[EnhancedUserRole.SUPER_ADMIN]
    if super_admin.permissions != ALL_PERMISSIONS or super_admin.departments != frozenset(
        Department
    ):
        raise RuntimeError("super_admin template must grant every permission in every department")

    for role, template in ROLE_PERMISSION_TEMPLATES.items():
        if not template.departments:
            raise RuntimeError(f"Role '{role.value}' has no departments")
        if not template.description:
            raise RuntimeError(f"Role '{role.value}' has no description")
