"""Role-based access control — what each role can do. Roles do not nest."""
from typing import Dict, FrozenSet, Iterable, List

ROLES: tuple = (
    "ADMIN",
    "ESTIMATOR",
    "PROJECT_COORDINATOR",
    "DESIGNER",
    "PRODUCTION_MANAGER",
    "VIEWER",
)

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "ADMIN": frozenset({
        "projects:read", "projects:create", "projects:edit", "projects:delete",
        "quotes:read", "quotes:create", "quotes:edit", "quotes:delete",
        "products:read", "products:edit",
        "purchasing:read", "purchasing:create", "purchasing:edit",
        "finance:read", "finance:edit",
        "customers:read", "customers:create", "customers:edit",
        "suppliers:read", "suppliers:create", "suppliers:edit",
        "team:read", "team:edit",
        "catalogue:read", "catalogue:edit",
        "reports:read", "import:use", "settings:admin",
        "variations:read", "variations:create", "variations:edit",
        "ncrs:read", "ncrs:create", "ncrs:edit",
        "audit:read", "portal:manage",
    }),
    "ESTIMATOR": frozenset({
        "projects:read", "projects:create",
        "quotes:read", "quotes:create", "quotes:edit",
        "products:read",
        "purchasing:read",
        "finance:read",
        "customers:read", "customers:create", "customers:edit",
        "suppliers:read",
        "catalogue:read", "catalogue:edit",
        "reports:read",
        "variations:read", "variations:create",
        "ncrs:read",
    }),
    "PROJECT_COORDINATOR": frozenset({
        "projects:read", "projects:create", "projects:edit",
        "quotes:read",
        "products:read", "products:edit",
        "purchasing:read", "purchasing:create", "purchasing:edit",
        "finance:read",
        "customers:read",
        "suppliers:read", "suppliers:create",
        "catalogue:read",
        "reports:read",
        "variations:read", "variations:create", "variations:edit",
        "ncrs:read", "ncrs:create", "ncrs:edit",
        "team:read",
    }),
    "DESIGNER": frozenset({
        "projects:read",
        "quotes:read",
        "products:read", "products:edit",
        "purchasing:read",
        "customers:read",
        "suppliers:read",
        "catalogue:read",
        "ncrs:read", "ncrs:create",
        "team:read",
    }),
    "PRODUCTION_MANAGER": frozenset({
        "projects:read",
        "quotes:read",
        "products:read", "products:edit",
        "purchasing:read", "purchasing:create",
        "finance:read",
        "customers:read",
        "suppliers:read",
        "catalogue:read",
        "reports:read",
        "ncrs:read", "ncrs:create", "ncrs:edit",
        "team:read",
    }),
    "VIEWER": frozenset({
        "projects:read",
        "quotes:read",
        "products:read",
        "purchasing:read",
        "finance:read",
        "customers:read",
        "suppliers:read",
        "catalogue:read",
        "reports:read",
        "team:read",
        "ncrs:read",
        "variations:read",
    }),
}


def has_permission(role: str, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def has_any_permission(role: str, permissions: Iterable[str]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def get_permissions(role: str) -> List[str]:
    return sorted(ROLE_PERMISSIONS.get(role, frozenset()))


def can_edit(role: str) -> bool:
    return role != "VIEWER"
