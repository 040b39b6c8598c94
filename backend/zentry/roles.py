# Overview: Role vocabulary, classification and landing-route lookup.

"""
Role Gate

The stored role vocabulary grew inconsistently ("user" vs "employee" vs
"staff", "admin" vs "owner"). Everything is mapped onto three canonical kinds
through one explicit table, ROLE_ALIASES. Add new spellings there, never at a
call site.

Everything in this module is a pure lookup and total: any input, including
None or non-strings, yields an answer and never raises.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class RoleKind(str, Enum):
    STAFF = "staff"
    OWNER = "owner"
    SUPER_ADMIN = "super_admin"


# Canonical staff positions stored on Staff.role
STAFF_ROLES = (
    "owner",
    "manager",
    "assistant_manager",
    "server",
    "cashier",
    "kitchen",
    "chef",
    "bartender",
    "host",
    "employee",
)

ROLE_ALIASES: dict[str, RoleKind] = {
    "super_admin": RoleKind.SUPER_ADMIN,
    "owner": RoleKind.OWNER,
    "admin": RoleKind.OWNER,
    "user": RoleKind.STAFF,
    "employee": RoleKind.STAFF,
    "staff": RoleKind.STAFF,
    "manager": RoleKind.STAFF,
    "assistant_manager": RoleKind.STAFF,
    "server": RoleKind.STAFF,
    "cashier": RoleKind.STAFF,
    "kitchen": RoleKind.STAFF,
    "host": RoleKind.STAFF,
    "bartender": RoleKind.STAFF,
    "chef": RoleKind.STAFF,
}

LANDING_ROUTES = {
    RoleKind.SUPER_ADMIN: "/super-admin-dashboard",
    RoleKind.OWNER: "/business-dashboard",
    RoleKind.STAFF: "/staff-dashboard",
}
DEFAULT_LANDING_ROUTE = "/dashboard"

# Roles allowed to create and approve staff
STAFF_MANAGER_ROLES = frozenset({"owner", "admin", "manager", "super_admin"})


def normalize_role(role: Any) -> str | None:
    if isinstance(role, RoleKind):
        return role.value
    if not isinstance(role, str):
        return None
    normalized = role.strip().lower().replace("-", "_").replace(" ", "_")
    return normalized or None


def _role_of(profile: Any) -> Any:
    if isinstance(profile, (str, RoleKind)) or profile is None:
        return profile
    if isinstance(profile, dict):
        return profile.get("role")
    return getattr(profile, "role", None)


def classify_role(profile: Any) -> RoleKind | None:
    """
    Classify a role string, a mapping with a "role" key, or any object with a
    `role` attribute. Unrecognized roles yield None.
    """
    role = normalize_role(_role_of(profile))
    if role is None:
        return None
    return ROLE_ALIASES.get(role)


def landing_route_for(role: Any) -> str:
    kind = role if isinstance(role, RoleKind) else classify_role(role)
    return LANDING_ROUTES.get(kind, DEFAULT_LANDING_ROUTE)


def can_manage_staff(role: Any) -> bool:
    return normalize_role(_role_of(role)) in STAFF_MANAGER_ROLES


def can_assign_role(actor_role: Any, target_role: Any) -> bool:
    """
    Managers may not create owners or super admins; owners may not create
    super admins.
    """
    actor = normalize_role(_role_of(actor_role))
    target = normalize_role(target_role)
    if actor == "super_admin":
        return True
    if target == "super_admin":
        return False
    if actor in ("owner", "admin"):
        return True
    if actor == "manager":
        return target not in ("owner", "admin")
    return False
