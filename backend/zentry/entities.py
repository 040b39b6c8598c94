# Overview: Business, Property and Staff records as stored in either backend.

"""
Tenant Entities

A Business owns an ordered list of Property codes. Staff reach properties only
through their own `property_access` list: there is no inheritance from role or
from business ownership, so a property added to a business is invisible to
every staff member until it is granted explicitly.

Records are plain dataclasses. They serialize to flat dicts (snake_case keys,
timestamps as ISO-8601 'Z' strings) and the same dict shape is written to the
document store and to the key-value cache.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any

from .roles import RoleKind
from .time_utils import utcnow_z


DEFAULT_BUSINESS_SETTINGS = {
    "tax_rate": 0.0,
    "currency": "USD",
    "require_approval_for_new_staff": True,
}

DEFAULT_PROPERTY_SETTINGS = {
    "tables": [],
    "sections": [],
}


class _Record:
    @classmethod
    def from_dict(cls, data: dict[str, Any] | None):
        if data is None:
            return None
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Business(_Record):
    business_id: str
    business_code: str
    company_name: str
    business_type: str = "restaurant"
    owner_staff_id: str | None = None
    company_email: str | None = None
    company_phone: str | None = None
    address: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_BUSINESS_SETTINGS))
    property_codes: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: str = field(default_factory=utcnow_z)
    updated_at: str | None = None

    @property
    def requires_staff_approval(self) -> bool:
        return bool(self.settings.get("require_approval_for_new_staff", True))


@dataclass
class Property(_Record):
    property_code: str
    property_name: str
    business_id: str
    business_type: str = "restaurant"
    connection_code: str | None = None
    address: dict[str, Any] = field(default_factory=dict)
    phone: str | None = None
    is_main_property: bool = False
    is_active: bool = True
    settings: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PROPERTY_SETTINGS))
    created_at: str = field(default_factory=utcnow_z)
    updated_at: str | None = None


@dataclass
class Staff(_Record):
    staff_id: str
    full_name: str
    role: str
    business_id: str
    business_code: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    phone: str | None = None
    property_access: list[str] = field(default_factory=list)
    is_approved: bool = False
    is_active: bool = True
    requested_property: str | None = None
    requested_at: str | None = None
    approved_at: str | None = None
    approved_by: str | None = None
    last_login: str | None = None
    created_at: str = field(default_factory=utcnow_z)

    def __post_init__(self):
        if not self.first_name and not self.last_name:
            self.first_name, self.last_name = split_full_name(self.full_name)

    @property
    def is_usable(self) -> bool:
        """Approved and active: the only state in which a staff record may sign in."""
        return self.is_approved and self.is_active


def split_full_name(full_name: str | None) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


@dataclass(frozen=True)
class Principal:
    """
    Who a session is signed in as, after role classification.

    kind decides dashboards and super-admin bypasses. It never grants
    property access on its own.
    """
    kind: RoleKind
    uid: str
    role: str
    display_name: str = ""
    staff_id: str | None = None
    business_id: str | None = None
    last_login: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.kind == RoleKind.SUPER_ADMIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "uid": self.uid,
            "role": self.role,
            "name": self.display_name,
            "staff_id": self.staff_id,
            "business_id": self.business_id,
            "last_login": self.last_login,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Principal | None":
        if not data:
            return None
        try:
            kind = RoleKind(data.get("kind"))
        except ValueError:
            return None
        return cls(
            kind=kind,
            uid=data.get("uid") or "",
            role=data.get("role") or kind.value,
            display_name=data.get("name") or "",
            staff_id=data.get("staff_id"),
            business_id=data.get("business_id"),
            last_login=data.get("last_login"),
        )
