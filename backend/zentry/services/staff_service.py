# Overview: Service-layer staff creation, self-enrollment and approval.

"""
Staff Lifecycle

Two ways in:
- create_staff: an owner, manager or super admin adds someone directly.
  The record is approved at once.
- enroll_staff: a new hire enters a property's connection code and a
  4-digit PIN. The record stays pending until an owner or manager approves
  it, unless the business turned require_approval_for_new_staff off.

RULES:
- managers cannot create owners (nobody but a super admin creates super admins)
- managers may only hand out properties they can access themselves
- property access is seeded explicitly, never inherited
- a pending record has no property access; approval grants it
- update_staff never changes a staff ID, business or access list, and never
  hands out super_admin
"""

import logging

from .. import identifiers
from ..entities import Business, Principal, Staff, split_full_name
from ..errors import AccessDeniedError, NotFoundError, ValidationError
from ..repository import Repository
from ..roles import STAFF_ROLES, RoleKind, can_assign_role, can_manage_staff
from zentry.time_utils import utcnow_z
from .access_service import AccessControl
from .identity_service import IdentityProvider, validate_password_strength, validate_pin
from .registry_service import IdentifierRegistry

logger = logging.getLogger(__name__)

# Roles a new hire may ask for when enrolling by connection code
ENROLLABLE_ROLES = tuple(r for r in STAFF_ROLES if r not in ("owner", "manager"))

STAFF_PATCH_FIELDS = ("full_name", "email", "phone", "role")


def _is_pin(secret: str) -> bool:
    return len(secret) == 4 and secret.isdigit()


class StaffService:
    def __init__(
        self,
        repo: Repository,
        registry: IdentifierRegistry,
        access: AccessControl,
        provider: IdentityProvider,
    ):
        self.repo = repo
        self.registry = registry
        self.access = access
        self.provider = provider

    def _active_business(self, business_id: str) -> Business:
        business = self.repo.get_business(business_id)
        if business is None:
            raise NotFoundError("Business not found")
        if not business.is_active:
            raise ValidationError(f"Business {business_id} is inactive")
        return business

    def _require_manager(self, actor: Principal | None, business_id: str) -> None:
        """None means a trusted caller (CLI, registration)."""
        if actor is None or actor.is_super_admin:
            return
        if not can_manage_staff(actor.role):
            raise AccessDeniedError("Only owners and managers can manage staff")
        if actor.business_id != business_id:
            raise AccessDeniedError(f"You do not manage business {business_id}")

    def _check_assignable(self, actor: Principal | None, business_id: str, property_codes: list[str]) -> list[str]:
        codes = []
        for code in property_codes:
            code = identifiers.normalize_identifier(code)
            prop = self.repo.get_property(code)
            if prop is None:
                raise NotFoundError(f"Property {code} not found")
            if prop.business_id != business_id:
                raise AccessDeniedError(f"Property {code} does not belong to business {business_id}")
            if actor is not None and actor.role == "manager" and not self.access.has_property_access(actor.staff_id, code):
                raise AccessDeniedError(f"Managers can only assign their own properties ({code})")
            if code not in codes:
                codes.append(code)
        return codes

    def get_staff(self, staff_id: str) -> Staff:
        staff = self.repo.get_staff(identifiers.normalize_identifier(staff_id))
        if staff is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        return staff

    def list_staff(self, business_id: str) -> list[Staff]:
        return self.repo.list_staff(business_id)

    def create_staff(
        self,
        business_id: str,
        full_name: str,
        role: str,
        password: str,
        actor: Principal | None = None,
        email: str | None = None,
        phone: str | None = None,
        property_access: list[str] | None = None,
    ) -> Staff:
        """
        Add an approved staff member. password may be a full password or a
        4-digit PIN.
        """
        business = self._active_business(business_id)
        self._require_manager(actor, business_id)

        full_name = (full_name or "").strip()
        if not full_name:
            raise ValidationError("Full name is required")
        role = (role or "").strip().lower()
        if role not in STAFF_ROLES:
            raise ValidationError(f"Invalid role: {role!r}")
        if actor is not None and not can_assign_role(actor.role, role):
            raise AccessDeniedError(f"A {actor.role} cannot create {role} accounts")

        if not password:
            raise ValidationError("Password or PIN is required")
        if _is_pin(password):
            validate_pin(password)
        else:
            validate_password_strength(password)

        codes = self._check_assignable(actor, business_id, property_access or [])

        staff_id = self.registry.generate_unique_staff_id(full_name, role)
        now = utcnow_z()
        staff = Staff(
            staff_id=staff_id,
            full_name=full_name,
            role=role,
            business_id=business_id,
            business_code=business.business_code,
            email=email.strip().lower() if email else None,
            phone=phone,
            property_access=codes,
            is_approved=True,
            is_active=True,
            approved_at=now,
            approved_by=(actor.staff_id or actor.uid) if actor else "system",
            created_at=now,
        )
        self.repo.save_staff(staff)
        self.provider.create_identity(
            login=staff_id,
            secret=password,
            role_claim=RoleKind.OWNER.value if role == "owner" else RoleKind.STAFF.value,
            email=staff.email,
            staff_id=staff_id,
            business_id=business_id,
            secret_is_pin=_is_pin(password),
        )

        logger.info("Created staff %s (%s) in business %s", staff_id, role, business_id)
        return staff

    def enroll_staff(
        self,
        connection_code: str,
        full_name: str,
        pin: str,
        requested_role: str = "employee",
        email: str | None = None,
        phone: str | None = None,
    ) -> Staff:
        """
        Self-enrollment by property connection code.

        Pending unless the business does not require approval, in which case
        the connected property is granted immediately.
        """
        connection_code = identifiers.normalize_identifier(connection_code)
        if not identifiers.validate_connection_code(connection_code):
            raise ValidationError("Invalid connection code")
        prop = self.repo.find_property_by_connection_code(connection_code)
        if prop is None or not prop.is_active:
            raise NotFoundError("Invalid connection code")
        business = self._active_business(prop.business_id)

        full_name = (full_name or "").strip()
        if not full_name:
            raise ValidationError("Full name is required")
        requested_role = (requested_role or "employee").strip().lower()
        if requested_role not in ENROLLABLE_ROLES:
            raise ValidationError(f"Role {requested_role!r} cannot be requested at enrollment")
        validate_pin(pin)

        auto_approve = not business.requires_staff_approval
        staff_id = self.registry.generate_unique_staff_id(full_name, requested_role)
        now = utcnow_z()
        staff = Staff(
            staff_id=staff_id,
            full_name=full_name,
            role=requested_role,
            business_id=business.business_id,
            business_code=business.business_code,
            email=email.strip().lower() if email else None,
            phone=phone,
            property_access=[prop.property_code] if auto_approve else [],
            is_approved=auto_approve,
            is_active=True,
            requested_property=prop.property_code,
            requested_at=now,
            approved_at=now if auto_approve else None,
            approved_by="auto" if auto_approve else None,
            created_at=now,
        )
        self.repo.save_staff(staff)
        self.provider.create_identity(
            login=staff_id,
            secret=pin,
            role_claim=RoleKind.STAFF.value,
            email=staff.email,
            staff_id=staff_id,
            business_id=business.business_id,
            secret_is_pin=True,
        )

        logger.info(
            "Enrolled staff %s at property %s (%s)",
            staff_id, prop.property_code, "approved" if auto_approve else "pending",
        )
        return staff

    def list_pending_staff(self, business_id: str, approver: Principal | None) -> list[Staff]:
        self._require_manager(approver, business_id)
        return [s for s in self.repo.list_staff(business_id) if s.is_active and not s.is_approved]

    def approve_staff(
        self,
        staff_id: str,
        approver: Principal | None,
        assigned_properties: list[str] | None = None,
    ) -> Staff:
        """
        Approve a pending record and grant its properties (the requested
        property unless assigned_properties says otherwise). Approving an
        approved record changes nothing.
        """
        staff = self.get_staff(staff_id)
        self._require_manager(approver, staff.business_id)
        if staff.is_approved:
            return staff
        if not staff.is_active:
            raise ValidationError(f"Staff member {staff.staff_id} is deactivated")

        if assigned_properties is None:
            assigned_properties = [staff.requested_property] if staff.requested_property else []
        codes = self._check_assignable(approver, staff.business_id, assigned_properties)

        staff.is_approved = True
        staff.approved_at = utcnow_z()
        staff.approved_by = (approver.staff_id or approver.uid) if approver else "system"
        self.repo.save_staff(staff)
        for code in codes:
            staff = self.access.grant_property_access(staff.staff_id, code)

        logger.info("Approved staff %s", staff.staff_id)
        return staff

    def deactivate_staff(self, staff_id: str, actor: Principal | None) -> Staff:
        staff = self.get_staff(staff_id)
        self._require_manager(actor, staff.business_id)
        business = self.repo.get_business(staff.business_id)
        if business is not None and business.owner_staff_id == staff.staff_id:
            raise ValidationError("The business owner cannot be deactivated")
        if actor is not None and not can_assign_role(actor.role, staff.role):
            raise AccessDeniedError(f"A {actor.role} cannot deactivate {staff.role} accounts")

        staff.is_active = False
        self.repo.save_staff(staff)

        identity = self.provider.find_identity_for_staff(staff.staff_id)
        if identity is not None:
            self.provider.set_active(identity, False)

        logger.info("Deactivated staff %s", staff.staff_id)
        return staff

    def update_staff(self, staff_id: str, patch: dict, actor: Principal | None) -> Staff:
        """
        Change name, contact details or role. The staff ID, business and
        property access never change here; a role change keeps the staff ID
        and signs the member out everywhere.
        """
        staff = self.get_staff(staff_id)
        self._require_manager(actor, staff.business_id)
        if actor is not None and not can_assign_role(actor.role, staff.role):
            raise AccessDeniedError(f"A {actor.role} cannot edit {staff.role} accounts")
        if not isinstance(patch, dict) or not patch:
            raise ValidationError("Nothing to update")
        unknown = set(patch) - set(STAFF_PATCH_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update staff fields: {', '.join(sorted(unknown))}")

        new_role = None
        if "role" in patch:
            role = (patch["role"] or "").strip().lower() if isinstance(patch["role"], str) else ""
            if role == RoleKind.SUPER_ADMIN.value:
                raise AccessDeniedError("Staff cannot be given the super_admin role")
            if role not in STAFF_ROLES:
                raise ValidationError(f"Invalid role: {patch['role']!r}")
            if actor is not None and not can_assign_role(actor.role, role):
                raise AccessDeniedError(f"A {actor.role} cannot assign the {role} role")
            if role != staff.role:
                business = self.repo.get_business(staff.business_id)
                if business is not None and business.owner_staff_id == staff.staff_id:
                    raise ValidationError("The business owner's role cannot be changed")
                new_role = role

        if "full_name" in patch:
            full_name = (patch["full_name"] or "").strip() if isinstance(patch["full_name"], str) else ""
            if not full_name:
                raise ValidationError("Full name is required")
            staff.full_name = full_name
            staff.first_name, staff.last_name = split_full_name(full_name)
        if "email" in patch:
            email = str(patch["email"] or "").strip().lower()
            if email and "@" not in email:
                raise ValidationError("Email address is invalid")
            staff.email = email or None
        if "phone" in patch:
            staff.phone = patch["phone"] or None
        if new_role is not None:
            staff.role = new_role
        self.repo.save_staff(staff)

        identity = self.provider.find_identity_for_staff(staff.staff_id)
        if identity is not None and ("email" in patch or new_role is not None):
            self.provider.update_identity(
                identity,
                role_claim=RoleKind.OWNER.value if staff.role == "owner" else RoleKind.STAFF.value,
                email=staff.email or "",
            )

        logger.info("Updated staff %s (%s)", staff.staff_id, ", ".join(sorted(patch)))
        return staff

    def _require_access_manager(self, actor: Principal | None, staff: Staff) -> None:
        self._require_manager(actor, staff.business_id)
        if actor is not None and not can_assign_role(actor.role, staff.role):
            raise AccessDeniedError(f"A {actor.role} cannot change access of {staff.role} accounts")

    def grant_access(self, staff_id: str, property_code: str, actor: Principal | None) -> Staff:
        staff = self.get_staff(staff_id)
        self._require_access_manager(actor, staff)
        codes = self._check_assignable(actor, staff.business_id, [property_code])
        return self.access.grant_property_access(staff.staff_id, codes[0])

    def revoke_access(self, staff_id: str, property_code: str, actor: Principal | None) -> bool:
        """
        Managers may only take away properties they can access themselves.
        The owner keeps the main property unless a super admin removes it.
        """
        staff = self.get_staff(staff_id)
        self._require_access_manager(actor, staff)
        code = identifiers.normalize_identifier(property_code)
        if actor is not None and actor.role == "manager" and not self.access.has_property_access(actor.staff_id, code):
            raise AccessDeniedError(f"Managers can only revoke their own properties ({code})")
        if actor is not None and not actor.is_super_admin:
            business = self.repo.get_business(staff.business_id)
            prop = self.repo.get_property(code)
            if (business is not None and business.owner_staff_id == staff.staff_id
                    and prop is not None and prop.is_main_property):
                raise ValidationError("The business owner cannot lose access to the main property")
        return self.access.revoke_property_access(staff.staff_id, code)
