# Overview: Service-layer access control over businesses and properties.

"""
Property Access Control

WHY: A staff member sees exactly the properties listed in their own
property_access, restricted to their own business. Nothing is inferred from
role or ownership: an owner whose record lacks the main property does not see
the main property. Registration seeds it explicitly for that reason.

Query methods answer "no access" and "not found" identically with []. Grant
and revoke are mutations and raise.

Super admins are the one bypass: they may view and switch into every active
business and property. That bypass lives in the switchable/available
helpers only, never in get_accessible_properties.
"""

import logging

from ..entities import Business, Principal, Property, Staff
from ..errors import AccessDeniedError, NotFoundError
from ..repository import Repository

logger = logging.getLogger(__name__)


class AccessControl:
    def __init__(self, repo: Repository):
        self.repo = repo

    def get_accessible_properties(self, staff_id: str) -> list[Property]:
        """
        Properties of the staff member's business whose code is in their
        access list, in storage order. Inactive properties are left out.
        """
        staff = self.repo.get_staff(staff_id)
        if staff is None or not staff.is_active:
            return []

        business = self.repo.get_business(staff.business_id)
        if business is None or not business.is_active:
            return []

        allowed = set(staff.property_access)
        return [
            prop
            for prop in self.repo.list_properties(business.business_id)
            if prop.property_code in allowed and prop.is_active
        ]

    def has_property_access(self, staff_id: str, property_code: str) -> bool:
        return any(
            prop.property_code == property_code
            for prop in self.get_accessible_properties(staff_id)
        )

    def _require_staff(self, staff_id: str) -> Staff:
        staff = self.repo.get_staff(staff_id)
        if staff is None:
            raise NotFoundError(f"Staff member {staff_id} not found")
        return staff

    def grant_property_access(self, staff_id: str, property_code: str) -> Staff:
        """
        Add property_code to the staff member's access list.

        Idempotent: granting a property already present changes nothing.
        """
        staff = self._require_staff(staff_id)
        prop = self.repo.get_property(property_code)
        if prop is None:
            raise NotFoundError(f"Property {property_code} not found")
        if prop.business_id != staff.business_id:
            raise AccessDeniedError(
                f"Property {property_code} does not belong to the business of staff member {staff_id}"
            )

        if property_code in staff.property_access:
            return staff

        staff.property_access = [*staff.property_access, property_code]
        self.repo.save_staff(staff)
        logger.info("Granted %s access to property %s", staff_id, property_code)
        return staff

    def revoke_property_access(self, staff_id: str, property_code: str) -> bool:
        """
        Remove property_code from the access list.

        Returns True if access was removed, False if it was not present.
        """
        staff = self._require_staff(staff_id)
        if property_code not in staff.property_access:
            return False

        staff.property_access = [code for code in staff.property_access if code != property_code]
        self.repo.save_staff(staff)
        logger.info("Revoked %s access to property %s", staff_id, property_code)
        return True

    def get_available_businesses(self, principal: Principal) -> list[Business]:
        if principal.is_super_admin:
            return [b for b in self.repo.list_businesses() if b.is_active]

        if not principal.business_id:
            return []
        business = self.repo.get_business(principal.business_id)
        if business is None or not business.is_active:
            return []
        return [business]

    def get_switchable_properties(self, principal: Principal, business_id: str) -> list[Property]:
        if principal.is_super_admin:
            business = self.repo.get_business(business_id)
            if business is None or not business.is_active:
                return []
            return [p for p in self.repo.list_properties(business_id) if p.is_active]

        if principal.business_id != business_id or not principal.staff_id:
            return []
        return [
            prop
            for prop in self.get_accessible_properties(principal.staff_id)
            if prop.business_id == business_id
        ]

    def default_property(self, principal: Principal, business_id: str) -> Property | None:
        """The main property if switchable, else the first switchable one."""
        candidates = self.get_switchable_properties(principal, business_id)
        for prop in candidates:
            if prop.is_main_property:
                return prop
        return candidates[0] if candidates else None
