# Overview: Service-layer business registration and property lifecycle.

"""
Business & Property Lifecycle

REGISTRATION creates, in order:
1. a unique business code and business ID
2. the Business record
3. the owner's Staff record (role owner, approved, active)
4. the main property, with the owner explicitly granted access to it
5. the owner's identity (login = business ID, company email also accepted)

MAIN PROPERTY: every active business with active properties has exactly
one main property. The first property becomes main; promoting another one
demotes the previous main; deactivating or deleting the main property
promotes the next active property in storage order.

Properties are soft-deleted with deactivate_property. delete_property is the
hard delete and also strips the code from every staff access list.

export_business is the umbrella-account backup: one JSON-ready snapshot of a
business with all of its properties and staff.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any

from .. import identifiers
from ..entities import DEFAULT_BUSINESS_SETTINGS, Business, Property, Staff
from ..errors import AccessDeniedError, NotFoundError, ValidationError
from ..repository import Repository
from ..roles import RoleKind
from zentry.time_utils import utcnow_z
from .access_service import AccessControl
from .identity_service import IdentityProvider, validate_password_strength
from .registry_service import IdentifierRegistry

logger = logging.getLogger(__name__)

BUSINESS_PATCH_FIELDS = ("company_name", "company_email", "company_phone", "address")
PROPERTY_PATCH_FIELDS = ("property_name", "address", "phone", "settings")


@dataclass
class RegistrationResult:
    business: Business
    main_property: Property
    owner: Staff

    def to_dict(self) -> dict:
        return {
            "business": self.business.to_dict(),
            "main_property": self.main_property.to_dict(),
            "owner": self.owner.to_dict(),
            "login": self.business.business_id,
        }


def _require_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


def _require_business_type(business_type: Any) -> str:
    normalized = (business_type or "").strip().lower() if isinstance(business_type, str) else ""
    if normalized not in identifiers.BUSINESS_TYPES:
        raise ValidationError(
            f"Invalid business type: {business_type!r}. Expected one of {', '.join(identifiers.BUSINESS_TYPES)}"
        )
    return normalized


def _clean_settings(patch: dict) -> dict:
    if not isinstance(patch, dict):
        raise ValidationError("Settings must be an object")
    cleaned = {}
    for key, value in patch.items():
        if key == "tax_rate":
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
                raise ValidationError("tax_rate must be a number between 0 and 100")
            cleaned[key] = float(value)
        elif key == "currency":
            if not isinstance(value, str) or len(value.strip()) != 3:
                raise ValidationError("currency must be a 3-letter code")
            cleaned[key] = value.strip().upper()
        elif key == "require_approval_for_new_staff":
            if not isinstance(value, bool):
                raise ValidationError("require_approval_for_new_staff must be true or false")
            cleaned[key] = value
        else:
            raise ValidationError(f"Unknown business setting: {key}")
    return cleaned


class BusinessService:
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

    # Businesses

    def register_business(
        self,
        company_name: str,
        business_type: str,
        owner_name: str,
        email: str,
        password: str,
        phone: str | None = None,
        address: dict | None = None,
        property_name: str | None = None,
        settings: dict | None = None,
    ) -> RegistrationResult:
        company_name = _require_text(company_name, "Company name")
        business_type = _require_business_type(business_type)
        owner_name = _require_text(owner_name, "Owner name")
        email = _require_text(email, "Email").lower()
        if "@" not in email:
            raise ValidationError("Email address is invalid")
        validate_password_strength(password)
        merged_settings = {**DEFAULT_BUSINESS_SETTINGS, **_clean_settings(settings or {})}

        business_code = self.registry.generate_unique_business_code(company_name)
        business_id = self.registry.generate_unique_business_id(business_code)
        owner_staff_id = self.registry.generate_unique_staff_id(owner_name, "owner")

        now = utcnow_z()
        business = Business(
            business_id=business_id,
            business_code=business_code,
            company_name=company_name,
            business_type=business_type,
            owner_staff_id=owner_staff_id,
            company_email=email,
            company_phone=phone,
            address=dict(address or {}),
            settings=merged_settings,
            created_at=now,
        )
        self.repo.save_business(business)

        owner = Staff(
            staff_id=owner_staff_id,
            full_name=owner_name,
            role="owner",
            business_id=business_id,
            business_code=business_code,
            email=email,
            phone=phone,
            is_approved=True,
            is_active=True,
            approved_at=now,
            approved_by="registration",
            created_at=now,
        )
        self.repo.save_staff(owner)

        main_property = self.add_property(
            business_id,
            property_name or company_name,
            business_type=business_type,
            address=address,
            phone=phone,
            is_main=True,
            created_by=owner_staff_id,
        )

        self.provider.create_identity(
            login=business_id,
            secret=password,
            role_claim=RoleKind.OWNER.value,
            email=email,
            staff_id=owner_staff_id,
            business_id=business_id,
        )

        logger.info("Registered business %s (%s)", business_id, company_name)
        return RegistrationResult(
            business=self.repo.get_business(business_id),
            main_property=main_property,
            owner=self.repo.get_staff(owner_staff_id),
        )

    def get_business(self, business_id: str) -> Business:
        business = self.repo.get_business(identifiers.normalize_identifier(business_id))
        if business is None:
            raise NotFoundError("Business not found")
        return business

    def list_businesses(self, include_inactive: bool = False) -> list[Business]:
        businesses = self.repo.list_businesses()
        if include_inactive:
            return businesses
        return [b for b in businesses if b.is_active]

    def update_business_profile(self, business_id: str, patch: dict) -> Business:
        """
        Change the company name, contact details or address. Codes, owner,
        type and property list are fixed once registered.
        """
        business = self.get_business(business_id)
        if not isinstance(patch, dict) or not patch:
            raise ValidationError("Nothing to update")
        unknown = set(patch) - set(BUSINESS_PATCH_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update business fields: {', '.join(sorted(unknown))}")

        if "company_name" in patch:
            business.company_name = _require_text(patch["company_name"], "Company name")
        if "company_email" in patch:
            email = _require_text(patch["company_email"], "Email").lower()
            if "@" not in email:
                raise ValidationError("Email address is invalid")
            business.company_email = email
        if "company_phone" in patch:
            business.company_phone = patch["company_phone"] or None
        if "address" in patch:
            if patch["address"] is not None and not isinstance(patch["address"], dict):
                raise ValidationError("Address must be an object")
            business.address = dict(patch["address"] or {})

        business.updated_at = utcnow_z()
        self.repo.save_business(business)
        logger.info("Updated business %s (%s)", business.business_id, ", ".join(sorted(patch)))
        return business

    def update_business_settings(self, business_id: str, patch: dict) -> Business:
        business = self.get_business(business_id)
        business.settings = {**business.settings, **_clean_settings(patch)}
        business.updated_at = utcnow_z()
        self.repo.save_business(business)
        return business

    def deactivate_business(self, business_id: str) -> Business:
        business = self.get_business(business_id)
        business.is_active = False
        business.updated_at = utcnow_z()
        self.repo.save_business(business)
        logger.info("Deactivated business %s", business_id)
        return business

    # Properties

    def _require_active_business(self, business_id: str) -> Business:
        business = self.get_business(business_id)
        if not business.is_active:
            raise ValidationError(f"Business {business_id} is inactive")
        return business

    def get_property(self, property_code: str) -> Property:
        prop = self.repo.get_property(identifiers.normalize_identifier(property_code))
        if prop is None:
            raise NotFoundError("Property not found")
        return prop

    def list_properties(self, business_id: str, include_inactive: bool = False) -> list[Property]:
        props = self.repo.list_properties(business_id)
        if include_inactive:
            return props
        return [p for p in props if p.is_active]

    def add_property(
        self,
        business_id: str,
        property_name: str,
        business_type: str | None = None,
        address: dict | None = None,
        phone: str | None = None,
        is_main: bool = False,
        created_by: str | None = None,
    ) -> Property:
        """
        Create a property with a unique property code and connection code.

        The first property of a business is always main. created_by, a staff
        ID of the same business, is granted access to the new property.
        """
        business = self._require_active_business(business_id)
        property_name = _require_text(property_name, "Property name")
        business_type = _require_business_type(business_type or business.business_type)

        creator = None
        if created_by:
            creator = self.repo.get_staff(created_by)
            if creator is None:
                raise NotFoundError(f"Staff member {created_by} not found")
            if creator.business_id != business_id:
                raise AccessDeniedError(f"Staff member {created_by} does not belong to business {business_id}")

        existing = self.list_properties(business_id)
        current_main = next((p for p in existing if p.is_main_property), None)
        make_main = is_main or current_main is None

        property_code = self.registry.generate_unique_property_code(property_name, business_type)
        connection_code = self.registry.generate_unique_connection_code()

        if make_main and current_main is not None:
            self._set_main_flag(current_main, False)

        prop = Property(
            property_code=property_code,
            property_name=property_name,
            business_id=business_id,
            business_type=business_type,
            connection_code=connection_code,
            address=dict(address or {}),
            phone=phone,
            is_main_property=make_main,
        )
        self.repo.save_property(prop)

        business.property_codes = [*business.property_codes, property_code]
        business.updated_at = utcnow_z()
        self.repo.save_business(business)

        if creator is not None:
            self.access.grant_property_access(creator.staff_id, property_code)

        logger.info("Added property %s to business %s", property_code, business_id)
        return prop

    def update_property(self, property_code: str, patch: dict) -> Property:
        prop = self.get_property(property_code)
        if not isinstance(patch, dict) or not patch:
            raise ValidationError("Nothing to update")
        unknown = set(patch) - set(PROPERTY_PATCH_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update property fields: {', '.join(sorted(unknown))}")

        if "property_name" in patch:
            prop.property_name = _require_text(patch["property_name"], "Property name")
        if "address" in patch:
            prop.address = dict(patch["address"] or {})
        if "phone" in patch:
            prop.phone = patch["phone"]
        if "settings" in patch:
            if not isinstance(patch["settings"], dict):
                raise ValidationError("Property settings must be an object")
            prop.settings = {**prop.settings, **patch["settings"]}

        prop.updated_at = utcnow_z()
        self.repo.save_property(prop)
        return prop

    def set_main_property(self, property_code: str) -> Property:
        prop = self.get_property(property_code)
        property_code = prop.property_code
        if not prop.is_active:
            raise ValidationError(f"Property {property_code} is inactive")
        for other in self.list_properties(prop.business_id):
            if other.is_main_property and other.property_code != property_code:
                self._set_main_flag(other, False)
        if not prop.is_main_property:
            self._set_main_flag(prop, True)
        return prop

    def deactivate_property(self, property_code: str) -> Property:
        prop = self.get_property(property_code)
        property_code = prop.property_code
        was_main = prop.is_main_property
        prop.is_active = False
        prop.is_main_property = False
        prop.updated_at = utcnow_z()
        self.repo.save_property(prop)
        if was_main:
            self._promote_next_main(prop.business_id)
        logger.info("Deactivated property %s", property_code)
        return prop

    def delete_property(self, property_code: str) -> None:
        prop = self.get_property(property_code)
        property_code = prop.property_code
        self.repo.delete_property(property_code)

        business = self.repo.get_business(prop.business_id)
        if business is not None and property_code in business.property_codes:
            business.property_codes = [c for c in business.property_codes if c != property_code]
            business.updated_at = utcnow_z()
            self.repo.save_business(business)

        for staff in self.repo.list_staff(prop.business_id):
            if property_code in staff.property_access:
                self.access.revoke_property_access(staff.staff_id, property_code)

        if prop.is_main_property:
            self._promote_next_main(prop.business_id)
        logger.info("Deleted property %s", property_code)

    def _set_main_flag(self, prop: Property, is_main: bool) -> None:
        prop.is_main_property = is_main
        prop.updated_at = utcnow_z()
        self.repo.save_property(prop)

    def _promote_next_main(self, business_id: str) -> Property | None:
        remaining = self.list_properties(business_id)
        if not remaining or any(p.is_main_property for p in remaining):
            return None
        self._set_main_flag(remaining[0], True)
        return remaining[0]

    # Reporting

    def system_stats(self) -> dict:
        businesses = self.repo.list_businesses()
        properties = self.repo.list_properties()
        staff = self.repo.list_staff()
        return {
            "total_businesses": len(businesses),
            "active_businesses": sum(1 for b in businesses if b.is_active),
            "total_properties": len(properties),
            "active_properties": sum(1 for p in properties if p.is_active),
            "total_staff": len(staff),
            "active_staff": sum(1 for s in staff if s.is_active and s.is_approved),
            "pending_staff": sum(1 for s in staff if s.is_active and not s.is_approved),
            "business_types": dict(Counter(b.business_type for b in businesses)),
            "roles": dict(Counter(s.role for s in staff)),
        }

    # Backup

    def export_business(self, business_id: str, exported_by: str | None = None) -> dict:
        """
        Snapshot of one business: its record, every property (inactive ones
        included) and every staff record. Staff records carry no secrets.
        """
        business = self.get_business(business_id)
        properties = self.repo.list_properties(business.business_id)
        staff = self.repo.list_staff(business.business_id)
        logger.info(
            "Exported business %s (%d properties, %d staff)",
            business.business_id, len(properties), len(staff),
        )
        return {
            "exported_at": utcnow_z(),
            "exported_by": exported_by,
            "business": business.to_dict(),
            "properties": [p.to_dict() for p in properties],
            "staff": [s.to_dict() for s in staff],
        }


def backup_filename(business_id: str, exported_at: str) -> str:
    """umbrella-backup-<business ID>-<timestamp>.json, safe on every filesystem."""
    stamp = exported_at.replace(":", "-")
    return f"umbrella-backup-{business_id}-{stamp}.json"
