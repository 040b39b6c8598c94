# Overview: Pytest coverage for property access control and tenant isolation.

"""
Property Access Tests

SECURITY TESTS: A staff member reaches exactly the properties on their own
access list, within their own business. Nothing is inherited from role or
ownership. Runs once per persistence backend.
"""

import pytest

from zentry.entities import Principal
from zentry.errors import AccessDeniedError, NotFoundError
from zentry.roles import RoleKind


def _codes(props):
    return [p.property_code for p in props]


class TestAccessibleProperties:
    def test_owner_is_seeded_with_main_property(self, services, acme):
        props = services.access.get_accessible_properties(acme.owner.staff_id)
        assert _codes(props) == [acme.main_property.property_code]

    def test_only_listed_properties(self, services, acme, acme_cafe, manager):
        assert _codes(services.access.get_accessible_properties(manager.staff_id)) == [acme_cafe.property_code]
        assert services.access.has_property_access(manager.staff_id, acme_cafe.property_code)
        assert not services.access.has_property_access(manager.staff_id, acme.main_property.property_code)

    def test_new_property_is_not_inherited(self, services, acme, manager):
        bar = services.businesses.add_property(acme.business.business_id, "Rooftop Bar", business_type="bar")
        assert bar.property_code not in _codes(services.access.get_accessible_properties(manager.staff_id))
        assert bar.property_code not in _codes(services.access.get_accessible_properties(acme.owner.staff_id))

    def test_storage_order(self, services, acme, acme_cafe):
        props = services.access.get_accessible_properties(acme.owner.staff_id)
        assert _codes(props) == [acme.main_property.property_code, acme_cafe.property_code]

    def test_unknown_staff_gets_empty_list(self, services, acme):
        assert services.access.get_accessible_properties("ZZZZ9999") == []

    def test_inactive_staff_gets_empty_list(self, services, acme, manager):
        services.staff.deactivate_staff(manager.staff_id, None)
        assert services.access.get_accessible_properties(manager.staff_id) == []

    def test_inactive_business_gets_empty_list(self, services, acme):
        services.businesses.deactivate_business(acme.business.business_id)
        assert services.access.get_accessible_properties(acme.owner.staff_id) == []

    def test_inactive_property_is_excluded(self, services, acme, acme_cafe):
        services.businesses.deactivate_property(acme_cafe.property_code)
        props = services.access.get_accessible_properties(acme.owner.staff_id)
        assert _codes(props) == [acme.main_property.property_code]

    def test_foreign_code_on_access_list_is_ignored(self, services, acme, beta):
        owner = services.repo.get_staff(acme.owner.staff_id)
        owner.property_access.append(beta.main_property.property_code)
        services.repo.save_staff(owner)

        props = services.access.get_accessible_properties(owner.staff_id)
        assert _codes(props) == [acme.main_property.property_code]


class TestGrantRevoke:
    def test_grant_is_idempotent(self, services, acme, manager):
        main = acme.main_property.property_code
        services.access.grant_property_access(manager.staff_id, main)
        staff = services.access.grant_property_access(manager.staff_id, main)

        assert staff.property_access.count(main) == 1
        assert services.repo.get_staff(manager.staff_id).property_access.count(main) == 1

    def test_grant_cross_business_denied(self, services, acme, beta, manager):
        with pytest.raises(AccessDeniedError):
            services.access.grant_property_access(manager.staff_id, beta.main_property.property_code)
        assert beta.main_property.property_code not in services.repo.get_staff(manager.staff_id).property_access

    def test_grant_unknown_property(self, services, manager):
        with pytest.raises(NotFoundError):
            services.access.grant_property_access(manager.staff_id, "NOPRST000")

    def test_grant_unknown_staff(self, services, acme):
        with pytest.raises(NotFoundError):
            services.access.grant_property_access("ZZZZ9999", acme.main_property.property_code)

    def test_revoke(self, services, acme_cafe, manager):
        assert services.access.revoke_property_access(manager.staff_id, acme_cafe.property_code) is True
        assert services.access.revoke_property_access(manager.staff_id, acme_cafe.property_code) is False
        assert services.access.get_accessible_properties(manager.staff_id) == []

    def test_revoke_unknown_staff(self, services):
        with pytest.raises(NotFoundError):
            services.access.revoke_property_access("ZZZZ9999", "DOWCAF123")


class TestSwitchableSets:
    def test_staff_sees_only_own_business(self, services, acme, beta, manager):
        principal = Principal(
            kind=RoleKind.STAFF, uid="u", role="manager",
            staff_id=manager.staff_id, business_id=acme.business.business_id,
        )
        businesses = services.access.get_available_businesses(principal)
        assert [b.business_id for b in businesses] == [acme.business.business_id]
        assert services.access.get_switchable_properties(principal, beta.business.business_id) == []

    def test_super_admin_sees_all_active(self, services, acme, beta, acme_cafe):
        services.businesses.deactivate_property(acme_cafe.property_code)
        principal = Principal(kind=RoleKind.SUPER_ADMIN, uid="root", role="super_admin")

        businesses = services.access.get_available_businesses(principal)
        assert {b.business_id for b in businesses} == {acme.business.business_id, beta.business.business_id}
        props = services.access.get_switchable_properties(principal, acme.business.business_id)
        assert _codes(props) == [acme.main_property.property_code]

    def test_super_admin_bypass_not_in_accessible_properties(self, services, acme):
        # get_accessible_properties is keyed by staff record only
        assert services.access.get_accessible_properties("root") == []

    def test_default_property_prefers_main(self, services, acme, acme_cafe):
        principal = Principal(
            kind=RoleKind.OWNER, uid="u", role="owner",
            staff_id=acme.owner.staff_id, business_id=acme.business.business_id,
        )
        prop = services.access.default_property(principal, acme.business.business_id)
        assert prop.property_code == acme.main_property.property_code

    def test_default_property_falls_back_to_first(self, services, acme, acme_cafe, manager):
        principal = Principal(
            kind=RoleKind.STAFF, uid="u", role="manager",
            staff_id=manager.staff_id, business_id=acme.business.business_id,
        )
        prop = services.access.default_property(principal, acme.business.business_id)
        assert prop.property_code == acme_cafe.property_code
