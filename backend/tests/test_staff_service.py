# Overview: Pytest coverage for staff creation, enrollment and approval.

"""
Staff Lifecycle Tests

- direct creation is approved at once and seeds only the listed properties
- enrollment by connection code is pending until approved
- managers cannot create owners or hand out properties they cannot access
"""

import pytest

from zentry.entities import Principal
from zentry.errors import AccessDeniedError, NotFoundError, ValidationError
from zentry.roles import RoleKind
from zentry.services.identity_service import PasswordValidationError

from conftest import PASSWORD


def _principal(staff, kind=RoleKind.STAFF):
    return Principal(
        kind=kind,
        uid=f"uid-{staff.staff_id}",
        role=staff.role,
        display_name=staff.full_name,
        staff_id=staff.staff_id,
        business_id=staff.business_id,
    )


@pytest.fixture
def owner_principal(acme):
    return _principal(acme.owner, RoleKind.OWNER)


@pytest.fixture
def manager_principal(manager):
    return _principal(manager)


class TestCreateStaff:
    def test_owner_creates_server(self, services, acme, acme_cafe, owner_principal):
        staff = services.staff.create_staff(
            acme.business.business_id,
            "Sam Server",
            "server",
            PASSWORD,
            actor=owner_principal,
            property_access=[acme_cafe.property_code.lower()],
        )
        assert staff.staff_id[2:4] == "SV"
        assert staff.is_approved and staff.is_active
        assert staff.approved_by == acme.owner.staff_id
        assert staff.property_access == [acme_cafe.property_code]
        assert (staff.first_name, staff.last_name) == ("Sam", "Server")

        identity = services.identity.find_identity(staff.staff_id)
        assert identity.role_claim == "staff"
        assert identity.business_id == acme.business.business_id

    def test_pin_is_accepted(self, services, acme):
        staff = services.staff.create_staff(acme.business.business_id, "Kim Cook", "kitchen", "4321")
        assert services.identity.authenticate(staff.staff_id, "4321").staff_id == staff.staff_id

    def test_weak_password_rejected(self, services, acme):
        with pytest.raises(PasswordValidationError):
            services.staff.create_staff(acme.business.business_id, "Kim Cook", "kitchen", "12345")

    def test_unknown_role_rejected(self, services, acme):
        with pytest.raises(ValidationError):
            services.staff.create_staff(acme.business.business_id, "Kim Cook", "janitor", PASSWORD)

    def test_manager_cannot_create_owner(self, services, acme, manager_principal):
        with pytest.raises(AccessDeniedError):
            services.staff.create_staff(
                acme.business.business_id, "Otto Owner", "owner", PASSWORD, actor=manager_principal,
            )

    def test_manager_only_assigns_own_properties(self, services, acme, acme_cafe, manager_principal):
        with pytest.raises(AccessDeniedError):
            services.staff.create_staff(
                acme.business.business_id, "Sam Server", "server", PASSWORD,
                actor=manager_principal,
                property_access=[acme.main_property.property_code],
            )
        staff = services.staff.create_staff(
            acme.business.business_id, "Sam Server", "server", PASSWORD,
            actor=manager_principal,
            property_access=[acme_cafe.property_code],
        )
        assert staff.property_access == [acme_cafe.property_code]

    def test_cashier_cannot_create_staff(self, services, acme):
        cashier = services.staff.create_staff(acme.business.business_id, "Cara Cash", "cashier", PASSWORD)
        with pytest.raises(AccessDeniedError):
            services.staff.create_staff(
                acme.business.business_id, "Sam Server", "server", PASSWORD, actor=_principal(cashier),
            )

    def test_cross_business_actor_denied(self, services, acme, beta):
        other_owner = _principal(beta.owner, RoleKind.OWNER)
        with pytest.raises(AccessDeniedError):
            services.staff.create_staff(
                acme.business.business_id, "Sam Server", "server", PASSWORD, actor=other_owner,
            )

    def test_foreign_property_rejected(self, services, acme, beta):
        with pytest.raises(AccessDeniedError):
            services.staff.create_staff(
                acme.business.business_id, "Sam Server", "server", PASSWORD,
                property_access=[beta.main_property.property_code],
            )

    def test_unknown_business(self, services):
        with pytest.raises(NotFoundError):
            services.staff.create_staff("BIZNOPE", "Sam Server", "server", PASSWORD)


class TestEnrollment:
    def test_enroll_is_pending(self, services, acme_cafe):
        staff = services.staff.enroll_staff(acme_cafe.connection_code.lower(), "Nina New", "1234")

        assert not staff.is_approved
        assert staff.property_access == []
        assert staff.requested_property == acme_cafe.property_code
        assert staff.role == "employee"
        assert staff.staff_id[2:4] == "ST"

    def test_auto_approve_when_business_allows(self, services, acme, acme_cafe):
        services.businesses.update_business_settings(
            acme.business.business_id, {"require_approval_for_new_staff": False},
        )
        staff = services.staff.enroll_staff(acme_cafe.connection_code, "Nina New", "1234", requested_role="server")

        assert staff.is_approved
        assert staff.property_access == [acme_cafe.property_code]

    def test_invalid_connection_code(self, services, acme):
        with pytest.raises(ValidationError):
            services.staff.enroll_staff("not-hex", "Nina New", "1234")
        with pytest.raises(NotFoundError):
            services.staff.enroll_staff("000000", "Nina New", "1234")

    def test_pin_must_be_four_digits(self, services, acme_cafe):
        with pytest.raises(PasswordValidationError):
            services.staff.enroll_staff(acme_cafe.connection_code, "Nina New", "12a4")

    @pytest.mark.parametrize("role", ["owner", "manager", "super_admin"])
    def test_cannot_request_privileged_roles(self, services, acme_cafe, role):
        with pytest.raises(ValidationError):
            services.staff.enroll_staff(acme_cafe.connection_code, "Nina New", "1234", requested_role=role)


class TestApproval:
    @pytest.fixture
    def pending(self, services, acme_cafe):
        return services.staff.enroll_staff(acme_cafe.connection_code, "Nina New", "1234")

    def test_list_pending(self, services, acme, pending, owner_principal):
        listed = services.staff.list_pending_staff(acme.business.business_id, owner_principal)
        assert [s.staff_id for s in listed] == [pending.staff_id]

    def test_approve_grants_requested_property(self, services, acme_cafe, pending, owner_principal):
        staff = services.staff.approve_staff(pending.staff_id, owner_principal)

        assert staff.is_approved
        assert staff.approved_by == owner_principal.staff_id
        assert [p.property_code for p in services.access.get_accessible_properties(staff.staff_id)] == [
            acme_cafe.property_code
        ]

    def test_approve_with_assigned_properties(self, services, acme, pending, owner_principal):
        staff = services.staff.approve_staff(
            pending.staff_id, owner_principal, assigned_properties=[acme.main_property.property_code],
        )
        assert staff.property_access == [acme.main_property.property_code]

    def test_approve_is_idempotent(self, services, pending, owner_principal):
        first = services.staff.approve_staff(pending.staff_id, owner_principal)
        second = services.staff.approve_staff(pending.staff_id, owner_principal)
        assert second.property_access == first.property_access

    def test_staff_cannot_approve(self, services, acme, pending):
        cashier = services.staff.create_staff(acme.business.business_id, "Cara Cash", "cashier", PASSWORD)
        with pytest.raises(AccessDeniedError):
            services.staff.approve_staff(pending.staff_id, _principal(cashier))


class TestDeactivation:
    def test_deactivate_blocks_sign_in(self, services, manager, owner_principal):
        services.staff.deactivate_staff(manager.staff_id, owner_principal)

        assert not services.repo.get_staff(manager.staff_id).is_active
        assert not services.identity.find_identity(manager.staff_id).is_active

    def test_owner_cannot_be_deactivated(self, services, acme, owner_principal):
        with pytest.raises(ValidationError):
            services.staff.deactivate_staff(acme.owner.staff_id, owner_principal)

    def test_grant_and_revoke_through_service(self, services, acme, manager, owner_principal):
        main = acme.main_property.property_code
        staff = services.staff.grant_access(manager.staff_id, main, owner_principal)
        assert main in staff.property_access
        assert services.staff.revoke_access(manager.staff_id, main, owner_principal) is True


class TestAccessChanges:
    def test_manager_cannot_revoke_owner_access(self, services, acme, manager_principal):
        main = acme.main_property.property_code
        with pytest.raises(AccessDeniedError):
            services.staff.revoke_access(acme.owner.staff_id, main, manager_principal)

        assert services.access.has_property_access(acme.owner.staff_id, main)

    def test_manager_only_revokes_own_properties(self, services, acme, acme_cafe, manager_principal):
        server = services.staff.create_staff(
            acme.business.business_id, "Sam Server", "server", PASSWORD,
            property_access=[acme.main_property.property_code, acme_cafe.property_code],
        )
        with pytest.raises(AccessDeniedError):
            services.staff.revoke_access(server.staff_id, acme.main_property.property_code, manager_principal)

        assert services.staff.revoke_access(server.staff_id, acme_cafe.property_code, manager_principal) is True
        assert services.repo.get_staff(server.staff_id).property_access == [acme.main_property.property_code]

    def test_owner_keeps_main_property(self, services, acme, owner_principal):
        with pytest.raises(ValidationError):
            services.staff.revoke_access(acme.owner.staff_id, acme.main_property.property_code, owner_principal)

    def test_manager_cannot_grant_to_owner(self, services, acme, acme_cafe, manager_principal):
        with pytest.raises(AccessDeniedError):
            services.staff.grant_access(acme.owner.staff_id, acme_cafe.property_code, manager_principal)


class TestStaffUpdates:
    def test_owner_updates_contact_details(self, services, manager, owner_principal):
        staff = services.staff.update_staff(
            manager.staff_id.lower(),
            {"full_name": "Alice Martin-Lee", "email": " Alice.Lee@Acme.test ", "phone": "555-0101"},
            owner_principal,
        )
        assert (staff.first_name, staff.last_name) == ("Alice", "Martin-Lee")
        assert staff.email == "alice.lee@acme.test"
        assert staff.phone == "555-0101"
        assert staff.staff_id == manager.staff_id
        assert services.identity.find_identity(manager.staff_id).email == "alice.lee@acme.test"

    def test_role_change_keeps_id_and_ends_sessions(self, services, acme, owner_principal):
        server = services.staff.create_staff(acme.business.business_id, "Sam Server", "server", PASSWORD)
        identity = services.identity.find_identity(server.staff_id)
        token = services.identity.create_session(identity)

        staff = services.staff.update_staff(server.staff_id, {"role": "Cashier"}, owner_principal)

        assert staff.role == "cashier"
        assert staff.staff_id == server.staff_id
        assert services.repo.get_staff(server.staff_id).role == "cashier"
        assert services.identity.validate_session(token) is None

    def test_promotion_to_owner_updates_role_claim(self, services, manager, owner_principal):
        services.staff.update_staff(manager.staff_id, {"role": "owner"}, owner_principal)
        assert services.identity.find_identity(manager.staff_id).role_claim == "owner"

    def test_manager_cannot_promote_to_owner(self, services, acme, manager_principal):
        server = services.staff.create_staff(acme.business.business_id, "Sam Server", "server", PASSWORD)
        with pytest.raises(AccessDeniedError):
            services.staff.update_staff(server.staff_id, {"role": "owner"}, manager_principal)
        assert services.repo.get_staff(server.staff_id).role == "server"

    def test_nobody_hands_out_super_admin(self, services, manager, owner_principal):
        with pytest.raises(AccessDeniedError):
            services.staff.update_staff(manager.staff_id, {"role": "super_admin"}, owner_principal)
        with pytest.raises(AccessDeniedError):
            services.staff.update_staff(manager.staff_id, {"role": "super_admin"}, None)

    def test_manager_cannot_edit_owner(self, services, acme, manager_principal):
        with pytest.raises(AccessDeniedError):
            services.staff.update_staff(acme.owner.staff_id, {"phone": "555-0199"}, manager_principal)

    def test_business_owner_role_is_fixed(self, services, acme):
        with pytest.raises(ValidationError):
            services.staff.update_staff(acme.owner.staff_id, {"role": "manager"}, None)

    def test_other_business_cannot_edit(self, services, manager, beta):
        with pytest.raises(AccessDeniedError):
            services.staff.update_staff(manager.staff_id, {"phone": "555-0199"}, _principal(beta.owner, RoleKind.OWNER))

    @pytest.mark.parametrize(
        "patch",
        [{}, {"business_id": "BIZBET0000"}, {"property_access": []}, {"full_name": " "}, {"role": "wizard"}, {"email": "nope"}],
    )
    def test_invalid_patch(self, services, manager, owner_principal, patch):
        with pytest.raises(ValidationError):
            services.staff.update_staff(manager.staff_id, patch, owner_principal)
