# Overview: Pytest coverage for sign-in, page-load restore and sign-out.

"""
Session/Context Manager Tests

A "reload" is simulated by building a new SessionManager over the same
client storage with a fresh VolatileState, exactly what a page load gets.

SECURITY TESTS:
- super-admin sessions never survive a reload
- a failed sign-in always lands in UNAUTHENTICATED with nothing persisted
- restore re-validates the persisted property against current access
"""

import pytest

from zentry.errors import AccessDeniedError, DependencyUnavailableError, InvalidCredentialsError
from zentry.events import AuthStateChanged
from zentry.models import IdentitySession
from zentry.roles import RoleKind
from zentry.services.context_service import (
    AUTH_TOKEN_KEY,
    CURRENT_PROPERTY_KEY,
    CURRENT_USER_KEY,
    LOGGED_IN_KEY,
    SessionContext,
    SessionState,
    VolatileState,
)
from zentry.services.readiness import ReadinessGate
from zentry.stores.keyvalue import MemoryKeyValueStore

from conftest import PASSWORD, session_manager


class FailingUserMarkerStorage(MemoryKeyValueStore):
    """Client storage that cannot write the currentUser marker."""

    def set(self, key, value):
        if key == CURRENT_USER_KEY:
            raise DependencyUnavailableError(dependency="client storage")
        super().set(key, value)


def _live_sessions(db_session, services, staff_id):
    identity = services.identity.find_identity_for_staff(staff_id)
    return db_session.query(IdentitySession).filter_by(identity_id=identity.id, is_revoked=False).count()


def _reload(services, storage, **kwargs):
    manager = session_manager(services, storage=storage, volatile=VolatileState(), **kwargs)
    return manager, manager.restore()


class TestStaffSignIn:
    def test_login_persists_markers(self, services, acme, acme_cafe, manager):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)

        context = session.login_staff(manager.staff_id.lower(), PASSWORD)

        assert context.state == SessionState.AUTHENTICATED
        assert context.role == RoleKind.STAFF
        assert context.identity.staff_id == manager.staff_id
        assert context.business.business_id == acme.business.business_id
        assert context.current_property.property_code == acme_cafe.property_code
        assert context.landing_route == "/staff-dashboard"

        assert storage.get(LOGGED_IN_KEY) == "true"
        assert storage.get(AUTH_TOKEN_KEY) == session.token
        assert storage.get_json(CURRENT_USER_KEY)["staff_id"] == manager.staff_id
        assert storage.get_json(CURRENT_PROPERTY_KEY)["property_code"] == acme_cafe.property_code
        assert services.repo.get_staff(manager.staff_id).last_login is not None

    def test_owner_login_with_business_id(self, services, acme):
        session = session_manager(services)
        context = session.login_business(acme.business.business_id.lower(), PASSWORD)

        assert context.role == RoleKind.OWNER
        assert context.identity.staff_id == acme.owner.staff_id
        assert context.current_property.property_code == acme.main_property.property_code
        assert context.landing_route == "/business-dashboard"

    def test_owner_login_with_email(self, services, acme):
        context = session_manager(services).login_business("Jane@Acme.test", PASSWORD)
        assert context.identity.business_id == acme.business.business_id

    def test_staff_cannot_use_owner_sign_in(self, services, manager):
        session = session_manager(services)
        with pytest.raises(AccessDeniedError):
            session.login_business(manager.staff_id, PASSWORD)
        assert session.state == SessionState.UNAUTHENTICATED

    def test_wrong_password(self, services, manager):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)
        with pytest.raises(InvalidCredentialsError):
            session.login_staff(manager.staff_id, "Wrong123!")

        assert session.state == SessionState.UNAUTHENTICATED
        assert storage.keys() == []

    def test_pending_staff_cannot_sign_in(self, services, acme_cafe):
        pending = services.staff.enroll_staff(acme_cafe.connection_code, "Nina New", "1234")
        session = session_manager(services)
        with pytest.raises(AccessDeniedError, match="pending approval"):
            session.login_staff(pending.staff_id, "1234")
        assert session.state == SessionState.UNAUTHENTICATED

    def test_inactive_business_cannot_sign_in(self, services, acme, manager):
        services.businesses.deactivate_business(acme.business.business_id)
        with pytest.raises(AccessDeniedError, match="inactive"):
            session_manager(services).login_staff(manager.staff_id, PASSWORD)

    def test_staff_without_access_has_no_property(self, services, acme):
        staff = services.staff.create_staff(acme.business.business_id, "Hal Host", "host", PASSWORD)
        context = session_manager(services).login_staff(staff.staff_id, PASSWORD)

        assert context.is_authenticated
        assert context.business.business_id == acme.business.business_id
        assert context.current_property is None

    def test_failed_sign_in_ends_previous_session(self, services, manager, db_session):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)
        session.login_staff(manager.staff_id, PASSWORD)
        old_token = session.token
        seen = []
        session.subscribe(AuthStateChanged, lambda event: seen.append(event.identity))

        with pytest.raises(InvalidCredentialsError):
            session.login_staff(manager.staff_id, "Wrong123!")

        assert session.state == SessionState.UNAUTHENTICATED
        assert storage.keys() == []
        assert services.identity.validate_session(old_token) is None
        assert seen == [None]
        _, context = _reload(services, storage)
        assert context.state == SessionState.UNAUTHENTICATED

    def test_partial_marker_write_is_undone(self, services, manager, db_session):
        storage = FailingUserMarkerStorage()
        session = session_manager(services, storage=storage)

        with pytest.raises(DependencyUnavailableError):
            session.login_staff(manager.staff_id, PASSWORD)

        assert session.state == SessionState.UNAUTHENTICATED
        assert storage.keys() == []
        assert _live_sessions(db_session, services, manager.staff_id) == 0

    def test_new_sign_in_revokes_previous_token(self, services, acme, manager):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)
        session.login_staff(manager.staff_id, PASSWORD)
        old_token = session.token

        session.login_business(acme.business.business_id, PASSWORD)

        assert services.identity.validate_session(old_token) is None
        assert storage.get_json(CURRENT_USER_KEY)["staff_id"] == acme.owner.staff_id

    def test_waits_for_identity_provider(self, services, manager):
        session = session_manager(services, ready=ReadinessGate("Identity provider"), wait_timeout=0.01)
        with pytest.raises(DependencyUnavailableError):
            session.login_staff(manager.staff_id, PASSWORD)
        assert session.state == SessionState.UNAUTHENTICATED


class TestSuperAdmin:
    def test_super_admin_is_never_persisted(self, services, super_admin):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)

        context = session.login_super_admin("root", PASSWORD)

        assert context.role == RoleKind.SUPER_ADMIN
        assert context.landing_route == "/super-admin-dashboard"
        assert storage.keys() == []

    def test_reload_demotes_super_admin(self, services, super_admin):
        storage = MemoryKeyValueStore()
        session_manager(services, storage=storage).login_super_admin("root", PASSWORD)

        _, context = _reload(services, storage)

        assert context.state == SessionState.UNAUTHENTICATED
        assert context.identity is None

    def test_super_admin_sign_in_ends_persisted_staff_session(self, services, manager, super_admin):
        storage = MemoryKeyValueStore()
        volatile = VolatileState()
        session = session_manager(services, storage=storage, volatile=volatile)
        session.login_staff(manager.staff_id, PASSWORD)
        staff_token = session.token

        context = session.login_super_admin("root", PASSWORD)

        assert context.role == RoleKind.SUPER_ADMIN
        assert storage.keys() == []
        assert services.identity.validate_session(staff_token) is None
        _, reloaded = _reload(services, storage)
        assert reloaded.state == SessionState.UNAUTHENTICATED

    def test_same_page_keeps_super_admin(self, services, super_admin):
        storage = MemoryKeyValueStore()
        volatile = VolatileState()
        session_manager(services, storage=storage, volatile=volatile).login_super_admin("root", PASSWORD)

        context = session_manager(services, storage=storage, volatile=volatile).restore()

        assert context.role == RoleKind.SUPER_ADMIN

    def test_super_admin_needs_its_own_sign_in(self, services):
        services.identity.create_identity(login="OPS1", secret=PASSWORD, role_claim="super_admin")
        session = session_manager(services)
        with pytest.raises(AccessDeniedError):
            session.login_staff("ops1", PASSWORD)
        assert session.state == SessionState.UNAUTHENTICATED

    def test_staff_cannot_use_super_admin_sign_in(self, services, manager):
        session = session_manager(services)
        with pytest.raises(AccessDeniedError, match="Super admin privileges required"):
            session.login_super_admin(manager.staff_id, PASSWORD)
        assert session.state == SessionState.UNAUTHENTICATED

    def test_forged_super_admin_marker_is_ignored(self, services, manager):
        storage = MemoryKeyValueStore()
        session_manager(services, storage=storage).login_staff(manager.staff_id, PASSWORD)
        forged = storage.get_json(CURRENT_USER_KEY)
        forged["kind"] = "super_admin"
        storage.set_json(CURRENT_USER_KEY, forged)

        _, context = _reload(services, storage, ready=ReadinessGate("Identity provider"), wait_timeout=0.01)

        assert context.state == SessionState.UNAUTHENTICATED


class TestRestore:
    def test_reload_restores_staff(self, services, acme, acme_cafe, manager):
        storage = MemoryKeyValueStore()
        session_manager(services, storage=storage).login_staff(manager.staff_id, PASSWORD)

        _, context = _reload(services, storage)

        assert context.state == SessionState.AUTHENTICATED
        assert context.identity.staff_id == manager.staff_id
        assert context.business.business_id == acme.business.business_id
        assert context.current_property.property_code == acme_cafe.property_code

    def test_empty_storage_is_unauthenticated(self, services):
        _, context = _reload(services, MemoryKeyValueStore())
        assert context.state == SessionState.UNAUTHENTICATED

    def test_revoked_property_is_dropped(self, services, acme_cafe, manager):
        storage = MemoryKeyValueStore()
        session_manager(services, storage=storage).login_staff(manager.staff_id, PASSWORD)
        services.access.revoke_property_access(manager.staff_id, acme_cafe.property_code)

        _, context = _reload(services, storage)

        assert context.is_authenticated
        assert context.current_property is None
        assert storage.get(CURRENT_PROPERTY_KEY) is None

    def test_stale_property_falls_back_to_default(self, services, acme, acme_cafe):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)
        session.login_business(acme.business.business_id, PASSWORD)
        storage.set_json(CURRENT_PROPERTY_KEY, acme_cafe.to_dict())
        services.businesses.deactivate_property(acme_cafe.property_code)

        _, context = _reload(services, storage)

        assert context.current_property.property_code == acme.main_property.property_code

    def test_deactivated_staff_is_signed_out(self, services, manager):
        storage = MemoryKeyValueStore()
        session_manager(services, storage=storage).login_staff(manager.staff_id, PASSWORD)
        services.staff.deactivate_staff(manager.staff_id, None)

        _, context = _reload(services, storage)

        assert context.state == SessionState.UNAUTHENTICATED
        assert storage.keys() == []

    def test_unavailable_provider_uses_cached_marker(self, services, acme, acme_cafe, manager):
        storage = MemoryKeyValueStore()
        session_manager(services, storage=storage).login_staff(manager.staff_id, PASSWORD)

        _, context = _reload(services, storage, ready=ReadinessGate("Identity provider"), wait_timeout=0.01)

        assert context.state == SessionState.AUTHENTICATED
        assert context.identity.staff_id == manager.staff_id
        assert context.current_property.property_code == acme_cafe.property_code

    def test_garbage_marker_is_unauthenticated(self, services, manager):
        storage = MemoryKeyValueStore({AUTH_TOKEN_KEY: "abc", LOGGED_IN_KEY: "true", CURRENT_USER_KEY: "{not json"})

        _, context = _reload(services, storage, ready=ReadinessGate("Identity provider"), wait_timeout=0.01)

        assert context.state == SessionState.UNAUTHENTICATED

    def test_unknown_token_clears_markers(self, services):
        storage = MemoryKeyValueStore({AUTH_TOKEN_KEY: "f" * 64, LOGGED_IN_KEY: "true"})

        _, context = _reload(services, storage)

        assert context.state == SessionState.UNAUTHENTICATED
        assert storage.keys() == []


class TestSignOut:
    def test_logout_clears_everything(self, services, manager):
        storage = MemoryKeyValueStore()
        session = session_manager(services, storage=storage)
        session.login_staff(manager.staff_id, PASSWORD)
        token = session.token

        session.logout()

        assert session.state == SessionState.UNAUTHENTICATED
        assert storage.keys() == []
        assert services.identity.validate_session(token) is None
        _, context = _reload(services, storage)
        assert context.state == SessionState.UNAUTHENTICATED

    def test_auth_events(self, services, manager):
        session = session_manager(services)
        seen = []
        session.subscribe(AuthStateChanged, lambda event: seen.append(event.identity))

        with pytest.raises(InvalidCredentialsError):
            session.login_staff(manager.staff_id, "Wrong123!")
        assert seen == []

        session.login_staff(manager.staff_id, PASSWORD)
        session.logout()

        assert len(seen) == 2
        assert seen[0].staff_id == manager.staff_id
        assert seen[1] is None

    def test_snapshots_are_immutable(self, services, manager):
        session = session_manager(services)
        session.login_staff(manager.staff_id, PASSWORD)
        before = session.context

        session.logout()

        assert before.is_authenticated
        assert not session.context.is_authenticated


class TestSessionContext:
    def test_empty_snapshot(self):
        context = SessionContext()

        assert not context.is_authenticated
        assert context.role is None
        assert context.current_property is None
        assert context.landing_route == "/dashboard"
        assert context.to_dict()["property"] is None

    def test_snapshot_payload(self, services, acme_cafe, manager):
        context = session_manager(services).login_staff(manager.staff_id, PASSWORD)
        payload = context.to_dict()

        assert payload["state"] == "authenticated"
        assert payload["property"]["property_code"] == acme_cafe.property_code
        assert payload["landing_route"] == "/staff-dashboard"
