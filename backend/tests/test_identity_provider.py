# Overview: Pytest coverage for credentials, bearer sessions and readiness.

"""
Identity Provider Tests

SECURITY TESTS:
- secrets are stored only as bcrypt hashes, tokens only as SHA-256 hashes
- expired, idle and revoked sessions do not validate
- a super-admin session found in durable storage is rejected and revoked
- repeated failed sign-ins lock the login, even against the right PIN
"""

import threading
from datetime import timedelta

import pytest

from zentry.errors import (
    AccountLockedError,
    DependencyUnavailableError,
    DuplicateError,
    InvalidCredentialsError,
    ValidationError,
)
from zentry.events import EventBus
from zentry.models import IdentitySession, SecurityEvent
from zentry.services import login_throttle_service
from zentry.services.identity_service import (
    PasswordValidationError,
    hash_token,
    validate_password_strength,
    validate_pin,
    verify_secret,
)
from zentry.services.readiness import ReadinessGate
from zentry.time_utils import utcnow

PASSWORD = "Password123!"


@pytest.fixture
def provider(runtime):
    return runtime.identity


@pytest.fixture
def alice(provider):
    return provider.create_identity(login="AMMG0042", secret=PASSWORD, staff_id="AMMG0042", business_id="BIZACM1234")


class TestSecrets:
    @pytest.mark.parametrize(
        "password",
        ["short1!", "password123!", "PASSWORD123!", "Password!!!", "Password123"],
    )
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_strong_password(self):
        validate_password_strength(PASSWORD)

    @pytest.mark.parametrize("pin", ["", "123", "12345", "12a4", None])
    def test_invalid_pins(self, pin):
        with pytest.raises(PasswordValidationError):
            validate_pin(pin)

    def test_hash_is_not_plaintext(self, alice):
        assert alice.password_hash != PASSWORD
        assert verify_secret(PASSWORD, alice.password_hash)
        assert not verify_secret("Wrong123!", alice.password_hash)

    def test_malformed_hash_does_not_raise(self):
        assert verify_secret(PASSWORD, "not-a-hash") is False


class TestIdentities:
    def test_duplicate_login(self, provider, alice):
        with pytest.raises(DuplicateError):
            provider.create_identity(login="AMMG0042", secret=PASSWORD)

    def test_unknown_role_claim(self, provider):
        with pytest.raises(ValidationError):
            provider.create_identity(login="X1", secret=PASSWORD, role_claim="wizard")

    def test_authenticate(self, provider, alice):
        identity = provider.authenticate("AMMG0042", PASSWORD)
        assert identity.uid == alice.uid
        assert identity.last_login_at is not None

    @pytest.mark.parametrize("login,secret", [("AMMG0042", "Wrong123!"), ("NOBODY", PASSWORD), ("", PASSWORD)])
    def test_bad_credentials(self, provider, alice, login, secret):
        with pytest.raises(InvalidCredentialsError) as excinfo:
            provider.authenticate(login, secret)
        assert excinfo.value.status_code == 401

    def test_deactivated_identity(self, provider, alice):
        token = provider.create_session(alice)
        provider.set_active(alice, False)

        with pytest.raises(InvalidCredentialsError):
            provider.authenticate("AMMG0042", PASSWORD)
        assert provider.validate_session(token) is None


class TestSessions:
    def test_token_stored_hashed(self, provider, alice, db_session):
        token = provider.create_session(alice, user_agent="pytest", ip_address="127.0.0.1")

        row = db_session.query(IdentitySession).filter_by(identity_id=alice.id).one()
        assert row.token_hash == hash_token(token)
        assert row.token_hash != token
        assert provider.validate_session(token).uid == alice.uid

    def test_revoke(self, provider, alice):
        token = provider.create_session(alice)
        assert provider.revoke_session(token) is True
        assert provider.validate_session(token) is None
        assert provider.revoke_session(token) is False

    def test_expired_session(self, provider, alice, db_session):
        token = provider.create_session(alice)
        row = db_session.query(IdentitySession).filter_by(token_hash=hash_token(token)).one()
        row.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert provider.validate_session(token) is None

    def test_idle_session_is_revoked(self, provider, alice, db_session):
        token = provider.create_session(alice)
        row = db_session.query(IdentitySession).filter_by(token_hash=hash_token(token)).one()
        row.last_used_at = utcnow() - provider.idle_timeout - timedelta(minutes=1)
        db_session.commit()

        assert provider.validate_session(token) is None
        db_session.refresh(row)
        assert row.is_revoked
        assert row.revoked_reason == "Idle timeout"

    def test_super_admin_sessions_stay_in_memory(self, provider, db_session):
        root = provider.create_identity(login="root", secret=PASSWORD, role_claim="super_admin")
        token = provider.create_session(root, persist=True)

        assert db_session.query(IdentitySession).filter_by(identity_id=root.id).count() == 0
        assert provider.validate_session(token).uid == root.uid

        provider.forget_volatile_sessions()
        assert provider.validate_session(token) is None

    def test_expired_volatile_sessions_are_swept(self, provider):
        root = provider.create_identity(login="root", secret=PASSWORD, role_claim="super_admin")
        abandoned = provider.create_session(root)
        for session in provider._volatile.values():
            session.expires_at = utcnow() - timedelta(minutes=1)

        fresh = provider.create_session(root)

        assert list(provider._volatile) == [hash_token(fresh)]
        assert provider.validate_session(abandoned) is None

    def test_persisted_super_admin_session_rejected(self, provider, db_session):
        root = provider.create_identity(login="root", secret=PASSWORD, role_claim="super_admin")
        token = "a" * 64
        now = utcnow()
        row = IdentitySession(
            identity_id=root.id,
            token_hash=hash_token(token),
            created_at=now,
            last_used_at=now,
            expires_at=now + timedelta(hours=1),
            is_revoked=False,
        )
        db_session.add(row)
        db_session.commit()

        assert provider.validate_session(token) is None
        db_session.refresh(row)
        assert row.is_revoked

    def test_auth_state_callbacks(self, provider, alice):
        seen = []
        unsubscribe = provider.on_auth_state_change(seen.append)

        token = provider.create_session(alice)
        provider.revoke_session(token)
        unsubscribe()
        provider.create_session(alice)

        assert [getattr(identity, "uid", None) for identity in seen] == [alice.uid, None]


class TestReadinessGate:
    def test_wait_times_out(self):
        gate = ReadinessGate("Document store")
        with pytest.raises(DependencyUnavailableError) as excinfo:
            gate.wait(0.01)
        assert excinfo.value.status_code == 503
        assert excinfo.value.dependency == "Document store"
        assert "Document store is not available" in excinfo.value.message

    def test_mark_ready_releases_waiters(self):
        gate = ReadinessGate("Identity provider")
        released = []

        def waiter():
            gate.wait(5)
            released.append(True)

        thread = threading.Thread(target=waiter)
        thread.start()
        gate.mark_ready()
        thread.join(5)

        assert released == [True]
        assert gate.is_ready
        gate.mark_ready()
        gate.wait(0)


class TestEventBus:
    def test_delivery_order_and_unsubscribe(self):
        bus = EventBus()
        calls = []
        bus.subscribe(str, lambda e: calls.append(("first", e)))
        unsubscribe = bus.subscribe(str, lambda e: calls.append(("second", e)))

        assert bus.publish("hello") == 2
        unsubscribe()
        assert bus.publish("again") == 1
        assert calls == [("first", "hello"), ("second", "hello"), ("first", "again")]
        assert bus.subscriber_count(str) == 1

    def test_failing_subscriber_is_skipped(self):
        bus = EventBus()
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(int, broken)
        bus.subscribe(int, calls.append)

        assert bus.publish(7) == 1
        assert calls == [7]


class TestLoginThrottle:
    @pytest.fixture
    def pin_holder(self, provider):
        return provider.create_identity(login="HHHS9204", secret="4321", staff_id="HHHS9204", secret_is_pin=True)

    def _fail(self, provider, times, login="HHHS9204"):
        for _ in range(times):
            with pytest.raises(InvalidCredentialsError):
                provider.authenticate(login, "0000")

    def test_lockout_after_max_failures(self, provider, pin_holder):
        self._fail(provider, login_throttle_service.MAX_FAILED_ATTEMPTS - 1)

        with pytest.raises(AccountLockedError) as excinfo:
            provider.authenticate("HHHS9204", "0000")
        assert excinfo.value.status_code == 429
        assert excinfo.value.retry_after_seconds == 15 * 60

        with pytest.raises(AccountLockedError):
            provider.authenticate("HHHS9204", "4321")

    def test_pin_space_cannot_be_walked(self, provider, pin_holder):
        refused = 0
        for guess in range(50):
            try:
                provider.authenticate("HHHS9204", f"{guess:04d}")
            except AccountLockedError:
                refused += 1
            except InvalidCredentialsError:
                pass
        assert refused == 50 - login_throttle_service.MAX_FAILED_ATTEMPTS + 1

        with pytest.raises(AccountLockedError):
            provider.authenticate("HHHS9204", "4321")

    def test_other_logins_unaffected(self, provider, pin_holder, alice):
        self._fail(provider, login_throttle_service.MAX_FAILED_ATTEMPTS - 1)
        with pytest.raises(AccountLockedError):
            provider.authenticate("HHHS9204", "0000")

        assert provider.authenticate("AMMG0042", PASSWORD).uid == alice.uid

    def test_success_clears_failed_count(self, provider, pin_holder):
        self._fail(provider, login_throttle_service.MAX_FAILED_ATTEMPTS - 1)
        provider.authenticate("HHHS9204", "4321")

        self._fail(provider, login_throttle_service.MAX_FAILED_ATTEMPTS - 1)
        assert provider.authenticate("HHHS9204", "4321").uid == pin_holder.uid

    def test_lockout_expires(self, provider, pin_holder, db_session):
        self._fail(provider, login_throttle_service.MAX_FAILED_ATTEMPTS - 1)
        with pytest.raises(AccountLockedError):
            provider.authenticate("HHHS9204", "0000")

        past = utcnow() - login_throttle_service.LOCKOUT_DURATION - timedelta(minutes=1)
        for event in db_session.query(SecurityEvent).all():
            event.occurred_at = past
        db_session.commit()

        assert provider.authenticate("HHHS9204", "4321").uid == pin_holder.uid

    def test_unknown_login_failures_are_recorded(self, provider, db_session):
        self._fail(provider, 2, login="NOBODY")

        events = db_session.query(SecurityEvent).filter_by(login="NOBODY").all()
        assert len(events) == 2
        assert all(e.identity_id is None and not e.success for e in events)

    def test_lockout_status(self, provider, pin_holder):
        self._fail(provider, 3)

        status = login_throttle_service.get_lockout_status("HHHS9204")
        assert status["locked"] is False
        assert status["failed_attempts"] == 3
        assert status["max_attempts"] == login_throttle_service.MAX_FAILED_ATTEMPTS
