# Overview: Service-layer identity provider: credentials, bearer sessions and auth-state callbacks.

"""
Identity Provider

WHY: Authentication is delegated to one collaborator with a small contract:
authenticate a credential, mint and validate session tokens, and tell
listeners when someone signs in or out. Tenant records never hold secrets.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Owner and super-admin passwords must pass validate_password_strength
- Self-enrolled staff sign in with a 4-digit PIN (validate_pin)
- Session tokens: 32 random bytes, stored only as SHA-256 hashes
- 24-hour absolute and 2-hour idle timeout on persisted sessions
- Sign-in throttling per login (login_throttle_service): 10 failures in
  15 minutes lock the login for 15 minutes
- Super-admin sessions are held in process memory only. A persisted session
  whose identity carries the super_admin claim is rejected and revoked.
"""

import hashlib
import logging
import re
import secrets
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    AccountLockedError,
    DependencyUnavailableError,
    DuplicateError,
    InvalidCredentialsError,
    ValidationError,
)
from ..events import AuthStateChanged, EventBus
from ..extensions import db
from ..models import Identity, IdentitySession
from ..roles import RoleKind
from zentry.time_utils import utcnow
from . import login_throttle_service
from .readiness import ReadinessGate

logger = logging.getLogger(__name__)

SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)

ROLE_CLAIMS = (RoleKind.STAFF.value, RoleKind.OWNER.value, RoleKind.SUPER_ADMIN.value)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def validate_pin(pin: str) -> None:
    """PINs are exactly 4 digits."""
    if not pin or not re.fullmatch(r"\d{4}", pin):
        raise PasswordValidationError("PIN must be exactly 4 digits")


def hash_secret(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(secret.encode('utf-8'), salt).decode('utf-8')


def verify_secret(secret: str, secret_hash: str) -> bool:
    """
    Verify a password or PIN against its bcrypt hash.

    Returns False for malformed hashes instead of raising.
    """
    try:
        return bcrypt.checkpw(secret.encode('utf-8'), secret_hash.encode('utf-8'))
    except (ValueError, TypeError):
        return False


def generate_token() -> str:
    """64-character hex token (32 bytes of entropy). Sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


@dataclass
class VolatileSession:
    identity_id: int
    created_at: datetime
    expires_at: datetime


class IdentityProvider:
    def __init__(
        self,
        absolute_timeout: timedelta = SESSION_ABSOLUTE_TIMEOUT,
        idle_timeout: timedelta = SESSION_IDLE_TIMEOUT,
        ready: ReadinessGate | None = None,
    ):
        self.absolute_timeout = absolute_timeout
        self.idle_timeout = idle_timeout
        self.ready = ready or ReadinessGate("Identity provider")
        self.events = EventBus()
        self._volatile: dict[str, VolatileSession] = {}
        self._volatile_lock = threading.Lock()

    # Identities

    def create_identity(
        self,
        login: str,
        secret: str,
        role_claim: str = RoleKind.STAFF.value,
        email: str | None = None,
        staff_id: str | None = None,
        business_id: str | None = None,
        secret_is_pin: bool = False,
    ) -> Identity:
        """
        Register a credential. The secret is validated (password policy or
        PIN policy) before hashing.

        Raises DuplicateError if login is already registered.
        """
        if role_claim not in ROLE_CLAIMS:
            raise ValidationError(f"Unknown role claim: {role_claim}")
        if secret_is_pin:
            validate_pin(secret)
        else:
            validate_password_strength(secret)

        identity = Identity(
            uid=str(uuid.uuid4()),
            login=login,
            email=email.strip().lower() if email else None,
            password_hash=hash_secret(secret),
            role_claim=role_claim,
            staff_id=staff_id,
            business_id=business_id,
            is_active=True,
        )
        try:
            db.session.add(identity)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateError(f"Login {login} is already registered")
        except SQLAlchemyError as exc:
            self._fail("create identity", exc)
        return identity

    def find_identity(self, login: str) -> Identity | None:
        try:
            identity = db.session.query(Identity).filter_by(login=login).first()
            if identity is None and login and "@" in login:
                identity = db.session.query(Identity).filter_by(
                    email=login.strip().lower(),
                    role_claim=RoleKind.OWNER.value,
                ).order_by(Identity.id).first()
        except SQLAlchemyError as exc:
            self._fail("lookup", exc)
        return identity

    def find_identity_for_staff(self, staff_id: str) -> Identity | None:
        try:
            return db.session.query(Identity).filter_by(staff_id=staff_id).order_by(Identity.id).first()
        except SQLAlchemyError as exc:
            self._fail("lookup", exc)

    def set_active(self, identity: Identity, is_active: bool) -> None:
        identity.is_active = is_active
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("update identity", exc)
        if not is_active:
            self.revoke_all_sessions(identity, reason="Identity deactivated")

    def update_identity(self, identity: Identity, role_claim: str | None = None, email: str | None = None) -> Identity:
        """Change the role claim or contact email. A new role claim ends every open session."""
        if role_claim is not None and role_claim not in ROLE_CLAIMS:
            raise ValidationError(f"Unknown role claim: {role_claim}")
        claim_changed = role_claim is not None and role_claim != identity.role_claim
        if claim_changed:
            identity.role_claim = role_claim
        if email is not None:
            identity.email = email.strip().lower() or None
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("update identity", exc)
        if claim_changed:
            self.revoke_all_sessions(identity, reason="Role changed")
        return identity

    def authenticate(
        self,
        login: str,
        secret: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Identity:
        """
        Verify a credential.

        Raises InvalidCredentialsError for unknown login, wrong secret or a
        deactivated identity (same message for all three), and
        AccountLockedError once the login has failed too often.
        """
        if not login or not secret:
            raise InvalidCredentialsError()

        identifier = login_throttle_service.normalize_login(login)
        try:
            is_locked, seconds_remaining = login_throttle_service.is_account_locked(identifier)
        except SQLAlchemyError as exc:
            self._fail("lockout check", exc)
        if is_locked:
            logger.warning("Refused sign-in for locked login %s", identifier)
            raise AccountLockedError(retry_after_seconds=seconds_remaining)

        identity = self.find_identity(login)
        if identity is None or not identity.is_active or not verify_secret(secret, identity.password_hash):
            self._record_failure(identifier, identity, ip_address, user_agent)
            raise InvalidCredentialsError()

        identity.last_login_at = utcnow()
        try:
            db.session.commit()
            login_throttle_service.record_successful_login(identity.id, identifier, ip_address, user_agent)
        except SQLAlchemyError as exc:
            self._fail("authenticate", exc)
        return identity

    def _record_failure(self, identifier, identity, ip_address, user_agent) -> None:
        try:
            failed_count = login_throttle_service.record_failed_attempt(
                identifier,
                identity_id=identity.id if identity else None,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except SQLAlchemyError as exc:
            self._fail("record failed sign-in", exc)
        if failed_count >= login_throttle_service.MAX_FAILED_ATTEMPTS:
            logger.warning("Login %s locked after %d failed attempts", identifier, failed_count)
            raise AccountLockedError(
                "Account locked due to too many failed login attempts",
                retry_after_seconds=int(login_throttle_service.LOCKOUT_DURATION.total_seconds()),
            )

    # Sessions

    def create_session(
        self,
        identity: Identity,
        persist: bool = True,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> str:
        """
        Start a session for identity and return the plaintext token.

        Super-admin sessions are always kept in memory, whatever persist says.
        Fires the auth-state callbacks with the identity.
        """
        token = generate_token()
        token_hash = hash_token(token)
        now = utcnow()
        expires_at = now + self.absolute_timeout

        if not persist or identity.role_claim == RoleKind.SUPER_ADMIN.value:
            with self._volatile_lock:
                expired = [h for h, s in self._volatile.items() if s.expires_at < now]
                for stale_hash in expired:
                    del self._volatile[stale_hash]
                self._volatile[token_hash] = VolatileSession(identity.id, now, expires_at)
        else:
            session = IdentitySession(
                identity_id=identity.id,
                token_hash=token_hash,
                created_at=now,
                last_used_at=now,
                expires_at=expires_at,
                user_agent=user_agent,
                ip_address=ip_address,
                is_revoked=False,
            )
            try:
                db.session.add(session)
                db.session.commit()
            except SQLAlchemyError as exc:
                self._fail("create session", exc)

        self.events.publish(AuthStateChanged(identity))
        return token

    def validate_session(self, token: str) -> Identity | None:
        """
        Return the identity behind token, or None if the token is unknown,
        expired, idle, revoked or belongs to a deactivated identity.
        """
        if not token:
            return None
        token_hash = hash_token(token)
        now = utcnow()

        with self._volatile_lock:
            volatile = self._volatile.get(token_hash)
            if volatile is not None and volatile.expires_at < now:
                del self._volatile[token_hash]
                volatile = None
        if volatile is not None:
            identity = self._get_identity(volatile.identity_id)
            if identity is None or not identity.is_active:
                return None
            return identity

        try:
            session = db.session.query(IdentitySession).filter_by(
                token_hash=token_hash,
                is_revoked=False,
            ).first()
            if session is None:
                return None

            if session.expires_at < now:
                return None

            if now - session.last_used_at > self.idle_timeout:
                self._revoke(session, "Idle timeout")
                return None

            identity = session.identity
            if identity is None or not identity.is_active:
                self._revoke(session, "Identity deactivated")
                return None

            # SECURITY: elevated sessions must never come back from durable storage
            if identity.role_claim == RoleKind.SUPER_ADMIN.value:
                logger.warning("Rejected persisted super-admin session for %s", identity.uid)
                self._revoke(session, "Super-admin session persisted")
                return None

            session.last_used_at = now
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("validate session", exc)
        return identity

    def revoke_session(self, token: str | None, reason: str = "Sign out") -> bool:
        """
        End the session behind token. Fires the auth-state callbacks with None.

        Returns True if a live session was revoked.
        """
        revoked = False
        if token:
            token_hash = hash_token(token)
            with self._volatile_lock:
                revoked = self._volatile.pop(token_hash, None) is not None
            if not revoked:
                try:
                    session = db.session.query(IdentitySession).filter_by(
                        token_hash=token_hash,
                        is_revoked=False,
                    ).first()
                    if session is not None:
                        self._revoke(session, reason)
                        revoked = True
                except SQLAlchemyError as exc:
                    self._fail("revoke session", exc)

        self.events.publish(AuthStateChanged(None))
        return revoked

    def revoke_all_sessions(self, identity: Identity, reason: str = "Revoke all sessions") -> int:
        now = utcnow()
        with self._volatile_lock:
            stale = [h for h, s in self._volatile.items() if s.identity_id == identity.id]
            for token_hash in stale:
                del self._volatile[token_hash]

        try:
            sessions = db.session.query(IdentitySession).filter_by(
                identity_id=identity.id,
                is_revoked=False,
            ).all()
            for session in sessions:
                session.is_revoked = True
                session.revoked_at = now
                session.revoked_reason = reason
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("revoke sessions", exc)
        return len(stale) + len(sessions)

    def on_auth_state_change(self, callback: Callable) -> Callable[[], None]:
        """callback(identity) on sign-in, callback(None) on sign-out. Returns an unsubscribe function."""
        def deliver(event: AuthStateChanged):
            callback(event.identity)

        return self.events.subscribe(AuthStateChanged, deliver)

    def forget_volatile_sessions(self) -> None:
        """Drop every in-memory session, as a process restart would."""
        with self._volatile_lock:
            self._volatile.clear()

    def _get_identity(self, identity_id: int) -> Identity | None:
        try:
            return db.session.get(Identity, identity_id)
        except SQLAlchemyError as exc:
            self._fail("lookup", exc)

    def _revoke(self, session: IdentitySession, reason: str) -> None:
        session.is_revoked = True
        session.revoked_at = utcnow()
        session.revoked_reason = reason
        db.session.commit()

    def _fail(self, action: str, exc: Exception):
        db.session.rollback()
        logger.warning("Identity provider %s failed: %s", action, exc)
        raise DependencyUnavailableError(dependency="identity provider") from exc
