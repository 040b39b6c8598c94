# Overview: Service-layer session and context manager: sign-in, page-load restore, sign-out.

"""
Session/Context Manager

WHY: The application is reload-driven. Every page load must rebuild "who is
signed in, in which business, at which property" from what survived the
reload, without asking for credentials again. This manager is the single
owner of that state; everything else gets read-only snapshots (`context`)
and change subscriptions (`subscribe`).

STATES:
    UNAUTHENTICATED -> AUTHENTICATING -> AUTHENTICATED -> UNAUTHENTICATED

Reaching AUTHENTICATED needs all of:
- the identity provider accepts the credential
- a role-compatible profile exists (approved, active staff record of an
  active business; the owner record for business logins)
- for super admins, a super_admin role claim

PERSISTENCE:
Staff and owner sessions write these markers to the client's key-value
storage, which survives reloads:
    authToken, isLoggedIn, currentUser, currentBusiness, currentProperty

SECURITY: Super-admin state is never written to storage. It lives in the
client's VolatileState (process memory), so a fresh page load with empty
volatile state comes back UNAUTHENTICATED and the super admin signs in again.

Every sign-in attempt first ends the session the client already holds: its
token is revoked and its markers cleared. A failed attempt also revokes any
token it minted, so nothing is left for a reload to bring back.

Two tabs sharing one storage namespace overwrite each other's markers; the
last write wins.
"""

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable

from ..entities import Business, Principal, Property, Staff
from ..errors import (
    AccessDeniedError,
    DependencyUnavailableError,
    InvalidCredentialsError,
    ZentryError,
)
from ..events import AuthStateChanged, EventBus
from .. import identifiers
from ..models import Identity
from ..repository import Repository
from ..roles import RoleKind, classify_role, landing_route_for
from ..stores.keyvalue import KeyValueStore
from zentry.time_utils import to_utc_z, utcnow, utcnow_z
from .access_service import AccessControl
from .identity_service import IdentityProvider
from .readiness import ReadinessGate

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "authToken"
LOGGED_IN_KEY = "isLoggedIn"
CURRENT_USER_KEY = "currentUser"
CURRENT_BUSINESS_KEY = "currentBusiness"
CURRENT_PROPERTY_KEY = "currentProperty"

SESSION_MARKER_KEYS = (
    AUTH_TOKEN_KEY,
    LOGGED_IN_KEY,
    CURRENT_USER_KEY,
    CURRENT_BUSINESS_KEY,
    CURRENT_PROPERTY_KEY,
)

DEFAULT_WAIT_TIMEOUT = 10.0


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class SessionContext:
    """
    Immutable snapshot of a session.

    A new snapshot replaces the old one on every change; holders of an old
    snapshot never see it mutate.
    """
    state: SessionState = SessionState.UNAUTHENTICATED
    identity: Principal | None = None
    business: Business | None = None
    current_property: Property | None = None
    resolved_at: datetime | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.identity is not None

    @property
    def role(self) -> RoleKind | None:
        return self.identity.kind if self.identity else None

    @property
    def landing_route(self) -> str:
        return landing_route_for(self.role)

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "identity": self.identity.to_dict() if self.identity else None,
            "business": self.business.to_dict() if self.business else None,
            "property": self.current_property.to_dict() if self.current_property else None,
            "resolved_at": to_utc_z(self.resolved_at),
            "landing_route": self.landing_route,
        }


@dataclass
class VolatileState:
    """
    In-process memory for one client session. Gone on reload.

    Holds the super-admin principal (never persisted), that session's
    selected business/property, and the lock serializing context switches.
    """
    principal: Principal | None = None
    token: str | None = None
    business_id: str | None = None
    property_code: str | None = None
    switch_lock: threading.RLock = field(default_factory=threading.RLock)

    def clear(self) -> None:
        self.principal = None
        self.token = None
        self.business_id = None
        self.property_code = None


class SessionManager:
    def __init__(
        self,
        storage: KeyValueStore,
        identity_provider: IdentityProvider,
        repo: Repository,
        access: AccessControl,
        events: EventBus | None = None,
        volatile: VolatileState | None = None,
        ready: ReadinessGate | None = None,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
    ):
        self.storage = storage
        self.provider = identity_provider
        self.repo = repo
        self.access = access
        self.events = events or EventBus()
        self.volatile = volatile if volatile is not None else VolatileState()
        self.ready = ready or identity_provider.ready
        self.wait_timeout = wait_timeout
        self._context = SessionContext()

    # Read-only views

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def state(self) -> SessionState:
        return self._context.state

    @property
    def token(self) -> str | None:
        if self.volatile.token:
            return self.volatile.token
        return self.storage.get(AUTH_TOKEN_KEY)

    def subscribe(self, event_type: type, callback: Callable) -> Callable[[], None]:
        return self.events.subscribe(event_type, callback)

    # Sign-in

    def login_staff(self, staff_id: str, secret: str, user_agent: str | None = None, ip_address: str | None = None) -> SessionContext:
        """
        Staff sign-in with staff ID and password (or PIN).

        Raises InvalidCredentialsError or AccessDeniedError; the state is
        back to UNAUTHENTICATED when it does.
        """
        staff_id = identifiers.normalize_identifier(staff_id)

        def resolve(identity: Identity) -> tuple[Principal, Staff, Business]:
            if identity.role_claim == RoleKind.SUPER_ADMIN.value:
                raise AccessDeniedError("Super admins must use the super admin sign-in")
            staff, business = self._require_profile(identity.staff_id or staff_id)
            kind = classify_role(staff.role) or RoleKind.STAFF
            return self._principal(identity, kind, staff), staff, business

        return self._login(staff_id, secret, resolve, user_agent, ip_address)

    def login_business(self, login: str, password: str, user_agent: str | None = None, ip_address: str | None = None) -> SessionContext:
        """Owner sign-in with business ID (or company email) and password."""
        login = (login or "").strip()
        if "@" not in login:
            login = identifiers.normalize_identifier(login)

        def resolve(identity: Identity) -> tuple[Principal, Staff, Business]:
            if identity.role_claim != RoleKind.OWNER.value:
                raise AccessDeniedError("This sign-in is for business owners")
            business = self.repo.get_business(identity.business_id) if identity.business_id else None
            if business is None:
                raise AccessDeniedError("Business account not found")
            staff, business = self._require_profile(identity.staff_id or business.owner_staff_id)
            if classify_role(staff.role) != RoleKind.OWNER:
                raise AccessDeniedError("Business owner profile not found")
            return self._principal(identity, RoleKind.OWNER, staff), staff, business

        return self._login(login, password, resolve, user_agent, ip_address)

    def login_super_admin(self, username: str, password: str, user_agent: str | None = None, ip_address: str | None = None) -> SessionContext:
        """
        Super-admin sign-in. Requires the super_admin role claim.

        Nothing is written to storage; the session lives in volatile state.
        A staff or owner session persisted by this client is revoked and its
        markers removed first.
        """
        was_signed_in = self._context.is_authenticated
        self._transition(SessionState.AUTHENTICATING)
        token = None
        try:
            self.ready.wait(self.wait_timeout)
            identity = self.provider.authenticate((username or "").strip(), password, ip_address=ip_address, user_agent=user_agent)
            if identity.role_claim != RoleKind.SUPER_ADMIN.value:
                raise AccessDeniedError("Super admin privileges required")

            self._discard_session()
            token = self.provider.create_session(identity, persist=False)
            principal = Principal(
                kind=RoleKind.SUPER_ADMIN,
                uid=identity.uid,
                role=RoleKind.SUPER_ADMIN.value,
                display_name=identity.login,
                last_login=to_utc_z(identity.last_login_at),
            )
            self.volatile.principal = principal
            self.volatile.token = token
        except Exception:
            self._fail_sign_in(token, was_signed_in)
            raise

        self._context = SessionContext(
            state=SessionState.AUTHENTICATED,
            identity=principal,
            resolved_at=utcnow(),
        )
        logger.info("Super admin %s signed in", identity.login)
        self.events.publish(AuthStateChanged(principal))
        return self._context

    def _login(self, login, secret, resolve, user_agent, ip_address) -> SessionContext:
        was_signed_in = self._context.is_authenticated
        self._transition(SessionState.AUTHENTICATING)
        token = None
        try:
            self.ready.wait(self.wait_timeout)
            identity = self.provider.authenticate(login, secret, ip_address=ip_address, user_agent=user_agent)
            principal, staff, business = resolve(identity)

            staff.last_login = utcnow_z()
            self.repo.save_staff(staff)
            principal = replace(principal, last_login=staff.last_login)

            prop = self.access.default_property(principal, business.business_id)

            self._discard_session()
            token = self.provider.create_session(identity, persist=True, user_agent=user_agent, ip_address=ip_address)
            self.storage.set(AUTH_TOKEN_KEY, token)
            self.storage.set(LOGGED_IN_KEY, "true")
            self.storage.set_json(CURRENT_USER_KEY, principal.to_dict())
            self._write_context_markers(business, prop)
        except Exception:
            self._fail_sign_in(token, was_signed_in)
            raise

        self._context = SessionContext(
            state=SessionState.AUTHENTICATED,
            identity=principal,
            business=business,
            current_property=prop,
            resolved_at=utcnow(),
        )
        logger.info("%s %s signed in to %s", principal.kind.value, principal.staff_id, business.business_id)
        self.events.publish(AuthStateChanged(principal))
        return self._context

    def _require_profile(self, staff_id: str | None) -> tuple[Staff, Business]:
        staff = self.repo.get_staff(staff_id) if staff_id else None
        if staff is None:
            raise InvalidCredentialsError("Staff ID not found")
        if not staff.is_approved:
            raise AccessDeniedError("Your account is pending approval")
        if not staff.is_active:
            raise AccessDeniedError("Your account has been deactivated")
        business = self.repo.get_business(staff.business_id)
        if business is None:
            raise AccessDeniedError("Business account not found")
        if not business.is_active:
            raise AccessDeniedError("Business account is inactive")
        return staff, business

    @staticmethod
    def _principal(identity: Identity, kind: RoleKind, staff: Staff) -> Principal:
        return Principal(
            kind=kind,
            uid=identity.uid,
            role=staff.role,
            display_name=staff.full_name,
            staff_id=staff.staff_id,
            business_id=staff.business_id,
            last_login=staff.last_login,
        )

    # Page load

    def restore(self) -> SessionContext:
        """
        Rebuild the session after a page load. Never raises: any failure
        lands in UNAUTHENTICATED.

        Order:
        1. a super admin held in volatile state
        2. the persisted authToken, validated by the identity provider
        3. if the provider is unavailable, the cached currentUser marker
        4. otherwise UNAUTHENTICATED, stale markers cleared
        """
        try:
            if self.volatile.principal is not None:
                return self._restore_super_admin()
            return self._restore_persisted()
        except Exception:
            logger.exception("Session restore failed, continuing unauthenticated")
            self._reset_quietly()
            return self._context

    def _restore_super_admin(self) -> SessionContext:
        principal = self.volatile.principal
        try:
            self.ready.wait(self.wait_timeout)
            still_valid = self.provider.validate_session(self.volatile.token) is not None
        except DependencyUnavailableError:
            # Same process as the sign-in, so the in-memory principal still stands
            logger.warning("Identity provider unavailable, keeping in-memory super-admin session")
            still_valid = True
        if not still_valid:
            self.volatile.clear()
            self._context = SessionContext(resolved_at=utcnow())
            return self._context

        business = None
        prop = None
        if self.volatile.business_id:
            business = next(
                (b for b in self.access.get_available_businesses(principal)
                 if b.business_id == self.volatile.business_id),
                None,
            )
        if business is not None:
            prop = self._pick_property(principal, business, self.volatile.property_code)
        self.volatile.business_id = business.business_id if business else None
        self.volatile.property_code = prop.property_code if prop else None

        self._context = SessionContext(
            state=SessionState.AUTHENTICATED,
            identity=principal,
            business=business,
            current_property=prop,
            resolved_at=utcnow(),
        )
        return self._context

    def _restore_persisted(self) -> SessionContext:
        token = self.storage.get(AUTH_TOKEN_KEY)
        if not token:
            self._clear_markers()
            self._context = SessionContext(resolved_at=utcnow())
            return self._context

        try:
            self.ready.wait(self.wait_timeout)
            identity = self.provider.validate_session(token)
        except DependencyUnavailableError:
            return self._restore_from_cached_marker()

        if identity is None:
            logger.info("Stored session token is no longer valid")
            self._clear_markers()
            self._context = SessionContext(resolved_at=utcnow())
            return self._context

        if identity.role_claim == RoleKind.SUPER_ADMIN.value:
            self._clear_markers()
            self._context = SessionContext(resolved_at=utcnow())
            return self._context

        try:
            staff, business = self._require_profile(identity.staff_id)
        except ZentryError as exc:
            logger.info("Session profile no longer usable: %s", exc.message)
            self.provider.revoke_session(token, reason=exc.message)
            self._clear_markers()
            self._context = SessionContext(resolved_at=utcnow())
            return self._context

        kind = RoleKind.OWNER if identity.role_claim == RoleKind.OWNER.value else (classify_role(staff.role) or RoleKind.STAFF)
        principal = self._principal(identity, kind, staff)
        return self._restore_context(principal)

    def _restore_from_cached_marker(self) -> SessionContext:
        cached = self.storage.get_json(CURRENT_USER_KEY)
        principal = Principal.from_dict(cached) if isinstance(cached, dict) else None
        if principal is None or principal.is_super_admin or self.storage.get(LOGGED_IN_KEY) != "true":
            logger.warning("Identity provider unavailable and no cached session marker")
            self._context = SessionContext(resolved_at=utcnow())
            return self._context

        logger.warning("Identity provider unavailable, restoring %s from cached session marker", principal.staff_id)
        return self._restore_context(principal)

    def _restore_context(self, principal: Principal) -> SessionContext:
        """Re-validate the persisted business/property against current access."""
        business = None
        if principal.business_id:
            business = self.repo.get_business(principal.business_id)
            if business is not None and not business.is_active:
                business = None

        stored_property = self.storage.get_json(CURRENT_PROPERTY_KEY)
        stored_code = stored_property.get("property_code") if isinstance(stored_property, dict) else None
        prop = self._pick_property(principal, business, stored_code) if business else None

        self._write_context_markers(business, prop)
        self._context = SessionContext(
            state=SessionState.AUTHENTICATED,
            identity=principal,
            business=business,
            current_property=prop,
            resolved_at=utcnow(),
        )
        return self._context

    def _pick_property(self, principal: Principal, business: Business, preferred_code: str | None) -> Property | None:
        if preferred_code:
            for prop in self.access.get_switchable_properties(principal, business.business_id):
                if prop.property_code == preferred_code:
                    return prop
        return self.access.default_property(principal, business.business_id)

    # Sign-out

    def logout(self) -> None:
        """Revoke the session, clear markers and volatile state. Never raises for a dead provider."""
        token = self.token
        try:
            self.provider.revoke_session(token)
        except DependencyUnavailableError:
            logger.warning("Identity provider unavailable during sign-out; clearing local session only")

        self._clear_markers()
        self.volatile.clear()
        self._context = SessionContext(resolved_at=utcnow())
        self.events.publish(AuthStateChanged(None))

    # Context mutation (used by the switcher only)

    def _apply_business(self, business: Business, prop: Property | None) -> SessionContext:
        """Select business and its property. Selecting a business always replaces the property."""
        return self._apply_context(business, prop)

    def _apply_property(self, prop: Property) -> SessionContext:
        return self._apply_context(self._context.business, prop)

    def _apply_context(self, business: Business | None, prop: Property | None) -> SessionContext:
        """
        Persist first, then swap the snapshot. If persisting fails the
        previous markers are written back and the snapshot is left as it was.
        """
        previous = self._context
        principal = previous.identity
        if principal is not None and principal.is_super_admin:
            self.volatile.business_id = business.business_id if business else None
            self.volatile.property_code = prop.property_code if prop else None
        else:
            try:
                self._write_context_markers(business, prop)
            except ZentryError:
                self._rollback_markers(previous)
                raise

        self._context = replace(previous, business=business, current_property=prop, resolved_at=utcnow())
        return self._context

    # Storage helpers

    def _write_context_markers(self, business: Business | None, prop: Property | None) -> None:
        if business is None:
            self.storage.remove(CURRENT_BUSINESS_KEY)
        else:
            self.storage.set_json(CURRENT_BUSINESS_KEY, business.to_dict())
        if prop is None:
            self.storage.remove(CURRENT_PROPERTY_KEY)
        else:
            self.storage.set_json(CURRENT_PROPERTY_KEY, prop.to_dict())

    def _rollback_markers(self, previous: SessionContext) -> None:
        try:
            self._write_context_markers(previous.business, previous.current_property)
        except ZentryError as exc:
            logger.error("Could not restore previous context markers: %s", exc.message)

    def _clear_markers(self) -> None:
        for key in SESSION_MARKER_KEYS:
            self.storage.remove(key)

    def _discard_session(self) -> None:
        """End whatever session this client holds: markers, volatile state and tokens."""
        tokens = [self.volatile.token, self.storage.get(AUTH_TOKEN_KEY)]
        self.volatile.clear()
        self._clear_markers()
        for token in tokens:
            if token:
                self.provider.revoke_session(token, reason="Session replaced")

    def _fail_sign_in(self, token: str | None, was_signed_in: bool) -> None:
        if token:
            try:
                self.provider.revoke_session(token, reason="Sign-in failed")
            except ZentryError as exc:
                logger.warning("Could not revoke session of failed sign-in: %s", exc.message)
        self._reset_quietly()
        if was_signed_in:
            self.events.publish(AuthStateChanged(None))

    def _reset_quietly(self) -> None:
        try:
            self._discard_session()
        except ZentryError as exc:
            logger.warning("Could not clear session state: %s", exc.message)
        self.volatile.clear()
        self._context = SessionContext(resolved_at=utcnow())

    def _transition(self, state: SessionState) -> None:
        self._context = replace(self._context, state=state, resolved_at=utcnow())

    def stored_markers(self) -> dict:
        """Decoded session markers, for inspection and diagnostics."""
        markers = {}
        for key in SESSION_MARKER_KEYS:
            raw = self.storage.get(key)
            if raw is None:
                continue
            try:
                markers[key] = json.loads(raw)
            except ValueError:
                markers[key] = raw
        return markers
