# Overview: Service-layer business/property switcher for an authenticated session.

"""
Context Switcher

Every switch runs the same three steps, in order:
1. validate the target against a freshly fetched accessible set
2. apply and persist through the SessionManager
3. publish BusinessChanged / PropertyChanged

A failed step leaves the context untouched, publishes nothing and returns
False; `last_error` then holds a message naming the id at fault.

Switches on one session are serialized by the lock in its VolatileState, so
two rapid switches cannot complete out of order.
"""

import logging

from .. import identifiers
from ..entities import Business, Property
from ..errors import ZentryError
from ..events import BusinessChanged, PropertyChanged
from .access_service import AccessControl
from .context_service import SessionManager

logger = logging.getLogger(__name__)


class ContextSwitcher:
    def __init__(self, manager: SessionManager, access: AccessControl):
        self.manager = manager
        self.access = access
        self.last_error: str | None = None
        self.last_status: int | None = None

    def _fail(self, message: str, status: int = 400) -> bool:
        self.last_error = message
        self.last_status = status
        logger.info("Context switch refused: %s", message)
        return False

    def available_businesses(self) -> list[Business]:
        context = self.manager.context
        if not context.is_authenticated:
            return []
        return self.access.get_available_businesses(context.identity)

    def available_properties(self) -> list[Property]:
        context = self.manager.context
        if not context.is_authenticated or context.business is None:
            return []
        return self.access.get_switchable_properties(context.identity, context.business.business_id)

    def switch_business(self, business_id: str) -> bool:
        """
        Select business_id and its default property (main if accessible,
        else the first accessible one).
        """
        with self.manager.volatile.switch_lock:
            self.last_error = None
            self.last_status = None
            context = self.manager.context
            if not context.is_authenticated:
                return self._fail("Sign in to switch business", 401)

            business_id = identifiers.normalize_identifier(business_id)
            try:
                target = next(
                    (b for b in self.access.get_available_businesses(context.identity)
                     if b.business_id == business_id),
                    None,
                )
                if target is None:
                    if self.access.repo.get_business(business_id) is None:
                        return self._fail(f"Business {business_id} not found", 404)
                    return self._fail(f"You do not have access to business {business_id}", 403)

                prop = self.access.default_property(context.identity, target.business_id)
                self.manager._apply_business(target, prop)
            except ZentryError as exc:
                return self._fail(exc.message, exc.status_code)

            logger.info("Switched business to %s", target.business_id)
            self.manager.events.publish(BusinessChanged(target))
            self.manager.events.publish(PropertyChanged(prop))
            return True

    def switch_property(self, property_code: str) -> bool:
        with self.manager.volatile.switch_lock:
            self.last_error = None
            self.last_status = None
            context = self.manager.context
            if not context.is_authenticated:
                return self._fail("Sign in to switch property", 401)
            if context.business is None:
                return self._fail("Select a business before choosing a property")

            property_code = identifiers.normalize_identifier(property_code)
            try:
                target = next(
                    (p for p in self.access.get_switchable_properties(context.identity, context.business.business_id)
                     if p.property_code == property_code),
                    None,
                )
                if target is None:
                    if self.access.repo.get_property(property_code) is None:
                        return self._fail(f"Property {property_code} not found", 404)
                    return self._fail(f"You do not have access to property {property_code}", 403)

                self.manager._apply_property(target)
            except ZentryError as exc:
                return self._fail(exc.message, exc.status_code)

            logger.info("Switched property to %s", target.property_code)
            self.manager.events.publish(PropertyChanged(target))
            return True

    def connect_to_property(self, connection_code: str) -> bool:
        """
        Staff self-association: grant access to the property behind
        connection_code, then switch to it. Only properties of the signed-in
        staff member's own business can be joined this way.
        """
        with self.manager.volatile.switch_lock:
            self.last_error = None
            self.last_status = None
            context = self.manager.context
            if not context.is_authenticated or not context.identity.staff_id:
                return self._fail("Sign in as a staff member to connect to a property", 403)

            connection_code = identifiers.normalize_identifier(connection_code)
            if not identifiers.validate_connection_code(connection_code):
                return self._fail("Invalid connection code")

            try:
                prop = self.access.repo.find_property_by_connection_code(connection_code)
                if prop is None or not prop.is_active:
                    return self._fail("Invalid connection code", 404)
                self.access.grant_property_access(context.identity.staff_id, prop.property_code)
            except ZentryError as exc:
                return self._fail(exc.message, exc.status_code)

            return self.switch_property(prop.property_code)
