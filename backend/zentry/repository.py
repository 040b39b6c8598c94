# Overview: Entity repository with interchangeable key-value and document backends.

"""
Repository

One interface, two implementations, picked once by PERSISTENCE_BACKEND:

- KeyValueRepository: entities live directly in a key-value store under the
  legacy key convention
      staff_<staffID>          Staff record
      business_<businessCode>  Business record
      business_id_<businessID> business code (index)
      property_<propertyCode>  Property record
      connection_<code>        property code (index)
  Identifier claims are a plain existence check. Two concurrent callers can
  both see a key as free before either writes it; that race is accepted.

- DocumentRepository: entities live in the businesses / properties / staff
  collections of a document store. Every write is mirrored into a key-value
  cache with the same shape as above. When a document read fails the cache
  answers instead (logged at WARNING, never surfaced). Identifier claims
  reserve a document in the identifiers collection with an atomic
  create-if-absent, so two callers on the same database cannot both win.

Listing methods return records in storage-iteration order. Nothing sorts.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from .entities import Business, Property, Staff
from .errors import DependencyUnavailableError, NotFoundError, ValidationError
from .stores.documents import DocumentStore
from .stores.keyvalue import KeyValueStore
from .time_utils import utcnow_z

logger = logging.getLogger(__name__)

T = TypeVar("T")

BUSINESSES = "businesses"
PROPERTIES = "properties"
STAFF = "staff"
IDENTIFIERS = "identifiers"

IDENTIFIER_KINDS = ("business_code", "business_id", "staff_id", "property_code", "connection_code")

BACKEND_DOCUMENT = "document"
BACKEND_KEYVALUE = "keyvalue"


def staff_key(staff_id: str) -> str:
    return f"staff_{staff_id}"


def business_key(business_code: str) -> str:
    return f"business_{business_code}"


def business_id_key(business_id: str) -> str:
    return f"business_id_{business_id}"


def property_key(property_code: str) -> str:
    return f"property_{property_code}"


def connection_key(connection_code: str) -> str:
    return f"connection_{connection_code}"


IDENTIFIER_KEYS = {
    "business_code": business_key,
    "business_id": business_id_key,
    "staff_id": staff_key,
    "property_code": property_key,
    "connection_code": connection_key,
}


def _check_kind(kind: str) -> None:
    if kind not in IDENTIFIER_KINDS:
        raise ValidationError(f"Unknown identifier kind: {kind}")


class Repository:
    """Storage for businesses, properties and staff. Query methods return None or [] when absent."""

    backend = ""

    def get_business(self, business_id: str) -> Business | None:
        raise NotImplementedError

    def find_business_by_code(self, business_code: str) -> Business | None:
        raise NotImplementedError

    def list_businesses(self) -> list[Business]:
        raise NotImplementedError

    def save_business(self, business: Business) -> Business:
        raise NotImplementedError

    def get_property(self, property_code: str) -> Property | None:
        raise NotImplementedError

    def find_property_by_connection_code(self, connection_code: str) -> Property | None:
        raise NotImplementedError

    def list_properties(self, business_id: str | None = None) -> list[Property]:
        raise NotImplementedError

    def save_property(self, prop: Property) -> Property:
        raise NotImplementedError

    def delete_property(self, property_code: str) -> None:
        raise NotImplementedError

    def get_staff(self, staff_id: str) -> Staff | None:
        raise NotImplementedError

    def list_staff(self, business_id: str | None = None) -> list[Staff]:
        raise NotImplementedError

    def save_staff(self, staff: Staff) -> Staff:
        raise NotImplementedError

    def claim_identifier(self, kind: str, value: str) -> bool:
        """Return True if value is free for kind (and, where supported, reserve it)."""
        raise NotImplementedError

    def identifier_in_use(self, kind: str, value: str) -> bool:
        _check_kind(kind)
        lookup = {
            "business_code": self.find_business_by_code,
            "business_id": self.get_business,
            "staff_id": self.get_staff,
            "property_code": self.get_property,
            "connection_code": self.find_property_by_connection_code,
        }[kind]
        return lookup(value) is not None


class KeyValueRepository(Repository):
    backend = BACKEND_KEYVALUE

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def _records(self, prefix: str, exclude_prefix: str | None = None) -> list[dict]:
        records = []
        for key in self.kv.keys():
            if not key.startswith(prefix):
                continue
            if exclude_prefix and key.startswith(exclude_prefix):
                continue
            data = self.kv.get_json(key)
            if isinstance(data, dict):
                records.append(data)
        return records

    # Businesses

    def get_business(self, business_id):
        business_code = self.kv.get(business_id_key(business_id))
        if not business_code:
            return None
        return self.find_business_by_code(business_code)

    def find_business_by_code(self, business_code):
        return Business.from_dict(self.kv.get_json(business_key(business_code)))

    def list_businesses(self):
        return [
            Business.from_dict(data)
            for data in self._records("business_", exclude_prefix="business_id_")
        ]

    def save_business(self, business):
        self.kv.set_json(business_key(business.business_code), business.to_dict())
        self.kv.set(business_id_key(business.business_id), business.business_code)
        return business

    # Properties

    def get_property(self, property_code):
        return Property.from_dict(self.kv.get_json(property_key(property_code)))

    def find_property_by_connection_code(self, connection_code):
        property_code = self.kv.get(connection_key(connection_code))
        if not property_code:
            return None
        return self.get_property(property_code)

    def list_properties(self, business_id=None):
        props = [Property.from_dict(data) for data in self._records("property_")]
        if business_id is not None:
            props = [p for p in props if p.business_id == business_id]
        return props

    def save_property(self, prop):
        previous = self.get_property(prop.property_code)
        if previous and previous.connection_code and previous.connection_code != prop.connection_code:
            self.kv.remove(connection_key(previous.connection_code))
        self.kv.set_json(property_key(prop.property_code), prop.to_dict())
        if prop.connection_code:
            self.kv.set(connection_key(prop.connection_code), prop.property_code)
        return prop

    def delete_property(self, property_code):
        prop = self.get_property(property_code)
        if prop is None:
            raise NotFoundError("Property not found")
        self.kv.remove(property_key(property_code))
        if prop.connection_code:
            self.kv.remove(connection_key(prop.connection_code))

    # Staff

    def get_staff(self, staff_id):
        return Staff.from_dict(self.kv.get_json(staff_key(staff_id)))

    def list_staff(self, business_id=None):
        staff = [Staff.from_dict(data) for data in self._records("staff_")]
        if business_id is not None:
            staff = [s for s in staff if s.business_id == business_id]
        return staff

    def save_staff(self, staff):
        self.kv.set_json(staff_key(staff.staff_id), staff.to_dict())
        return staff

    # Identifiers

    def identifier_in_use(self, kind, value):
        _check_kind(kind)
        return self.kv.get(IDENTIFIER_KEYS[kind](value)) is not None

    def claim_identifier(self, kind, value):
        # Check-then-write: nothing is reserved until the entity is saved
        return not self.identifier_in_use(kind, value)


class DocumentRepository(Repository):
    backend = BACKEND_DOCUMENT

    def __init__(self, documents: DocumentStore, cache: KeyValueStore):
        self.documents = documents
        self.cache = KeyValueRepository(cache)

    def _read(self, action: str, primary: Callable[[], T], fallback: Callable[[], T]) -> T:
        try:
            return primary()
        except DependencyUnavailableError as exc:
            logger.warning("Document read %s failed, serving from key-value cache: %s", action, exc)
            return fallback()

    # Businesses

    def get_business(self, business_id):
        return self._read(
            "get_business",
            lambda: Business.from_dict(self.documents.get_document(BUSINESSES, business_id)),
            lambda: self.cache.get_business(business_id),
        )

    def find_business_by_code(self, business_code):
        def primary():
            found = self.documents.query(BUSINESSES, business_code=business_code)
            return Business.from_dict(found[0]) if found else None

        return self._read(
            "find_business_by_code",
            primary,
            lambda: self.cache.find_business_by_code(business_code),
        )

    def list_businesses(self):
        return self._read(
            "list_businesses",
            lambda: [Business.from_dict(d) for d in self.documents.query(BUSINESSES)],
            self.cache.list_businesses,
        )

    def save_business(self, business):
        self.documents.set_document(BUSINESSES, business.business_id, business.to_dict())
        self.cache.save_business(business)
        return business

    # Properties

    def get_property(self, property_code):
        return self._read(
            "get_property",
            lambda: Property.from_dict(self.documents.get_document(PROPERTIES, property_code)),
            lambda: self.cache.get_property(property_code),
        )

    def find_property_by_connection_code(self, connection_code):
        def primary():
            found = self.documents.query(PROPERTIES, connection_code=connection_code)
            return Property.from_dict(found[0]) if found else None

        return self._read(
            "find_property_by_connection_code",
            primary,
            lambda: self.cache.find_property_by_connection_code(connection_code),
        )

    def list_properties(self, business_id=None):
        def primary():
            if business_id is None:
                found = self.documents.query(PROPERTIES)
            else:
                found = self.documents.query(PROPERTIES, business_id=business_id)
            return [Property.from_dict(d) for d in found]

        return self._read(
            "list_properties",
            primary,
            lambda: self.cache.list_properties(business_id),
        )

    def save_property(self, prop):
        self.documents.set_document(PROPERTIES, prop.property_code, prop.to_dict())
        self.cache.save_property(prop)
        return prop

    def delete_property(self, property_code):
        self.documents.delete_document(PROPERTIES, property_code)
        if self.cache.get_property(property_code) is not None:
            self.cache.delete_property(property_code)

    # Staff

    def get_staff(self, staff_id):
        return self._read(
            "get_staff",
            lambda: Staff.from_dict(self.documents.get_document(STAFF, staff_id)),
            lambda: self.cache.get_staff(staff_id),
        )

    def list_staff(self, business_id=None):
        def primary():
            if business_id is None:
                found = self.documents.query(STAFF)
            else:
                found = self.documents.query(STAFF, business_id=business_id)
            return [Staff.from_dict(d) for d in found]

        return self._read(
            "list_staff",
            primary,
            lambda: self.cache.list_staff(business_id),
        )

    def save_staff(self, staff):
        self.documents.set_document(STAFF, staff.staff_id, staff.to_dict())
        self.cache.save_staff(staff)
        return staff

    # Identifiers

    def claim_identifier(self, kind, value):
        if self.identifier_in_use(kind, value):
            return False
        return self.documents.create_if_absent(
            IDENTIFIERS,
            f"{kind}:{value}",
            {"kind": kind, "value": value, "claimed_at": utcnow_z()},
        )


def build_repository(
    backend: str,
    kv: KeyValueStore,
    documents: DocumentStore | None = None,
) -> Repository:
    """Pick the repository implementation for a PERSISTENCE_BACKEND value."""
    backend = (backend or "").strip().lower()
    if backend == BACKEND_KEYVALUE:
        return KeyValueRepository(kv)
    if backend == BACKEND_DOCUMENT:
        if documents is None:
            raise ValidationError("Document backend requires a document store")
        return DocumentRepository(documents, kv)
    raise ValidationError(f"Unknown persistence backend: {backend!r}")
