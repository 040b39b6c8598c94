# Overview: Document store contract and its SQL and in-memory implementations.

"""
Document Store

Collections of JSON documents addressed by string ids:
- get_document(collection, id) -> dict | None
- query(collection, predicate=None, **equals) -> list[dict], insertion order
- create_document(collection, data, doc_id=None) -> id
- create_if_absent(collection, id, data) -> bool (atomic)
- set_document(collection, id, data) (whole-document upsert)
- update_document(collection, id, patch) (shallow merge)
- delete_document(collection, id)

Returned dicts are copies; mutating them never changes stored state.

Errors:
- update/delete of an absent id -> NotFoundError
- any database failure -> DependencyUnavailableError (driver text is logged,
  never surfaced)
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import DependencyUnavailableError, DuplicateError, NotFoundError
from ..extensions import db
from ..models import Document

logger = logging.getLogger(__name__)

Predicate = Callable[[dict], bool]


def _matches(data: dict, predicate: Predicate | None, equals: dict[str, Any]) -> bool:
    for field_name, expected in equals.items():
        if data.get(field_name) != expected:
            return False
    return predicate is None or bool(predicate(data))


class DocumentStore:
    def get_document(self, collection: str, doc_id: str) -> dict | None:
        raise NotImplementedError

    def query(self, collection: str, predicate: Predicate | None = None, **equals) -> list[dict]:
        raise NotImplementedError

    def create_document(self, collection: str, data: dict, doc_id: str | None = None) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        if not self.create_if_absent(collection, doc_id, data):
            raise DuplicateError(f"Document {doc_id} already exists in {collection}")
        return doc_id

    def create_if_absent(self, collection: str, doc_id: str, data: dict) -> bool:
        raise NotImplementedError

    def set_document(self, collection: str, doc_id: str, data: dict) -> None:
        raise NotImplementedError

    def update_document(self, collection: str, doc_id: str, patch: dict) -> None:
        raise NotImplementedError

    def delete_document(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store for tests and tools that run without a database."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}

    def _collection(self, collection: str) -> dict[str, dict]:
        return self._collections.setdefault(collection, {})

    def get_document(self, collection, doc_id):
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def query(self, collection, predicate=None, **equals):
        return [
            copy.deepcopy(data)
            for data in self._collection(collection).values()
            if _matches(data, predicate, equals)
        ]

    def create_if_absent(self, collection, doc_id, data):
        docs = self._collection(collection)
        if doc_id in docs:
            return False
        docs[doc_id] = copy.deepcopy(data)
        return True

    def set_document(self, collection, doc_id, data):
        self._collection(collection)[doc_id] = copy.deepcopy(data)

    def update_document(self, collection, doc_id, patch):
        docs = self._collection(collection)
        if doc_id not in docs:
            raise NotFoundError(f"Document {doc_id} not found in {collection}")
        docs[doc_id].update(copy.deepcopy(patch))

    def delete_document(self, collection, doc_id):
        docs = self._collection(collection)
        if doc_id not in docs:
            raise NotFoundError(f"Document {doc_id} not found in {collection}")
        del docs[doc_id]


class SqlDocumentStore(DocumentStore):
    """Documents as JSON rows in the documents table. Requires an application context."""

    def _row(self, collection: str, doc_id: str) -> Document | None:
        return db.session.query(Document).filter_by(
            collection=collection,
            doc_id=doc_id,
        ).first()

    def _fail(self, action: str, collection: str, exc: Exception):
        db.session.rollback()
        logger.warning("Document store %s on %s failed: %s", action, collection, exc)
        raise DependencyUnavailableError(dependency="document store") from exc

    def get_document(self, collection, doc_id):
        try:
            row = self._row(collection, doc_id)
        except SQLAlchemyError as exc:
            self._fail("get", collection, exc)
        return copy.deepcopy(row.data) if row else None

    def query(self, collection, predicate=None, **equals):
        try:
            rows = db.session.query(Document).filter_by(
                collection=collection,
            ).order_by(Document.id).all()
        except SQLAlchemyError as exc:
            self._fail("query", collection, exc)
        return [
            copy.deepcopy(row.data)
            for row in rows
            if _matches(row.data or {}, predicate, equals)
        ]

    def create_if_absent(self, collection, doc_id, data):
        try:
            db.session.add(Document(collection=collection, doc_id=doc_id, data=copy.deepcopy(data)))
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        except SQLAlchemyError as exc:
            self._fail("create", collection, exc)
        return True

    def set_document(self, collection, doc_id, data):
        try:
            row = self._row(collection, doc_id)
            if row is None:
                db.session.add(Document(collection=collection, doc_id=doc_id, data=copy.deepcopy(data)))
            else:
                row.data = copy.deepcopy(data)
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("set", collection, exc)

    def update_document(self, collection, doc_id, patch):
        try:
            row = self._row(collection, doc_id)
            if row is None:
                raise NotFoundError(f"Document {doc_id} not found in {collection}")
            # Reassign so the JSON column is flagged dirty
            row.data = {**(row.data or {}), **copy.deepcopy(patch)}
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("update", collection, exc)

    def delete_document(self, collection, doc_id):
        try:
            row = self._row(collection, doc_id)
            if row is None:
                raise NotFoundError(f"Document {doc_id} not found in {collection}")
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("delete", collection, exc)
