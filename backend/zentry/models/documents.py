from __future__ import annotations

import json

from ..extensions import db
from zentry.time_utils import to_utc_z


class Document(db.Model):
    """
    Schemaless record in a named collection.

    WHY: Businesses, properties and staff are stored as whole JSON documents
    addressed by (collection, doc_id), the shape the document-store contract
    expects. The autoincrement primary key gives queries a stable
    insertion order.

    The unique constraint doubles as the atomic "create if absent" used for
    identifier reservations.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        db.Index("ix_documents_collection", "collection"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(64), nullable=False)
    doc_id = db.Column(db.String(128), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.doc_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.doc_id,
            "collection": self.collection,
            "data": dict(self.data or {}),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class KeyValueEntry(db.Model):
    """
    String key-value pair scoped by namespace.

    WHY: Server-side stand-in for browser local storage. Each client session
    gets its own namespace for its session markers; the shared "cache"
    namespace holds the fallback copy of every entity.
    """
    __tablename__ = "kv_entries"
    __table_args__ = (
        db.UniqueConstraint("namespace", "key", name="uq_kv_entries_namespace_key"),
        db.Index("ix_kv_entries_namespace", "namespace"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    namespace = db.Column(db.String(128), nullable=False)
    key = db.Column(db.String(255), nullable=False)
    value = db.Column(db.Text, nullable=False)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<KeyValueEntry {self.namespace}:{self.key}>"

    def to_dict(self) -> dict:
        try:
            value = json.loads(self.value)
        except ValueError:
            value = self.value
        return {
            "namespace": self.namespace,
            "key": self.key,
            "value": value,
            "updated_at": to_utc_z(self.updated_at),
        }
