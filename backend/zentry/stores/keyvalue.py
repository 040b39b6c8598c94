# Overview: Synchronous string key-value stores (local-storage semantics).

"""
Key-Value Store

The contract is deliberately small: get / set / remove / keys, values are
strings, keys enumerate in insertion order. JSON helpers sit on top.

Two implementations:
- MemoryKeyValueStore: a dict, for tests and single-process tools
- SqlKeyValueStore: rows in kv_entries scoped by a namespace, so one table
  serves both the shared entity cache and every client's session markers

Writes are read-modify-write with no locking across clients of the same
namespace. Last write wins.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..errors import DependencyUnavailableError
from ..extensions import db
from ..models import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore:
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unparseable value under key %s", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class SqlKeyValueStore(KeyValueStore):
    """
    Key-value rows in kv_entries. Requires an application context.

    Each write commits immediately, like local storage.
    """

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace

    def _entry(self, key: str) -> KeyValueEntry | None:
        return db.session.query(KeyValueEntry).filter_by(
            namespace=self.namespace,
            key=key,
        ).first()

    def _fail(self, action: str, exc: Exception):
        db.session.rollback()
        logger.warning("Key-value store %s failed in namespace %s: %s", action, self.namespace, exc)
        raise DependencyUnavailableError(dependency="key-value store") from exc

    def get(self, key: str) -> str | None:
        try:
            entry = self._entry(key)
        except SQLAlchemyError as exc:
            self._fail("get", exc)
        return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        try:
            entry = self._entry(key)
            if entry is None:
                db.session.add(KeyValueEntry(namespace=self.namespace, key=key, value=str(value)))
            else:
                entry.value = str(value)
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("set", exc)

    def remove(self, key: str) -> None:
        try:
            db.session.query(KeyValueEntry).filter_by(
                namespace=self.namespace,
                key=key,
            ).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("remove", exc)

    def keys(self) -> list[str]:
        try:
            rows = db.session.query(KeyValueEntry.key).filter_by(
                namespace=self.namespace,
            ).order_by(KeyValueEntry.id).all()
        except SQLAlchemyError as exc:
            self._fail("keys", exc)
        return [row.key for row in rows]

    def clear(self) -> None:
        try:
            db.session.query(KeyValueEntry).filter_by(namespace=self.namespace).delete()
            db.session.commit()
        except SQLAlchemyError as exc:
            self._fail("clear", exc)
