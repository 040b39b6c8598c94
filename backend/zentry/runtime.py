# Overview: Per-application service wiring and per-client session construction.

"""
Runtime

create_app builds one Runtime and keeps it in app.extensions["zentry"].
It holds the process-wide collaborators (repository, registry, access
control, identity provider, lifecycle services) and the per-client volatile
state that a page load is allowed to keep.

A client is identified by its bearer token. Its persisted storage is a
SqlKeyValueStore namespace derived from the token hash, so the session
markers survive a process restart; its VolatileState does not.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta

from flask import Flask, current_app

from .repository import Repository, build_repository
from .services.access_service import AccessControl
from .services.business_service import BusinessService
from .services.context_service import SessionManager, VolatileState
from .services.identity_service import IdentityProvider
from .services.registry_service import IdentifierRegistry
from .services.staff_service import StaffService
from .services.switch_service import ContextSwitcher
from .stores.documents import SqlDocumentStore
from .stores.keyvalue import MemoryKeyValueStore, SqlKeyValueStore

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "cache"


def client_namespace(token: str) -> str:
    return "client:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]


@dataclass
class Runtime:
    repo: Repository
    registry: IdentifierRegistry
    access: AccessControl
    identity: IdentityProvider
    businesses: BusinessService
    staff: StaffService
    wait_timeout: float = 10.0
    _volatile: dict[str, VolatileState] = field(default_factory=dict)
    _volatile_lock: threading.Lock = field(default_factory=threading.Lock)

    def volatile_for(self, namespace: str) -> VolatileState:
        with self._volatile_lock:
            return self._volatile.setdefault(namespace, VolatileState())

    def drop_volatile(self, namespace: str) -> None:
        with self._volatile_lock:
            self._volatile.pop(namespace, None)

    def forget_volatile_state(self) -> None:
        """Drop all in-memory session state, as a process restart would."""
        with self._volatile_lock:
            self._volatile.clear()
        self.identity.forget_volatile_sessions()

    def session_manager(self, namespace: str) -> SessionManager:
        return SessionManager(
            storage=SqlKeyValueStore(namespace),
            identity_provider=self.identity,
            repo=self.repo,
            access=self.access,
            volatile=self.volatile_for(namespace),
            wait_timeout=self.wait_timeout,
        )

    def login_manager(self) -> SessionManager:
        """
        A manager for a sign-in in progress. Its storage is scratch memory
        until adopt() moves it under the namespace of the issued token.
        """
        return SessionManager(
            storage=MemoryKeyValueStore(),
            identity_provider=self.identity,
            repo=self.repo,
            access=self.access,
            volatile=VolatileState(),
            wait_timeout=self.wait_timeout,
        )

    def adopt(self, manager: SessionManager) -> str:
        """Bind a signed-in manager to its client namespace. Returns the namespace."""
        namespace = client_namespace(manager.token)
        storage = SqlKeyValueStore(namespace)
        storage.clear()
        for key in manager.storage.keys():
            storage.set(key, manager.storage.get(key))
        with self._volatile_lock:
            self._volatile[namespace] = manager.volatile
        manager.storage = storage
        return namespace

    def switcher(self, manager: SessionManager) -> ContextSwitcher:
        return ContextSwitcher(manager, self.access)


def init_runtime(app: Flask) -> Runtime:
    config = app.config
    repo = build_repository(
        config["PERSISTENCE_BACKEND"],
        kv=SqlKeyValueStore(CACHE_NAMESPACE),
        documents=SqlDocumentStore(),
    )
    registry = IdentifierRegistry(repo, max_attempts=config["IDENTIFIER_MAX_ATTEMPTS"])
    access = AccessControl(repo)
    identity = IdentityProvider(
        absolute_timeout=timedelta(hours=config["SESSION_ABSOLUTE_TIMEOUT_HOURS"]),
        idle_timeout=timedelta(hours=config["SESSION_IDLE_TIMEOUT_HOURS"]),
    )
    runtime = Runtime(
        repo=repo,
        registry=registry,
        access=access,
        identity=identity,
        businesses=BusinessService(repo, registry, access, identity),
        staff=StaffService(repo, registry, access, identity),
        wait_timeout=config["DEPENDENCY_TIMEOUT_SECONDS"],
    )
    app.extensions["zentry"] = runtime
    logger.info("Runtime ready with %s persistence", repo.backend)
    return runtime


def get_runtime() -> Runtime:
    return current_app.extensions["zentry"]
