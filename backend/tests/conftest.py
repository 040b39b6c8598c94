"""
Pytest fixtures for Zentry backend tests.

Provides the test database, a per-test runtime, in-memory service wiring for
both persistence backends, registered demo businesses and auth helpers.
"""

import pytest

from zentry import create_app
from zentry.extensions import db
from zentry.repository import BACKEND_DOCUMENT, BACKEND_KEYVALUE, build_repository
from zentry.runtime import Runtime, get_runtime
from zentry.services.access_service import AccessControl
from zentry.services.business_service import BusinessService
from zentry.services.context_service import SessionManager, VolatileState
from zentry.services.registry_service import IdentifierRegistry
from zentry.services.staff_service import StaffService
from zentry.stores.documents import MemoryDocumentStore
from zentry.stores.keyvalue import MemoryKeyValueStore

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEPENDENCY_TIMEOUT_SECONDS': 0.05,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def runtime(app, db_session):
    """The application's runtime, with in-memory sessions dropped after each test."""
    rt = get_runtime()
    yield rt
    rt.forget_volatile_state()


def build_services(backend: str, runtime: Runtime) -> Runtime:
    """A Runtime over in-memory stores, sharing the app's identity provider."""
    repo = build_repository(backend, kv=MemoryKeyValueStore(), documents=MemoryDocumentStore())
    registry = IdentifierRegistry(repo)
    access = AccessControl(repo)
    return Runtime(
        repo=repo,
        registry=registry,
        access=access,
        identity=runtime.identity,
        businesses=BusinessService(repo, registry, access, runtime.identity),
        staff=StaffService(repo, registry, access, runtime.identity),
        wait_timeout=runtime.wait_timeout,
    )


@pytest.fixture(scope='function', params=[BACKEND_DOCUMENT, BACKEND_KEYVALUE])
def services(request, runtime):
    """In-memory services, once per persistence backend."""
    return build_services(request.param, runtime)


@pytest.fixture(scope='function')
def acme(services):
    """Register business A (restaurant) with its owner and main property."""
    return services.businesses.register_business(
        company_name="Acme Grill",
        business_type="restaurant",
        owner_name="Jane Doe",
        email="jane@acme.test",
        password=PASSWORD,
    )


@pytest.fixture(scope='function')
def beta(services):
    """Register business B (cafe), a second tenant."""
    return services.businesses.register_business(
        company_name="Beta Beans",
        business_type="cafe",
        owner_name="Bob Brown",
        email="bob@beta.test",
        password=PASSWORD,
    )


@pytest.fixture(scope='function')
def acme_cafe(services, acme):
    """Second property of business A, created by the owner."""
    return services.businesses.add_property(
        acme.business.business_id,
        "Downtown Cafe",
        business_type="cafe",
        created_by=acme.owner.staff_id,
    )


@pytest.fixture(scope='function')
def manager(services, acme, acme_cafe):
    """A manager of business A with access to the cafe only."""
    staff = services.staff.create_staff(
        acme.business.business_id,
        "Alice Martin",
        "manager",
        PASSWORD,
        email="alice@acme.test",
    )
    return services.access.grant_property_access(staff.staff_id, acme_cafe.property_code)


@pytest.fixture(scope='function')
def super_admin(runtime):
    """A super-admin identity."""
    return runtime.identity.create_identity(
        login="root",
        secret=PASSWORD,
        role_claim="super_admin",
        email="root@zentry.test",
    )


def session_manager(services, storage=None, volatile=None, **kwargs) -> SessionManager:
    """A SessionManager over a client storage, as one page load would build it."""
    return SessionManager(
        storage=storage if storage is not None else MemoryKeyValueStore(),
        identity_provider=services.identity,
        repo=services.repo,
        access=services.access,
        volatile=volatile if volatile is not None else VolatileState(),
        wait_timeout=kwargs.pop("wait_timeout", 0.05),
        **kwargs,
    )


def get_auth_token(client, path: str, payload: dict) -> str:
    """Helper to sign in through the API and return the bearer token."""
    response = client.post(path, json=payload)
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
