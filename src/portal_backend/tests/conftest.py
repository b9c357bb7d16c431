"""
Pytest configuration and fixtures for all tests.

Every test gets a fresh in-memory SQLite database seeded with the default
permissions and groups, and a memory-only cache installed as the process
cache. API tests run against the application through FastAPI's TestClient
with the database dependency bound to the test session.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal_backend.auth.passwords import hash_password
from portal_backend.auth.tokens import create_access_token
from portal_backend.cache import set_cache
from portal_backend.cache.hybrid import HybridCache
from portal_backend.database import get_db
from portal_backend.model import Base
from portal_backend.model.auth import User
from portal_backend.model.group import Group, UserGroup
from portal_backend.model.seeder import seed_defaults
from portal_backend.server import app
from portal_backend.settings import settings

TEST_PASSWORD = "password123"


@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow, hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def engine():
    """In-memory database shared by every connection of the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    """Session with the default permissions and groups seeded."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    seed_defaults(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def cache():
    """Memory-only cache installed as the process cache."""
    cache = HybridCache(redis_client=None, enabled=True)
    set_cache(cache)
    yield cache
    set_cache(None)


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "API_LOCAL_STORAGE_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def client(db):
    """Test client using the test session for every request."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db, password_hash):
    """Factory for committed users that are members of the given groups."""

    def factory(email: str, groups=("user",), status: str = "ACTIVE", **fields) -> User:
        local_part = email.split("@")[0]
        user = User(
            name=fields.pop("name", local_part.title()),
            email=email,
            user_name=fields.pop("user_name", local_part),
            password=password_hash,
            status=status,
            is_verified=True,
            **fields,
        )
        db.add(user)
        db.flush()
        for codename in groups:
            group = db.query(Group).filter(Group.codename == codename).one()
            db.add(UserGroup(user_id=user.id, group_id=group.id))
        db.commit()
        return user

    return factory


@pytest.fixture
def superuser(make_user):
    return make_user("root@example.com", groups=("super_admin",), is_protected=True)


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@example.com", groups=("admin",))


@pytest.fixture
def regular_user(make_user):
    return make_user("alice@example.com")


@pytest.fixture
def other_user(make_user):
    return make_user("bob@example.com")


def bearer(user: User, extra: dict = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}", **(extra or {})}


@pytest.fixture
def auth_headers():
    """Authorization headers for a user, merged with `extra`."""
    return bearer


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )
