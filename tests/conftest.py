"""Shared fixtures: a controllable clock, codecs, stores and the Flask app."""

from datetime import datetime, timedelta, timezone

import pytest

from api import create_app
from models.db_storage import DBStorage
from models.memory_store import MemoryTokenStore
from models.token_store import SQLTokenStore
from services.sessions import AuthServices
from utils.security import hash_password
from utils.tokens import TokenCodec

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012"
PASSWORD = "correct-horse-battery"


class FakeClock:
    """Callable clock the codec reads; tests move it forward explicitly."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
        issuer="crm-auth-api",
        clock=clock,
    )


@pytest.fixture(scope="session")
def password_hash() -> str:
    """Argon2 is deliberately slow; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture
def memory_store() -> MemoryTokenStore:
    return MemoryTokenStore()


@pytest.fixture
def principal(memory_store, password_hash):
    return memory_store.create_principal("a@b.com", password_hash, role="ADMIN", name="Ada")


@pytest.fixture
def services(codec, memory_store) -> AuthServices:
    return AuthServices.build(codec, memory_store, rotate=True)


@pytest.fixture
def sql_storage(tmp_path):
    storage = DBStorage()
    storage.reload(f"sqlite:///{tmp_path / 'auth.db'}", timeout=5)
    yield storage
    storage.close()
    storage.engine.dispose()


@pytest.fixture
def sql_store(sql_storage) -> SQLTokenStore:
    return SQLTokenStore(sql_storage)


@pytest.fixture
def app(tmp_path, clock):
    app = create_app(
        "testing",
        clock=clock,
        overrides={"DATABASE_URL": f"sqlite:///{tmp_path / 'api.db'}"},
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def api_user(app, password_hash):
    store = app.extensions["auth"].store
    return store.create_principal("a@b.com", password_hash, role="ADMIN", name="Ada")


def set_cookies(response) -> dict:
    """Map cookie name -> raw Set-Cookie header for one response."""
    cookies = {}
    for header in response.headers.getlist("Set-Cookie"):
        name = header.split("=", 1)[0]
        cookies[name] = header
    return cookies
