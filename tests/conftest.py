import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="finance-auth-tests-"))
DEFAULT_TEST_DB_URL = f"sqlite:///{_TEST_DB_DIR / 'test.db'}"
TEST_DB_URL = os.getenv("TEST_DB_URL", DEFAULT_TEST_DB_URL)
TEST_SECRET_KEY = "test-secret-key-that-is-long-enough-for-hs256-0123456789"

os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["SECRET_KEY"] = TEST_SECRET_KEY
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["REFRESH_TOKEN_CLEANUP_INTERVAL_SECONDS"] = "3600"

from sqlmodel import Session

from app.core.config import settings
from app.core.security import PasswordHasher
from app.db.init_db import init_db
from app.db.session import engine
from app.models.user import User
from app.services.auth_service import AuthSessionService
from app.services.refresh_token_service import RefreshTokenManager
from app.services.token_signer import TokenSigner

settings.DATABASE_URL = TEST_DB_URL
settings.SECRET_KEY = TEST_SECRET_KEY
settings.PASSWORD_HASH_ROUNDS = 4


class FakeClock:
    """Settable UTC clock shared by the signer and the refresh-token manager."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True, scope="session")
def _configure_test_database():
    init_db(drop_all=True)
    yield


@pytest.fixture(autouse=True)
def _clean_tables():
    init_db(drop_all=True)
    yield


@pytest.fixture
def session():
    with Session(engine) as db:
        yield db


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def signer(clock):
    return TokenSigner(TEST_SECRET_KEY, access_ttl=timedelta(minutes=15), clock=clock)


@pytest.fixture
def manager(clock):
    return RefreshTokenManager(refresh_ttl=timedelta(days=7), clock=clock)


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def auth_service(signer, manager, hasher):
    return AuthSessionService(signer, manager, hasher)


@pytest.fixture
def make_user(session, hasher):
    def _make(email: str = "owner@x.com", password: str = "Secur3P@ss", **fields) -> User:
        hashed_password = fields.pop("hashed_password", hasher.hash(password) if password else None)
        user = User(
            email=email,
            hashed_password=hashed_password,
            first_name=fields.pop("first_name", "Ada"),
            last_name=fields.pop("last_name", "Lovelace"),
            **fields,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def anyio_backend():
    return "asyncio"
