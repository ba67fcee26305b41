"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile
from datetime import datetime, timedelta

# Settings are read at import time, so the environment must be ready first
_TMP_DIR = tempfile.mkdtemp(prefix="passcode-auth-tests-")
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-password"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/app.db"
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "logs")
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("SMTP_HOST", None)
os.environ.pop("AZURE_BLOB_CONN_STRING", None)

import pytest
from typing import AsyncGenerator, List, Tuple
from faker import Faker
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from main import app
from api.dependencies import get_dispatcher
from core.config import PasscodePolicy
from core.errors import TransportError
from core.security import get_password_hash, create_user_token, create_admin_token
from db.models.passcode import PasscodePurpose
from db.models.user import User
from db.base import initialize_database
from db.session import get_db_session
from services.otp_service import VerificationService
from services.passcode_store import PasscodeStore
from utils.ratelimit import login_limiter, otp_limiter, signup_limiter
from utils.timing import utcnow

# Initialize Faker for test data generation
fake = Faker()

DEFAULT_PASSWORD = "secret123"


class FakeDispatcher:
    """Records outbound messages instead of talking to SMTP."""

    def __init__(self):
        self.sent: List[Tuple[str, PasscodePurpose, str]] = []
        self.welcomed: List[Tuple[str, str]] = []
        self.fail = False

    def send(self, address: str, purpose: PasscodePurpose, code: str) -> None:
        if self.fail:
            raise TransportError(detail="simulated SMTP outage")
        self.sent.append((address, purpose, code))

    def send_welcome(self, address: str, username: str) -> None:
        if self.fail:
            raise TransportError(detail="simulated SMTP outage")
        self.welcomed.append((address, username))

    def last_code(self, address: str, purpose: PasscodePurpose) -> str:
        for sent_to, sent_purpose, code in reversed(self.sent):
            if sent_to == address and sent_purpose == purpose:
                return code
        raise AssertionError(f"no {purpose.value} code sent to {address}")


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def db_engine():
    """Fresh in-memory schema per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await initialize_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(utcnow())


@pytest.fixture
def policy() -> PasscodePolicy:
    return PasscodePolicy(code_length=6, validity_minutes=10, password_min_length=6)


@pytest.fixture
def store(db_session) -> PasscodeStore:
    return PasscodeStore(db_session)


@pytest.fixture
def verification(store, dispatcher, policy, clock) -> VerificationService:
    return VerificationService(store, dispatcher, policy, clock=clock)


@pytest.fixture
def make_user(db_session):
    """Factory that inserts an account and returns it."""

    async def _make(email: str = None, username: str = None, password: str = DEFAULT_PASSWORD, verified: bool = True) -> User:
        user = User(
            username=username or f"user_{fake.unique.lexify('??????????')}",
            email=(email or fake.unique.email()).lower(),
            hashed_password=get_password_hash(password),
            role="user",
            email_verified=verified,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture(autouse=True)
def reset_rate_limiters():
    for limiter in (login_limiter, signup_limiter, otp_limiter):
        limiter.reset()
    yield
    for limiter in (login_limiter, signup_limiter, otp_limiter):
        limiter.reset()


@pytest.fixture
async def async_client(db_session: AsyncSession, dispatcher: FakeDispatcher) -> AsyncGenerator[AsyncClient, None]:
    """Async test client bound to the per-test database and the recording dispatcher."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_user_token(user.id)}"}

    return _headers


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {create_admin_token('admin', 'admin@example.com')}"}
