"""
Shared test fixtures for the Retail POS auth test suite.

Async throughout (aiosqlite + AsyncSession); the app's DB session and
notifier are swapped through dependency overrides.
"""

import os
import sys
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["NOTIFIER_BACKEND"] = "log"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789abcdef"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from retailpos.api.v1.deps import get_db, get_notifier
from retailpos.core.roles import AccountStatus, Role
from retailpos.core.security import get_password_hash
from retailpos.db.base import Base
from retailpos.main import app
from retailpos.models.user import ADMIN_SLOT, User
from retailpos.repositories.user_repo import UserRepository
from retailpos.services.notifier import NotificationError
from retailpos.services.sessions import issue_session

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class RecordingNotifier:
    """Captures outgoing messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send(self, address: str, subject: str, body: str) -> None:
        if self.fail:
            raise NotificationError("mail provider down")
        self.sent.append((address, subject, body))


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before usage and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
def notifier() -> RecordingNotifier:
    recorder = RecordingNotifier()
    app.dependency_overrides[get_notifier] = lambda: recorder
    yield recorder
    app.dependency_overrides.pop(get_notifier, None)


@pytest.fixture
async def async_client(notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def repo(db_session: AsyncSession) -> UserRepository:
    return UserRepository(db_session)


# ── Record helpers ──────────────────────────────────────────────────
async def create_admin(
    session: AsyncSession,
    email: str = "owner@shop.com",
    password: str | None = "admin-pass-123",
    setup_complete: bool = True,
) -> User:
    user = User(
        login_email=email,
        hashed_password=get_password_hash(password) if password else None,
        role=Role.ADMIN.value,
        admin_slot=ADMIN_SLOT,
        setup_complete=setup_complete,
        name="Owner",
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def create_cashier(
    session: AsyncSession,
    email: str = "cash1234@rs.com",
    password: str = "cashier-pass-1",
    personal_email: str | None = "cashier.home@mail.com",
    status: AccountStatus = AccountStatus.ACTIVE,
) -> User:
    user = User(
        login_email=email,
        personal_email=personal_email,
        hashed_password=get_password_hash(password),
        role=Role.CASHIER.value,
        status=status.value,
        name="Casey",
        phone="9876543210",
        store_location="Main Street",
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def reload_user(session: AsyncSession, email: str) -> User | None:
    """Fetch the current row, bypassing the session's identity map."""
    session.expire_all()
    result = await session.execute(select(User).where(User.login_email == email))
    return result.scalar_one_or_none()


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session(user).access_token}"}
