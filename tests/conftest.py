import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from typing import AsyncGenerator, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.bulk_uploads.notifications import get_mailer
from app.auth.dependencies import get_current_user
from app.auth.models import Account, generate_account_id
from app.auth.schemas import CurrentUser
from app.auth.security import hash_password
from app.core.config import settings
from app.db.session import Base, get_db
from app.main import app

from factories import ADMIN, CENTER_ID


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingMailer:
    """Stands in for the SMTP mailer; remembers what would have been sent."""

    def __init__(self) -> None:
        self.scheduled: List = []

    def schedule(self, account) -> None:
        self.scheduled.append(account)


@pytest.fixture(autouse=True)
def report_dir(tmp_path, monkeypatch):
    """Error reports go to a per-test directory."""
    path = tmp_path / "error-reports"
    monkeypatch.setattr(settings, "error_report_dir", str(path))
    return path


@pytest.fixture()
async def db_engine():
    """Fresh in-memory SQLite database per test; StaticPool keeps the single connection alive."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def mailer() -> RecordingMailer:
    recording = RecordingMailer()
    app.dependency_overrides[get_mailer] = lambda: recording
    yield recording
    app.dependency_overrides.pop(get_mailer, None)


@pytest.fixture()
def current_user() -> CurrentUser:
    app.dependency_overrides[get_current_user] = lambda: ADMIN
    yield ADMIN
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture()
async def client(db_session: AsyncSession, mailer: RecordingMailer, current_user: CurrentUser) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, authenticated as a center admin."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def make_account(db_session: AsyncSession):
    """Insert and commit an account directly, bypassing the bulk pipeline."""

    async def _make(
        role: str,
        email: str,
        username: Optional[str] = None,
        password: str = "Secret1!",
        profile: Optional[dict] = None,
    ) -> Account:
        account = Account(
            id=generate_account_id(),
            email=email.lower(),
            username=username or email.split("@")[0],
            password_hash=hash_password(password),
            role=role,
            center_id=CENTER_ID,
            first_name="Test",
            last_name=role.capitalize(),
            profile=profile or {},
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make
