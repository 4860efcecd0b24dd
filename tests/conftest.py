import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from expresstrafic.db.base import Base  # noqa: E402
from expresstrafic.db.session import get_session  # noqa: E402
from expresstrafic.main import app  # noqa: E402
from expresstrafic.services.notification_service import NotificationService, get_notification_service  # noqa: E402
from factories import FakeRedis, RecordingSmsSender, RecordingTransport  # noqa: E402


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr("expresstrafic.services.auth.redis_client", fake)
    monkeypatch.setattr("expresstrafic.services.rate_limit.redis_client", fake)
    monkeypatch.setattr("expresstrafic.main.redis_client", fake)
    return fake


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def sms():
    return RecordingSmsSender()


@pytest.fixture
def notifications(transport, sms):
    return NotificationService(email_transport=transport, sms_sender=sms)


@pytest_asyncio.fixture
async def client(session_factory, notifications):
    async def _session_override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_notification_service] = lambda: notifications
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


