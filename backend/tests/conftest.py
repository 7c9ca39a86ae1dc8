import os
import tempfile
import uuid
from datetime import datetime, timedelta

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["STORAGE_SIGNING_KEY"] = "test-signing-key"
os.environ["FILE_STORAGE_PATH"] = tempfile.mkdtemp(prefix="printhub-storage-")
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"

import httpx
import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from printhub import models  # noqa: F401  registers tables on Base
from printhub.core.database import Base, get_db
from printhub.core.security import CurrentUser, SHOP_OWNER, CUSTOMER
from printhub.services import expiry_service, realtime_service


class FakeRedis:
    """Records publishes and keeps keys in a dict."""

    def __init__(self):
        self.published = []
        self.values = {}

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 0

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value):
        self.values[key] = value
        return True

    async def ping(self):
        return True


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(realtime_service, "get_redis_client", lambda: fake)
    monkeypatch.setattr(expiry_service, "get_redis_client", lambda: fake)
    return fake


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def owner():
    return CurrentUser(
        id=uuid.uuid4(),
        email="owner@example.com",
        user_type=SHOP_OWNER,
        metadata={"full_name": "Rahim", "user_type": SHOP_OWNER},
    )


@pytest.fixture
def customer():
    return CurrentUser(
        id=uuid.uuid4(),
        email="karim@example.com",
        user_type=CUSTOMER,
        metadata={"full_name": "Karim", "user_type": CUSTOMER},
    )


def make_token(user: CurrentUser, expires_in: int = 3600) -> str:
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "aud": "authenticated",
        "exp": datetime.utcnow() + timedelta(seconds=expires_in),
        "user_metadata": user.metadata,
    }
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def auth_headers(user: CurrentUser) -> dict:
    return {"Authorization": f"Bearer {make_token(user)}"}


@pytest.fixture
async def client(session_factory):
    from printhub.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
