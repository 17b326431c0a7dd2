import os

# Settings are read at import time, so the test environment must be in place first
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-entropy-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.pop("SMTP_HOST", None)
os.environ.pop("S3_BUCKET_NAME", None)

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.database import engine
from app.core.storage import get_storage_backend
from app.main import app
from app.models import Base
from tests.utils.storage import InMemoryStorage


@pytest.fixture(autouse=True)
async def reset_database():
    # Fresh schema per test; the in-memory database lives on one shared connection
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Connections must not outlive the event loop of the test that opened them
    await engine.dispose()


@pytest.fixture
def storage():
    backend = InMemoryStorage()
    app.dependency_overrides[get_storage_backend] = lambda: backend
    yield backend
    app.dependency_overrides.pop(get_storage_backend, None)


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
