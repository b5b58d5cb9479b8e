"""Shared test fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("MELI_CLIENT_ID", "test-client")
os.environ.setdefault("MELI_CLIENT_SECRET", "test-secret")
os.environ.setdefault("MELI_REDIRECT_URI", "https://example.test/meli/callback")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import Base  # noqa: E402
from tests.factories import make_raw_item  # noqa: E402


@pytest.fixture
def raw_item() -> dict:
    return make_raw_item()


@pytest_asyncio.fixture
async def db_session():
    """An AsyncSession on a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()
