"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- HTTP client against the app with the DB dependency overridden
- Mock Telegram Bot API
- CSV test data
"""
# Settings are read at import time; point them at throwaway locations first
import os
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("TELEGRAM_ADMIN_CHAT_ID", "")
os.environ.setdefault("CELERY_NOTIFICATIONS_ENABLED", "false")

import pytest
from datetime import date
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch
from httpx import AsyncClient, ASGITransport, Response

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from tollvault.db.database import Base, get_db
from tollvault.core.config import settings
from tollvault.domain.services.ledger_store import LedgerStore
from tollvault.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CSV_HEADER = "ENROLMENT_NO_DATE,TOTAL_AMOUNT_CHARGED,GST_AMOUNT,OPERATOR_ID,RESIDENT_NAME"

BATCH_DATE = date(2024, 1, 10)


def make_csv(*rows: str, header: str = CSV_HEADER) -> bytes:
    """CSV document bytes from a header and raw data lines"""
    return ("\n".join([header, *rows]) + "\n").encode("utf-8")


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(db_session: AsyncSession) -> LedgerStore:
    return LedgerStore(db_session)


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Archive uploads under the test's temporary directory"""
    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(target))
    return target


@pytest.fixture
def telegram_configured(monkeypatch):
    """Bot token and admin chat set, webhook secret disabled"""
    monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "123:test-token")
    monkeypatch.setattr(settings, "TELEGRAM_ADMIN_CHAT_ID", "1001")
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET_TOKEN", "")
    return settings


# ============================================================================
# Mock External Services
# ============================================================================

@pytest.fixture
def mock_telegram_api():
    """Mock Telegram Bot API responses"""
    with patch("httpx.AsyncClient") as mock_client:
        mock_response = MagicMock(spec=Response)
        mock_response.status_code = 200
        mock_response.json.return_value = {"ok": True, "result": {}}

        mock_instance = AsyncMock()
        mock_instance.post = AsyncMock(return_value=mock_response)
        mock_instance.get = AsyncMock(return_value=mock_response)
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=None)

        mock_client.return_value = mock_instance

        yield mock_instance


# ============================================================================
# Circuit Breaker Reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from tollvault.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()
