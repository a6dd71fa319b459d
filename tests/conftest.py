"""
Pytest configuration and fixtures for the notification pipeline tests.
"""
import uuid
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from notifyq.models import Base, NotificationPreference
from notifyq.services.delivery_port import NullDeliveryPort
from notifyq.services.notification_dispatcher import NotificationDispatcher


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite database so separate sessions really race."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'notifyq.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def now():
    """Fixed naive UTC clock, a Monday afternoon."""
    return datetime(2024, 3, 4, 15, 30)


@pytest.fixture
def make_intent(user_id):
    """Build a producer enqueue dictionary."""
    def _make(**overrides):
        intent = {
            "user_id": str(user_id),
            "type": "price_alert",
            "title": "BTC crossed $70,000",
            "message": "Bitcoin is now trading at $70,012.",
            "priority": "normal",
        }
        intent.update(overrides)
        return intent
    return _make


@pytest.fixture
def save_preferences(session_factory):
    """Store a preference row for a user."""
    async def _save(user_id, **fields):
        async with session_factory() as session:
            session.add(NotificationPreference(user_id=user_id, **fields))
            await session.commit()
    return _save


@pytest.fixture
def dispatcher(session_factory, now):
    """Dispatcher on the test database with a fixed clock."""
    return NotificationDispatcher(
        session_factory,
        delivery_port=NullDeliveryPort(),
        clock=lambda: now,
        rate_limits={"push": 10, "email": 10, "sms": 3},
        quiet_hours_bypass_priority=10,
        rate_limit_backend="database",
    )
