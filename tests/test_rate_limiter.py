"""
Unit tests for the rate limit ledgers.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from notifyq.core.exceptions import TransientStoreError
from notifyq.services.rate_limiter import (
    RateLimitLedger,
    RedisRateLimitLedger,
    get_rate_limit_ledger,
    CONSUME_SCRIPT,
)


class TestDatabaseLedger:
    """Tests for the database-backed ledger."""

    async def test_allows_up_to_limit(self, db, user_id, now):
        """Test sends are allowed until the bucket is full."""
        ledger = RateLimitLedger(db)
        results = [
            await ledger.try_consume(user_id, "price_alert", "sms", 3, now=now)
            for _ in range(5)
        ]

        assert results == [True, True, True, False, False]
        assert await ledger.current_count(user_id, "price_alert", "sms", now=now) == 3

    async def test_buckets_are_independent(self, db, user_id, now):
        """Test type and channel each get their own bucket."""
        ledger = RateLimitLedger(db)
        assert await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now)
        assert not await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now)

        assert await ledger.try_consume(user_id, "order_filled", "sms", 1, now=now)
        assert await ledger.try_consume(user_id, "price_alert", "email", 1, now=now)

    async def test_next_hour_starts_fresh(self, db, user_id, now):
        """Test a new hour bucket starts at zero."""
        ledger = RateLimitLedger(db)
        assert await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now)
        assert not await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now + timedelta(minutes=20))
        assert await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now + timedelta(minutes=31))

    async def test_zero_limit_refuses_without_writing(self, db, user_id, now):
        """Test a zero limit never allows a send."""
        ledger = RateLimitLedger(db)
        assert not await ledger.try_consume(user_id, "price_alert", "sms", 0, now=now)
        assert await ledger.current_count(user_id, "price_alert", "sms", now=now) == 0

    async def test_uncommitted_consumption_rolls_back(self, session_factory, user_id, now):
        """Test consumption inside a rolled back transaction is not counted."""
        async with session_factory() as session:
            ledger = RateLimitLedger(session, autocommit=False)
            assert await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now)
            await session.rollback()

        async with session_factory() as session:
            ledger = RateLimitLedger(session)
            assert await ledger.current_count(user_id, "price_alert", "sms", now=now) == 0
            assert await ledger.try_consume(user_id, "price_alert", "sms", 1, now=now)

    async def test_concurrent_consumers_never_exceed_limit(self, session_factory, user_id, now):
        """Test racing consumers share the limit exactly."""
        async def consume():
            async with session_factory() as session:
                return await RateLimitLedger(session).try_consume(user_id, "price_alert", "sms", 3, now=now)

        results = await asyncio.gather(*(consume() for _ in range(10)))

        assert results.count(True) == 3
        assert results.count(False) == 7

    async def test_prune_removes_old_buckets(self, db, user_id, now):
        """Test prune deletes buckets older than the cutoff."""
        ledger = RateLimitLedger(db)
        await ledger.try_consume(user_id, "price_alert", "sms", 3, now=now - timedelta(hours=72))
        await ledger.try_consume(user_id, "price_alert", "sms", 3, now=now)

        deleted = await ledger.prune(now - timedelta(hours=48))

        assert deleted == 1
        assert await ledger.current_count(user_id, "price_alert", "sms", now=now) == 1


class TestRedisLedger:
    """Tests for the Redis-backed ledger."""

    async def test_allowed_when_script_returns_one(self, user_id, now):
        """Test a script result of 1 allows the send."""
        redis_client = AsyncMock()
        redis_client.eval.return_value = 1
        ledger = RedisRateLimitLedger(redis_client)

        assert await ledger.try_consume(user_id, "price_alert", "sms", 3, now=now)

        args = redis_client.eval.call_args.args
        assert args[0] == CONSUME_SCRIPT
        assert args[1] == 1
        assert args[2] == f"rate_limit:notify:{user_id}:price_alert:sms:2024030415"
        assert args[3] == 3
        assert args[4] == 7200

    async def test_refused_when_script_returns_zero(self, user_id, now):
        """Test a script result of 0 refuses the send."""
        redis_client = AsyncMock()
        redis_client.eval.return_value = 0
        ledger = RedisRateLimitLedger(redis_client)

        assert not await ledger.try_consume(user_id, "price_alert", "sms", 3, now=now)

    async def test_redis_errors_are_transient(self, user_id, now):
        """Test Redis failures surface as store errors."""
        redis_client = AsyncMock()
        redis_client.eval.side_effect = RedisConnectionError("down")
        ledger = RedisRateLimitLedger(redis_client)

        with pytest.raises(TransientStoreError):
            await ledger.try_consume(user_id, "price_alert", "sms", 3, now=now)

    async def test_factory_selects_backend(self, db, monkeypatch):
        """Test the factory honours the backend name."""
        fake_client = object()
        monkeypatch.setattr("notifyq.core.cache.get_redis", lambda: fake_client)

        redis_ledger = get_rate_limit_ledger(db, backend="redis")
        database_ledger = get_rate_limit_ledger(db, backend="database", autocommit=False)

        assert isinstance(redis_ledger, RedisRateLimitLedger)
        assert redis_ledger.redis is fake_client
        assert isinstance(database_ledger, RateLimitLedger)
        assert database_ledger.autocommit is False
