"""
Per-channel notification rate limiting
Atomic check-and-increment ledgers keyed by (user, type, channel, hour)
"""

from typing import Optional, Union, Dict
from datetime import datetime, timedelta
import uuid
import logging

from sqlalchemy import select, update, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from redis.exceptions import RedisError

from notifyq.models import RateLimitCounter
from notifyq.core.config import settings
from notifyq.core.exceptions import TransientStoreError
from notifyq.utils.helpers import utcnow, floor_to_hour

logger = logging.getLogger(__name__)

BUCKET_KEY_COLUMNS = ["user_id", "notification_type", "channel", "window_start"]

class RateLimitLedger:
    """
    Database ledger

    try_consume is a conditional UPDATE guarded on `count < max`, so two
    concurrent dispatch passes can never both take the last slot. With
    autocommit=False the increment joins the caller's transaction and is
    rolled back together with the delivery rows it paid for.
    """

    def __init__(self, db: AsyncSession, autocommit: bool = True):
        self.db = db
        self.autocommit = autocommit

    async def try_consume(
        self,
        user_id: uuid.UUID,
        notification_type: str,
        channel: str,
        max_per_hour: int,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Take one send from the current hour bucket

        Returns:
            True if the send is allowed and was counted, False if the bucket
            is full (nothing is written)
        """
        if max_per_hour <= 0:
            return False
        window_start = floor_to_hour(now or utcnow())
        key = {
            "user_id": user_id,
            "notification_type": notification_type,
            "channel": str(channel),
            "window_start": window_start,
        }

        try:
            await self._ensure_bucket(key)
            result = await self.db.execute(
                update(RateLimitCounter)
                .where(
                    RateLimitCounter.user_id == user_id,
                    RateLimitCounter.notification_type == notification_type,
                    RateLimitCounter.channel == str(channel),
                    RateLimitCounter.window_start == window_start,
                    RateLimitCounter.count < max_per_hour
                )
                .values(count=RateLimitCounter.count + 1)
                .execution_options(synchronize_session=False)
            )
            allowed = result.rowcount == 1
            if self.autocommit:
                await self.db.commit()
        except SQLAlchemyError as e:
            if self.autocommit:
                await self.db.rollback()
            raise TransientStoreError(f"Rate limit check failed: {e}") from e

        if not allowed:
            logger.info(
                f"Rate limit reached for user {user_id}: {notification_type} via {channel} "
                f"({max_per_hour}/hour)"
            )
        return allowed

    async def _ensure_bucket(self, key: Dict) -> None:
        """Insert the bucket row with count 0 unless it already exists"""
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            await self.db.execute(
                insert(RateLimitCounter)
                .values(count=0, **key)
                .on_conflict_do_nothing(index_elements=BUCKET_KEY_COLUMNS)
            )
            return

        exists = await self.db.scalar(
            select(RateLimitCounter.id).where(
                *(getattr(RateLimitCounter, column) == key[column] for column in BUCKET_KEY_COLUMNS)
            )
        )
        if exists is None:
            try:
                async with self.db.begin_nested():
                    self.db.add(RateLimitCounter(count=0, **key))
            except IntegrityError:
                # Created concurrently, the conditional update handles it
                pass

    async def current_count(
        self,
        user_id: uuid.UUID,
        notification_type: str,
        channel: str,
        now: Optional[datetime] = None
    ) -> int:
        """Sends counted in the current hour bucket"""
        count = await self.db.scalar(
            select(RateLimitCounter.count).where(
                RateLimitCounter.user_id == user_id,
                RateLimitCounter.notification_type == notification_type,
                RateLimitCounter.channel == str(channel),
                RateLimitCounter.window_start == floor_to_hour(now or utcnow())
            )
        )
        return count or 0

    async def prune(self, before: datetime) -> int:
        """Delete buckets that started before `before`; they are inert anyway"""
        try:
            result = await self.db.execute(
                delete(RateLimitCounter)
                .where(RateLimitCounter.window_start < floor_to_hour(before))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise TransientStoreError(f"Failed to prune rate limit counters: {e}") from e
        return result.rowcount or 0

# Check and increment in one round trip
CONSUME_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
    return 0
end
redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
return 1
"""

class RedisRateLimitLedger:
    """
    Redis ledger

    The Lua script runs atomically on the server. Keys expire two hours
    after their bucket opens, so old buckets need no pruning.
    """

    key_prefix = "rate_limit:notify"
    bucket_ttl = timedelta(hours=2)

    def __init__(self, redis_client):
        self.redis = redis_client

    def bucket_key(self, user_id, notification_type: str, channel: str, now: datetime) -> str:
        window_start = floor_to_hour(now)
        return f"{self.key_prefix}:{user_id}:{notification_type}:{channel}:{window_start:%Y%m%d%H}"

    async def try_consume(
        self,
        user_id: uuid.UUID,
        notification_type: str,
        channel: str,
        max_per_hour: int,
        now: Optional[datetime] = None
    ) -> bool:
        if max_per_hour <= 0:
            return False
        key = self.bucket_key(user_id, notification_type, str(channel), now or utcnow())

        try:
            allowed = await self.redis.eval(
                CONSUME_SCRIPT,
                1,
                key,
                max_per_hour,
                int(self.bucket_ttl.total_seconds())
            )
        except RedisError as e:
            raise TransientStoreError(f"Rate limit check failed: {e}") from e

        if not int(allowed):
            logger.info(
                f"Rate limit reached for user {user_id}: {notification_type} via {channel} "
                f"({max_per_hour}/hour)"
            )
            return False
        return True

    async def prune(self, before: datetime) -> int:
        return 0

def get_rate_limit_ledger(
    db: AsyncSession,
    backend: Optional[str] = None,
    autocommit: bool = True
) -> Union[RateLimitLedger, RedisRateLimitLedger]:
    """Build the ledger selected by RATE_LIMIT_BACKEND"""
    backend = (backend or settings.RATE_LIMIT_BACKEND).lower()
    if backend == "redis":
        from notifyq.core.cache import get_redis
        return RedisRateLimitLedger(get_redis())
    return RateLimitLedger(db, autocommit=autocommit)
