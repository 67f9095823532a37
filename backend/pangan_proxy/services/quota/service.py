"""Quota-aware API key rotation.

Spreads upstream calls over a pool of API keys, each with an independent
daily call budget. Usage is counted per key per UTC calendar day in a
``UsageStore``.

Rules:
- Selection is a pure read: the least-used key below the daily limit wins,
  ties go to the earlier key in the pool.
- Usage is recorded only after a successful upstream call, so failed calls
  never consume quota.
- The increment is atomic in every store; concurrent increments for the same
  key and day are never lost.
- A broken usage store must not block requests: reads fall back to zero
  usage and failed increments are skipped, both logged.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta, timezone

import redis.asyncio as redis

from pangan_proxy.models import ApiKeyUsageRecord, UsageStoreError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageStore(ABC):
    """Abstract per-key, per-day usage counter store."""

    @abstractmethod
    async def read_usage(
        self, api_keys: Sequence[str], usage_date: date
    ) -> dict[str, int]:
        """Return the count for each key that has a record on ``usage_date``.

        Keys without a record are omitted.
        """
        pass

    @abstractmethod
    async def upsert_usage(
        self, api_key: str, usage_date: date, used_at: datetime
    ) -> int:
        """Atomically create the record with count 1 or increment it.

        Returns:
            The count after the increment.
        """
        pass

    @abstractmethod
    async def get_record(
        self, api_key: str, usage_date: date
    ) -> ApiKeyUsageRecord | None:
        pass


class InMemoryUsageStore(UsageStore):
    """Process-local usage store, guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, date], ApiKeyUsageRecord] = {}
        self._lock = asyncio.Lock()

    async def read_usage(
        self, api_keys: Sequence[str], usage_date: date
    ) -> dict[str, int]:
        usage: dict[str, int] = {}
        for api_key in api_keys:
            record = self._records.get((api_key, usage_date))
            if record is not None:
                usage[api_key] = record.usage_count
        return usage

    async def upsert_usage(
        self, api_key: str, usage_date: date, used_at: datetime
    ) -> int:
        async with self._lock:
            record = self._records.get((api_key, usage_date))
            if record is None:
                record = ApiKeyUsageRecord(api_key=api_key, usage_date=usage_date)
                self._records[(api_key, usage_date)] = record
            record.usage_count += 1
            record.last_used_at = used_at
            return record.usage_count

    async def get_record(
        self, api_key: str, usage_date: date
    ) -> ApiKeyUsageRecord | None:
        return self._records.get((api_key, usage_date))


class RedisUsageStore(UsageStore):
    """Redis-backed usage store.

    One hash per day holds the counts (``api_key_usage:{date}``) and a second
    holds last-use timestamps (``api_key_usage:{date}:last_used``). HINCRBY is
    atomic on the server, and the two writes go through a MULTI/EXEC
    pipeline. Day hashes expire after ``retention_days``.
    """

    def __init__(self, client: redis.Redis, retention_days: int = 7) -> None:
        self._client = client
        self._retention = timedelta(days=retention_days)

    @staticmethod
    def _count_key(usage_date: date) -> str:
        return f"api_key_usage:{usage_date.isoformat()}"

    @staticmethod
    def _last_used_key(usage_date: date) -> str:
        return f"api_key_usage:{usage_date.isoformat()}:last_used"

    async def read_usage(
        self, api_keys: Sequence[str], usage_date: date
    ) -> dict[str, int]:
        if not api_keys:
            return {}
        try:
            values = await self._client.hmget(self._count_key(usage_date), list(api_keys))
        except redis.RedisError as e:
            raise UsageStoreError(f"read_usage failed: {e}") from e
        return {
            api_key: int(value)
            for api_key, value in zip(api_keys, values)
            if value is not None
        }

    async def upsert_usage(
        self, api_key: str, usage_date: date, used_at: datetime
    ) -> int:
        count_key = self._count_key(usage_date)
        last_used_key = self._last_used_key(usage_date)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hincrby(count_key, api_key, 1)
                pipe.hset(last_used_key, api_key, used_at.isoformat())
                pipe.expire(count_key, self._retention)
                pipe.expire(last_used_key, self._retention)
                results = await pipe.execute()
        except redis.RedisError as e:
            raise UsageStoreError(f"upsert_usage failed: {e}") from e
        return int(results[0])

    async def get_record(
        self, api_key: str, usage_date: date
    ) -> ApiKeyUsageRecord | None:
        try:
            count = await self._client.hget(self._count_key(usage_date), api_key)
            last_used = await self._client.hget(self._last_used_key(usage_date), api_key)
        except redis.RedisError as e:
            raise UsageStoreError(f"get_record failed: {e}") from e
        if count is None:
            return None
        return ApiKeyUsageRecord(
            api_key=api_key,
            usage_date=usage_date,
            usage_count=int(count),
            last_used_at=datetime.fromisoformat(last_used) if last_used else None,
        )


class KeyRotator:
    """Picks the least-used API key under a daily limit and records usage."""

    def __init__(
        self,
        store: UsageStore,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._now = now

    def today(self) -> date:
        """Current UTC calendar day."""
        return self._now().astimezone(timezone.utc).date()

    async def pick_available_key(
        self, key_pool: Sequence[str], daily_limit: int
    ) -> str | None:
        """Return the least-used key still below ``daily_limit``.

        Args:
            key_pool: Candidate keys in preference order.
            daily_limit: Maximum successful calls per key per day.

        Returns:
            The selected key, or None when every key has reached the limit.
        """
        try:
            usage = await self._store.read_usage(key_pool, self.today())
        except Exception as e:
            logger.warning(f"[QUOTA] Usage read failed, assuming zero usage: {e}")
            usage = {}

        # sorted() is stable, so equal counts keep pool order
        candidates = sorted(key_pool, key=lambda k: usage.get(k, 0))
        for api_key in candidates:
            if usage.get(api_key, 0) < daily_limit:
                return api_key

        logger.warning(f"[QUOTA] All {len(key_pool)} keys reached the daily limit of {daily_limit}")
        return None

    async def record_usage(self, api_key: str) -> int | None:
        """Count one successful call for ``api_key`` today.

        Returns:
            The new count, or None when the store could not be updated.
        """
        now = self._now()
        try:
            return await self._store.upsert_usage(
                api_key, now.astimezone(timezone.utc).date(), now
            )
        except Exception as e:
            logger.error(f"[QUOTA] Usage increment failed for key ...{api_key[-4:]}: {e}")
            return None
