from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from app.cache.backends.base import TouchResult, UpsertOutcome
from app.cache.errors import TransientStoreFailure
from app.cache.policy import as_utc, next_deadline
from app.utils.logging import get_logger

logger = get_logger()

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MICROSECOND = timedelta(microseconds=1)


def _to_micros(moment: datetime) -> int:
    return (as_utc(moment) - EPOCH) // MICROSECOND


def _from_micros(value) -> datetime:
    return EPOCH + timedelta(microseconds=int(value))


@contextmanager
def _translate_errors(operation: str):
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.warning(f"Cache redis {operation} failed: {exc}")
        raise TransientStoreFailure(f"{operation} failed: {exc}") from exc


class RedisCacheBackend:
    """Redis backend: one hash per entry plus a sorted set of deadlines.

    Hash fields hold the value and the policy (instants and durations as
    integer microseconds). The sorted set scores each entry by its
    ``expires_at`` so a sweep only visits candidates. Writes that span both
    keys run inside MULTI, and read-modify-write paths WATCH the entry.
    """

    def __init__(self, client: aioredis.Redis, prefix: str = "cache:"):
        self._redis = client
        self._prefix = prefix
        self._index = f"{prefix}expiry"

    @classmethod
    def from_url(cls, url: str, prefix: str = "cache:", **kwargs) -> "RedisCacheBackend":
        return cls(aioredis.from_url(url, **kwargs), prefix=prefix)

    def _entry(self, key: str) -> str:
        return f"{self._prefix}entry:{key}"

    async def read_row(self, key: str, now: datetime) -> bytes | None:
        with _translate_errors("read"):
            value, expires_at = await self._redis.hmget(
                self._entry(key), "value", "expires_at"
            )
        if value is None or expires_at is None:
            return None
        if int(expires_at) <= _to_micros(now):
            return None
        return value

    async def upsert_row(
        self,
        key: str,
        value: bytes,
        expires_at: datetime,
        sliding_expiration: timedelta | None,
        absolute_expiration: datetime | None,
    ) -> UpsertOutcome:
        name = self._entry(key)
        deadline = _to_micros(expires_at)
        mapping = {"value": bytes(value), "expires_at": deadline}
        if sliding_expiration is not None:
            mapping["sliding"] = sliding_expiration // MICROSECOND
        if absolute_expiration is not None:
            mapping["absolute"] = _to_micros(absolute_expiration)

        # MULTI replaces the whole hash at once, so there is no create race.
        with _translate_errors("upsert"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(name)
                pipe.hset(name, mapping=mapping)
                pipe.zadd(self._index, {name: deadline})
                await pipe.execute()
        return UpsertOutcome.WRITTEN

    async def touch_row(self, key: str, now: datetime) -> TouchResult:
        name = self._entry(key)
        now_us = _to_micros(now)
        with _translate_errors("touch"):
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(name)
                        expires_at, sliding, absolute = await pipe.hmget(
                            name, "expires_at", "sliding", "absolute"
                        )
                        if expires_at is None or int(expires_at) <= now_us:
                            return TouchResult.NOT_FOUND
                        if sliding is None:
                            return TouchResult.UNCHANGED

                        deadline = _to_micros(
                            next_deadline(
                                _from_micros(now_us),
                                timedelta(microseconds=int(sliding)),
                                _from_micros(absolute) if absolute is not None else None,
                            )
                        )
                        pipe.multi()
                        pipe.hset(name, "expires_at", deadline)
                        pipe.zadd(self._index, {name: deadline})
                        await pipe.execute()
                        return TouchResult.REFRESHED
                    except WatchError:
                        continue

    async def delete_expired_rows(self, now: datetime) -> int:
        now_us = _to_micros(now)
        removed = 0
        with _translate_errors("sweep"):
            candidates = await self._redis.zrangebyscore(self._index, "-inf", now_us)
            for name in candidates:
                if await self._delete_if_expired(name, now_us):
                    removed += 1
        return removed

    async def _delete_if_expired(self, name, now_us: int) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(name)
                    expires_at = await pipe.hget(name, "expires_at")
                    if expires_at is not None and int(expires_at) > now_us:
                        # Renewed after the index was read; its score moved too.
                        return False
                    pipe.multi()
                    pipe.delete(name)
                    pipe.zrem(self._index, name)
                    deleted, _ = await pipe.execute()
                    return bool(deleted)
                except WatchError:
                    continue

    async def delete_row(self, key: str) -> bool:
        name = self._entry(key)
        with _translate_errors("delete"):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(name)
                pipe.zrem(self._index, name)
                deleted, _ = await pipe.execute()
        return bool(deleted)

    async def close(self) -> None:
        await self._redis.aclose()
