from datetime import timedelta

import pytest

from app.cache.backends.base import TouchResult
from app.cache.backends.redis_backend import RedisCacheBackend, _to_micros
from app.cache.errors import TransientStoreFailure
from tests.conftest import at


async def test_entry_and_deadline_index_are_written_together(redis_backend):
    await redis_backend.upsert_row("k", b"v", at(10), timedelta(seconds=10), at(60))

    fields = await redis_backend._redis.hgetall("test:entry:k")
    assert fields[b"value"] == b"v"
    assert int(fields[b"expires_at"]) == _to_micros(at(10))
    assert int(fields[b"sliding"]) == 10_000_000
    assert int(fields[b"absolute"]) == _to_micros(at(60))
    assert await redis_backend._redis.zscore("test:expiry", "test:entry:k") == _to_micros(at(10))


async def test_replace_drops_stale_policy_fields(redis_backend):
    await redis_backend.upsert_row("k", b"v1", at(10), timedelta(seconds=10), None)
    await redis_backend.upsert_row("k", b"v2", at(30), None, at(30))

    fields = await redis_backend._redis.hgetall("test:entry:k")
    assert b"sliding" not in fields
    assert await redis_backend.touch_row("k", at(5)) is TouchResult.UNCHANGED


async def test_touch_moves_index_score(redis_backend):
    await redis_backend.upsert_row("k", b"v", at(10), timedelta(seconds=10), None)
    await redis_backend.touch_row("k", at(6))
    assert await redis_backend._redis.zscore("test:expiry", "test:entry:k") == _to_micros(at(16))


async def test_sweep_clears_index_entries(redis_backend):
    await redis_backend.upsert_row("a", b"1", at(10), timedelta(seconds=10), None)
    await redis_backend.upsert_row("b", b"2", at(50), None, at(50))

    assert await redis_backend.delete_expired_rows(at(10)) == 1
    assert await redis_backend._redis.zrange("test:expiry", 0, -1) == [b"test:entry:b"]
    assert await redis_backend._redis.exists("test:entry:a") == 0


async def test_sweep_ignores_index_entry_of_removed_row(redis_backend):
    await redis_backend.upsert_row("k", b"v", at(10), timedelta(seconds=10), None)
    await redis_backend._redis.delete("test:entry:k")

    assert await redis_backend.delete_expired_rows(at(20)) == 0
    assert await redis_backend._redis.zcard("test:expiry") == 0


async def test_delete_row_removes_index_entry(redis_backend):
    await redis_backend.upsert_row("k", b"v", at(10), timedelta(seconds=10), None)
    assert await redis_backend.delete_row("k") is True
    assert await redis_backend._redis.zcard("test:expiry") == 0


async def test_unreachable_redis_is_transient_failure():
    backend = RedisCacheBackend.from_url(
        "redis://127.0.0.1:1/0", socket_connect_timeout=0.5
    )
    try:
        with pytest.raises(TransientStoreFailure):
            await backend.read_row("k", at(0))
    finally:
        await backend.close()
