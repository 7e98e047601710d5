import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Protocol, TypeVar

from app.cache.backends.base import (
    MAX_KEY_LENGTH,
    CacheBackend,
    TouchResult,
    UpsertOutcome,
)
from app.cache.errors import InvalidKey, OperationCancelled, TransientStoreFailure
from app.cache.policy import CacheEntryOptions, as_utc, next_deadline, resolve
from app.utils.logging import get_logger

logger = get_logger()

T = TypeVar("T")


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


def _check_key(key: str):
    if not isinstance(key, str) or not key:
        raise InvalidKey("cache key must be a non-empty string")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidKey(
            f"cache key is {len(key)} characters; the limit is {MAX_KEY_LENGTH}"
        )


class ExpiringCacheStore:
    """Get, set, refresh and sweep cache entries on top of a ``CacheBackend``.

    ``now`` is always passed in by the caller. An entry whose deadline has
    passed is invisible to ``get`` straight away but stays stored until
    ``sweep`` runs.

    Every operation takes an optional ``cancel`` signal (anything with an
    ``is_set()`` method, e.g. ``asyncio.Event``). If it is already set, the
    operation raises ``OperationCancelled`` without touching the backend.
    """

    def __init__(self, backend: CacheBackend, command_timeout: float | None = None):
        self.backend = backend
        self.command_timeout = command_timeout

    async def _call(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        cancel: CancelSignal | None,
    ) -> T:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"{operation} cancelled before reaching the store")
        try:
            return await asyncio.wait_for(call(), timeout=self.command_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning(
                f"Cache {operation} timed out after {self.command_timeout}s"
            )
            raise TransientStoreFailure(
                f"{operation} timed out after {self.command_timeout}s"
            ) from exc

    async def get(
        self, key: str, now: datetime, cancel: CancelSignal | None = None
    ) -> bytes | None:
        _check_key(key)
        value = await self._call(
            "get", lambda: self.backend.read_row(key, as_utc(now)), cancel
        )
        logger.debug(f"Cache {'hit' if value is not None else 'miss'}: {key}")
        return value

    async def set(
        self,
        key: str,
        value: bytes,
        options: CacheEntryOptions,
        now: datetime,
        cancel: CancelSignal | None = None,
    ) -> None:
        _check_key(key)
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError("cache values must be bytes")

        now = as_utc(now)
        absolute, sliding = resolve(now, options)
        expires_at = next_deadline(now, sliding, absolute)

        outcome = await self._call(
            "set",
            lambda: self.backend.upsert_row(
                key, bytes(value), expires_at, sliding, absolute
            ),
            cancel,
        )
        if outcome is UpsertOutcome.CONFLICT:
            logger.info(
                f"Cache key '{key}' was created concurrently by another writer; "
                f"keeping the existing entry"
            )
            return
        logger.debug(f"Cache set: {key} expires at {expires_at.isoformat()}")

    async def touch(
        self, key: str, now: datetime, cancel: CancelSignal | None = None
    ) -> TouchResult:
        _check_key(key)
        result = await self._call(
            "touch", lambda: self.backend.touch_row(key, as_utc(now)), cancel
        )
        logger.debug(f"Cache touch: {key} -> {result.value}")
        return result

    async def remove(self, key: str, cancel: CancelSignal | None = None) -> bool:
        _check_key(key)
        removed = await self._call(
            "remove", lambda: self.backend.delete_row(key), cancel
        )
        logger.debug(f"Cache remove: {key} (removed={removed})")
        return removed

    async def sweep(self, now: datetime, cancel: CancelSignal | None = None) -> int:
        removed = await self._call(
            "sweep", lambda: self.backend.delete_expired_rows(as_utc(now)), cancel
        )
        if removed:
            logger.info(f"Cache sweep removed {removed} expired entries")
        return removed

    async def close(self) -> None:
        await self.backend.close()
