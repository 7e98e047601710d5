import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict

from app.cache.backends.base import TouchResult, UpsertOutcome
from app.cache.policy import as_utc, next_deadline


@dataclass
class _Row:
    value: bytes
    expires_at: datetime
    sliding_expiration: timedelta | None
    absolute_expiration: datetime | None


class InMemoryCacheBackend:
    """Process-local backend for development and tests.

    Rows live in a dict guarded by a lock, so every operation is atomic and a
    create race can never surface as a conflict.
    """

    def __init__(self) -> None:
        self._rows: Dict[str, _Row] = {}
        self._lock = threading.Lock()

    async def read_row(self, key: str, now: datetime) -> bytes | None:
        now = as_utc(now)
        with self._lock:
            row = self._rows.get(key)
            if row is None or row.expires_at <= now:
                return None
            return row.value

    async def upsert_row(
        self,
        key: str,
        value: bytes,
        expires_at: datetime,
        sliding_expiration: timedelta | None,
        absolute_expiration: datetime | None,
    ) -> UpsertOutcome:
        row = _Row(
            value=bytes(value),
            expires_at=as_utc(expires_at),
            sliding_expiration=sliding_expiration,
            absolute_expiration=(
                as_utc(absolute_expiration) if absolute_expiration else None
            ),
        )
        with self._lock:
            self._rows[key] = row
        return UpsertOutcome.WRITTEN

    async def touch_row(self, key: str, now: datetime) -> TouchResult:
        now = as_utc(now)
        with self._lock:
            row = self._rows.get(key)
            if row is None or row.expires_at <= now:
                return TouchResult.NOT_FOUND
            if row.sliding_expiration is None:
                return TouchResult.UNCHANGED
            row.expires_at = next_deadline(
                now, row.sliding_expiration, row.absolute_expiration
            )
            return TouchResult.REFRESHED

    async def delete_expired_rows(self, now: datetime) -> int:
        now = as_utc(now)
        with self._lock:
            expired = [k for k, row in self._rows.items() if row.expires_at <= now]
            for key in expired:
                del self._rows[key]
        return len(expired)

    async def delete_row(self, key: str) -> bool:
        with self._lock:
            return self._rows.pop(key, None) is not None

    async def close(self) -> None:
        with self._lock:
            self._rows.clear()
