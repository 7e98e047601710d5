from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

# Longest key every backend accepts; matches the width of the key column.
MAX_KEY_LENGTH = 449


class UpsertOutcome(str, Enum):
    WRITTEN = "written"
    # Another writer inserted the same key first; its row is kept.
    CONFLICT = "conflict"


class TouchResult(str, Enum):
    REFRESHED = "refreshed"
    # Live entry without a sliding interval; absolute-only entries never renew.
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"


class CacheBackend(Protocol):
    """Row-level persistence contract every storage engine must satisfy.

    Each mutating call is atomic for its row: an observer never sees a value
    without its ``expires_at`` or the other way around.
    """

    async def read_row(self, key: str, now: datetime) -> bytes | None:
        """Value for ``key`` iff a row exists with ``expires_at > now``."""
        ...

    async def upsert_row(
        self,
        key: str,
        value: bytes,
        expires_at: datetime,
        sliding_expiration: timedelta | None,
        absolute_expiration: datetime | None,
    ) -> UpsertOutcome:
        """Create or fully replace the row for ``key``."""
        ...

    async def touch_row(self, key: str, now: datetime) -> TouchResult:
        """Recompute ``expires_at`` from the row's own stored policy."""
        ...

    async def delete_expired_rows(self, now: datetime) -> int:
        """Delete every row with ``expires_at <= now`` and return how many went."""
        ...

    async def delete_row(self, key: str) -> bool:
        ...

    async def close(self) -> None:
        ...
