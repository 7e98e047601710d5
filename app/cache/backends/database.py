from contextlib import contextmanager
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.cache.backends.base import TouchResult, UpsertOutcome
from app.cache.errors import TransientStoreFailure
from app.cache.policy import as_utc, next_deadline
from app.db.models.cache import CacheEntry
from app.utils.logging import get_logger

logger = get_logger()


@contextmanager
def _translate_errors(operation: str):
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
        logger.warning(f"Cache database {operation} failed: {exc}")
        raise TransientStoreFailure(f"{operation} failed: {exc}") from exc


def _is_duplicate_key(exc: IntegrityError) -> bool:
    """Whether ``exc`` is a primary-key clash rather than another constraint."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == "23505"
    args = getattr(orig, "args", ())
    if args and args[0] == 1062:
        return True
    message = str(orig).lower()
    return any(marker in message for marker in ("unique", "duplicate", "primary key"))


class DatabaseCacheBackend:
    """SQLAlchemy backend over the ``cache_entries`` table.

    Works with any async dialect. Every mutation runs in its own transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ):
        self._session_factory = session_factory
        self._engine = engine

    async def read_row(self, key: str, now: datetime) -> bytes | None:
        with _translate_errors("read"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CacheEntry.value).where(
                        CacheEntry.id == key, CacheEntry.expires_at > as_utc(now)
                    )
                )
                return result.scalar_one_or_none()

    async def upsert_row(
        self,
        key: str,
        value: bytes,
        expires_at: datetime,
        sliding_expiration: timedelta | None,
        absolute_expiration: datetime | None,
    ) -> UpsertOutcome:
        values = {
            "value": value,
            "expires_at": expires_at,
            "sliding_expiration_seconds": (
                sliding_expiration.total_seconds() if sliding_expiration else None
            ),
            "absolute_expiration": absolute_expiration,
        }
        with _translate_errors("upsert"):
            try:
                async with self._session_factory() as session, session.begin():
                    if not await self._replace_existing(session, key, values):
                        await self._insert_new(session, key, values)
            except IntegrityError as exc:
                if not _is_duplicate_key(exc):
                    raise
                # The row did not exist when we looked, but another writer
                # committed it before our insert landed.
                return UpsertOutcome.CONFLICT
        return UpsertOutcome.WRITTEN

    async def _replace_existing(
        self, session: AsyncSession, key: str, values: dict
    ) -> bool:
        result = await session.execute(
            update(CacheEntry)
            .where(CacheEntry.id == key)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _insert_new(self, session: AsyncSession, key: str, values: dict):
        session.add(CacheEntry(id=key, **values))
        await session.flush()

    async def touch_row(self, key: str, now: datetime) -> TouchResult:
        now = as_utc(now)
        with _translate_errors("touch"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    select(
                        CacheEntry.sliding_expiration_seconds,
                        CacheEntry.absolute_expiration,
                    )
                    .where(CacheEntry.id == key, CacheEntry.expires_at > now)
                    .with_for_update()
                )
                row = result.first()
                if row is None:
                    return TouchResult.NOT_FOUND
                if row.sliding_expiration_seconds is None:
                    return TouchResult.UNCHANGED

                deadline = next_deadline(
                    now,
                    timedelta(seconds=row.sliding_expiration_seconds),
                    row.absolute_expiration,
                )
                updated = await session.execute(
                    update(CacheEntry)
                    .where(CacheEntry.id == key, CacheEntry.expires_at > now)
                    .values(expires_at=deadline)
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount == 0:
                    return TouchResult.NOT_FOUND
        return TouchResult.REFRESHED

    async def delete_expired_rows(self, now: datetime) -> int:
        with _translate_errors("sweep"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    delete(CacheEntry)
                    .where(CacheEntry.expires_at <= as_utc(now))
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount

    async def delete_row(self, key: str) -> bool:
        with _translate_errors("delete"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    delete(CacheEntry)
                    .where(CacheEntry.id == key)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount > 0

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
