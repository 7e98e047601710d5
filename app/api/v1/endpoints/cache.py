from datetime import datetime, timedelta

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from app.cache.policy import CacheEntryOptions
from app.core.dependencies import CacheStoreDependency, NowDependency
from app.core.responses import send_success
from app.db.schemas.cache import (
    CacheRefreshResponse,
    CacheRemoveResponse,
    CacheSweepResponse,
    CacheWriteResponse,
)

router = APIRouter(prefix="/cache", tags=["Cache"])


def _seconds(value: float | None) -> timedelta | None:
    if value is None:
        return None
    try:
        return timedelta(seconds=value)
    except OverflowError:
        # Past timedelta's range; the policy clamps or rejects it from here.
        return timedelta.max if value > 0 else timedelta.min


@router.post("/sweep")
async def sweep_expired(store: CacheStoreDependency, now: NowDependency):
    removed = await store.sweep(now)
    return send_success(
        message=f"Removed {removed} expired entries",
        data=CacheSweepResponse(removed=removed),
    )


@router.get("/{key}")
async def read_entry(key: str, store: CacheStoreDependency, now: NowDependency):
    value = await store.get(key, now)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Cache key '{key}' not found",
        )
    return Response(content=value, media_type="application/octet-stream")


@router.put("/{key}")
async def write_entry(
    key: str,
    request: Request,
    store: CacheStoreDependency,
    now: NowDependency,
    absolute_expiration: datetime | None = Query(
        None, description="Instant after which the entry is gone (ISO 8601)"
    ),
    absolute_expiration_relative_to_now: float | None = Query(
        None,
        description="Seconds from now; wins over absolute_expiration",
        allow_inf_nan=False,
    ),
    sliding_expiration: float | None = Query(
        None,
        description="Seconds of inactivity before the entry expires",
        allow_inf_nan=False,
    ),
):
    options = CacheEntryOptions(
        absolute_expiration=absolute_expiration,
        absolute_expiration_relative_to_now=_seconds(
            absolute_expiration_relative_to_now
        ),
        sliding_expiration=_seconds(sliding_expiration),
    )
    value = await request.body()
    await store.set(key, value, options, now)
    return send_success(message="Cached", data=CacheWriteResponse(key=key))


@router.post("/{key}/refresh")
async def refresh_entry(key: str, store: CacheStoreDependency, now: NowDependency):
    result = await store.touch(key, now)
    return send_success(
        message=f"Refresh: {result.value}",
        data=CacheRefreshResponse(key=key, result=result),
    )


@router.delete("/{key}")
async def remove_entry(key: str, store: CacheStoreDependency):
    removed = await store.remove(key)
    return send_success(
        message="Removed" if removed else "Nothing to remove",
        data=CacheRemoveResponse(key=key, removed=removed),
    )
