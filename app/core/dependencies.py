from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, Request

from app.cache.store import ExpiringCacheStore


def get_cache_store(request: Request) -> ExpiringCacheStore:
    return request.app.state.cache_store


def get_now() -> datetime:
    return datetime.now(timezone.utc)


CacheStoreDependency = Annotated[ExpiringCacheStore, Depends(get_cache_store)]
NowDependency = Annotated[datetime, Depends(get_now)]
