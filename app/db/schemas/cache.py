from pydantic import BaseModel

from app.cache.backends.base import TouchResult


class CacheWriteResponse(BaseModel):
    key: str


class CacheRefreshResponse(BaseModel):
    key: str
    result: TouchResult


class CacheRemoveResponse(BaseModel):
    key: str
    removed: bool


class CacheSweepResponse(BaseModel):
    removed: int
