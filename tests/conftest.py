import os
import tempfile

# Settings are read on import; point them at throwaway locations first.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="cache-logs-"))
os.environ.setdefault("CACHE_TYPE", "inmemory")
os.environ.setdefault("REAPER_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from fastapi.testclient import TestClient

from app.cache.backends.database import DatabaseCacheBackend
from app.cache.backends.memory import InMemoryCacheBackend
from app.cache.backends.redis_backend import RedisCacheBackend
from app.cache.store import ExpiringCacheStore
from app.core.dependencies import get_cache_store, get_now
from app.db.session import create_engine, create_sessionmaker, init_db
from main import app

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """Instant ``seconds`` after the fixed test epoch."""
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
async def memory_backend():
    backend = InMemoryCacheBackend()
    yield backend
    await backend.close()


@pytest.fixture
async def database_backend(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await init_db(engine)
    backend = DatabaseCacheBackend(create_sessionmaker(engine), engine=engine)
    yield backend
    await backend.close()


@pytest.fixture
async def redis_backend():
    backend = RedisCacheBackend(FakeAsyncRedis(server=FakeServer()), prefix="test:")
    yield backend
    await backend.close()


@pytest.fixture(params=["inmemory", "database", "redis"])
async def backend(request, tmp_path):
    if request.param == "database":
        engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
        await init_db(engine)
        backend = DatabaseCacheBackend(create_sessionmaker(engine), engine=engine)
    elif request.param == "redis":
        backend = RedisCacheBackend(FakeAsyncRedis(server=FakeServer()), prefix="test:")
    else:
        backend = InMemoryCacheBackend()
    yield backend
    await backend.close()


@pytest.fixture
def store(backend):
    return ExpiringCacheStore(backend, command_timeout=5)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def client(clock):
    """TestClient over an in-memory store with a controllable clock."""
    test_store = ExpiringCacheStore(InMemoryCacheBackend())

    app.dependency_overrides[get_cache_store] = lambda: test_store
    app.dependency_overrides[get_now] = clock
    yield TestClient(app)
    app.dependency_overrides.clear()
