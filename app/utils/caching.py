from app.cache.backends.base import CacheBackend
from app.cache.backends.memory import InMemoryCacheBackend
from app.cache.store import ExpiringCacheStore
from app.core.config import Settings, settings
from app.utils.logging import get_logger

logger = get_logger()


async def create_backend(config: Settings = settings) -> CacheBackend:
    """Build the backend named by ``CACHE_TYPE``; the database schema is created here."""
    cache_type = config.CACHE_TYPE.lower()

    if cache_type == "redis":
        from app.cache.backends.redis_backend import RedisCacheBackend

        logger.info("Cache backend: redis")
        return RedisCacheBackend.from_url(
            config.REDIS_URL,
            prefix=config.CACHE_KEY_PREFIX,
            socket_timeout=config.CACHE_COMMAND_TIMEOUT,
        )

    if cache_type == "database":
        from app.cache.backends.database import DatabaseCacheBackend
        from app.db.session import create_engine, create_sessionmaker, init_db

        engine = create_engine(config.DATABASE_URL)
        await init_db(engine)
        logger.info(f"Cache backend: database ({engine.url.get_backend_name()})")
        return DatabaseCacheBackend(create_sessionmaker(engine), engine=engine)

    logger.info("Cache backend: inmemory")
    return InMemoryCacheBackend()


async def create_cache_store(config: Settings = settings) -> ExpiringCacheStore:
    backend = await create_backend(config)
    return ExpiringCacheStore(backend, command_timeout=config.CACHE_COMMAND_TIMEOUT)
