from contextlib import asynccontextmanager
from fastapi import FastAPI
from app.cache.reaper import Reaper
from app.core.config import settings
from app.utils.caching import create_cache_store
from app.utils.logging import get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger = get_logger()
    store = await create_cache_store(settings)
    app.state.cache_store = store
    reaper = None
    if settings.REAPER_ENABLED:
        reaper = Reaper(store, interval=settings.EXPIRED_ITEMS_DELETION_INTERVAL)
        await reaper.start()
    app.state.reaper = reaper
    logger.info(f"Startup: {app.title} v{app.version} starting...")
    yield
    # Shutdown
    if reaper:
        await reaper.stop()
    await store.close()
    logger.info("Shutdown: App shutting down...")
