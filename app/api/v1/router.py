from fastapi import APIRouter

from app.api.v1.endpoints.cache import router as cache_router

router = APIRouter(prefix="/api/v1")
router.include_router(cache_router)
