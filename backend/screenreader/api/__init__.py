from fastapi import APIRouter

from .health import router as health_router
from .readings import router as readings_router
from .screen import router as screen_router

api_router = APIRouter()
api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(readings_router, prefix="/readings", tags=["readings"])
api_router.include_router(screen_router, prefix="/screen", tags=["screen"])

__all__ = ["api_router"]
