"""
API Routes package.
"""
from fastapi import APIRouter

from app.api.routes.health import router as health_router
from app.api.routes.scraping import router as scraping_router

# Main API router
api_router = APIRouter()

# Include all routers
api_router.include_router(health_router)
api_router.include_router(scraping_router)

__all__ = [
    "api_router",
    "health_router",
    "scraping_router",
]
