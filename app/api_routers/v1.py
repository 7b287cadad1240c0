from fastapi import APIRouter

from app.features.health.routes.health import router as health_router
from app.features.performance.routes.metrics import router as metrics_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(metrics_router)
api_router.include_router(health_router, prefix="/metrics")
