"""Top-level API router."""

from fastapi import APIRouter

from archtrack.api.routes.allocation import router as allocation_router
from archtrack.api.routes.assignments import router as assignments_router
from archtrack.api.routes.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(assignments_router)
api_router.include_router(allocation_router)
