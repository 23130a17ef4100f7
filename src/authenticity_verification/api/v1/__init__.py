"""
API v1 package.
"""

from fastapi import APIRouter

from .endpoints import alerts_router, health_router, verify_router

# Create main v1 router
v1_router = APIRouter(prefix="/v1")

v1_router.include_router(health_router)
v1_router.include_router(verify_router)
v1_router.include_router(alerts_router)

__all__ = ["v1_router"]
