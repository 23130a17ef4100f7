"""
API v1 endpoints.
"""

from .alerts import router as alerts_router
from .health import router as health_router
from .verify import router as verify_router

__all__ = ["alerts_router", "health_router", "verify_router"]
