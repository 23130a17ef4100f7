"""
Health check endpoints for system monitoring.
"""

from datetime import datetime
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .... import __version__
from ....core.container import ServiceContainer
from ....utils.time_utils import utc_now
from ...deps import get_container

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime
    services: Dict[str, Any]
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ServiceContainer = Depends(get_container)) -> HealthResponse:
    """
    Health of the database and event bus.

    Raises:
        HTTPException: 503 if the database is unavailable
    """
    db_healthy = False
    if container.database is not None:
        db_healthy = await container.database.check_connection()
    if not db_healthy:
        logger.warning("Database health check failed")

    bus_healthy = await container.event_bus.ping()
    if not bus_healthy:
        logger.warning("Event bus health check failed")

    overall_status = "healthy" if db_healthy and bus_healthy else "degraded"
    logger.info(
        "Health check completed",
        overall_status=overall_status,
        database_healthy=db_healthy,
        event_bus_healthy=bus_healthy
    )

    if not db_healthy:
        raise HTTPException(status_code=503, detail="Database connection unavailable")

    return HealthResponse(
        status=overall_status,
        timestamp=utc_now(),
        version=__version__,
        services={
            "database": {
                "status": "healthy" if db_healthy else "unhealthy",
                "description": "Products, verifications and ledger transactions"
            },
            "event_bus": {
                "status": "healthy" if bus_healthy else "unhealthy",
                "backend": container.settings.event_backend,
                "description": "Verification and alert events"
            },
            "agents": {
                agent.agent_id: agent.status.value for agent in container.agents
            },
            "api": {
                "status": "healthy",
                "type": "FastAPI"
            }
        }
    )


@router.get("/health/liveness")
async def liveness_probe() -> Dict[str, str]:
    """Liveness check."""
    return {"status": "alive"}
