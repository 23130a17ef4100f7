"""
FastAPI dependencies.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..agents.supply_chain_monitor import SupplyChainMonitorAgent
from ..core.container import ServiceContainer
from ..services.auth import AuthenticationError, VerifierContext
from ..services.verification_service import VerificationService

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_verification_service(container: ServiceContainer = Depends(get_container)) -> VerificationService:
    return container.verification_service


def get_monitor_agent(container: ServiceContainer = Depends(get_container)) -> SupplyChainMonitorAgent:
    return container.monitor_agent


async def get_current_verifier(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container)
) -> VerifierContext:
    """
    Resolve the calling verifier from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        return container.token_verifier.verify(credentials.credentials)
    except AuthenticationError as e:
        logger.info("Rejected API token", reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )


async def require_admin(verifier: VerifierContext = Depends(get_current_verifier)) -> VerifierContext:
    """
    Resolve the caller and require the admin role.

    Raises:
        HTTPException: 401 from get_current_verifier, 403 if the caller is not an admin
    """
    if not verifier.is_admin:
        logger.info("Rejected non-admin caller", uid=verifier.uid)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - Admin access required"
        )
    return verifier
