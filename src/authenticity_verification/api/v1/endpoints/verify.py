"""
QR verification endpoint.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from ....core.exceptions import PersistenceError
from ....services.auth import VerifierContext
from ....services.verification_service import VerificationRequest, VerificationService
from ...deps import get_current_verifier, get_verification_service
from ..schemas.verification import VerifyRequest, VerifyResponse

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["verification"])


@router.post("/verify", response_model=VerifyResponse)
async def verify_product(
    body: VerifyRequest,
    verifier: VerifierContext = Depends(get_current_verifier),
    service: VerificationService = Depends(get_verification_service)
) -> VerifyResponse:
    """
    Verify a scanned product QR code.

    An undecodable QR code is answered with an INVALID verdict, not an error.

    Raises:
        HTTPException: 500 if the verification could not be recorded
    """
    try:
        outcome = await service.verify(VerificationRequest(
            qr_encrypted=body.qr_encrypted,
            verifier=verifier,
            image_url=body.image_url,
            location=body.location,
            channel=body.channel,
        ))
    except PersistenceError as e:
        logger.error("Verification not recorded", error=str(e), orphan_scan_id=e.scan_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )

    return VerifyResponse.from_outcome(outcome)
