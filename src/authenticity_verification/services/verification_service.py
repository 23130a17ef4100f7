"""
Verification pipeline.

Decodes a scanned QR code, gathers the evidence the scorers need, produces a
verdict and durably records the scan together with its ledger transaction.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ..config.settings import Settings
from ..core.exceptions import PersistenceError
from ..db.repositories.base import ProductStore, ScanStore
from ..models.enums import RiskLevel, VerificationChannel, VerificationVerdict
from ..models.messages import VERIFICATION_COMPLETED, AgentMessage
from ..models.schemas import (
    AuditTransaction,
    FraudRiskFeatures,
    ImageVerificationResult,
    Product,
    QRPayload,
    ScanRecord,
)
from ..utils.time_utils import to_epoch_ms, utc_now
from .audit_service import AuditLedger
from .auth import VerifierContext
from .event_bus import EventBus
from .fraud_features import FraudFeatureProvider
from .image_forensics import ImageForensicsClient
from .qr_codec import QRCodec
from .scoring.verdict import AggregationInput, VerdictAggregator, VerificationAssessment

logger = structlog.get_logger(__name__)

UNKNOWN_PRODUCT_ID = "unknown"
UNKNOWN_ORG_ID = "unknown"
DECRYPT_FAILURE_REASON = "Failed to decrypt QR code"
VERIFIER_BURST_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class VerificationConfig:
    """Pipeline tunables, fixed for the lifetime of the service."""
    scan_history_limit: int = 100
    verifier_history_limit: int = 100
    image_timeout_seconds: float = 5.0
    service_id: str = "verification-service"

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerificationConfig":
        return cls(
            scan_history_limit=settings.scan_history_limit,
            verifier_history_limit=settings.verifier_history_limit,
            image_timeout_seconds=settings.image_forensics_timeout_seconds,
        )


@dataclass(frozen=True)
class VerificationRequest:
    """One scan submitted by an authenticated verifier."""
    qr_encrypted: str
    verifier: VerifierContext
    image_url: Optional[str] = None
    location: Optional[str] = None
    channel: VerificationChannel = VerificationChannel.WEB


class VerificationOutcome(BaseModel):
    """Caller-facing result of a verification."""
    scan_id: str
    verdict: VerificationVerdict
    ai_score: float
    confidence: float
    risk_level: RiskLevel
    factors: List[str] = Field(default_factory=list)
    product: Optional[Product] = None
    transaction: AuditTransaction


class VerificationService:
    """
    Runs the verification pipeline for individual scans.

    Constructed once per process; holds no per-request state.
    """

    def __init__(
        self,
        config: VerificationConfig,
        codec: QRCodec,
        product_store: ProductStore,
        scan_store: ScanStore,
        ledger: AuditLedger,
        fraud_features: FraudFeatureProvider,
        image_forensics: Optional[ImageForensicsClient] = None,
        event_bus: Optional[EventBus] = None,
        aggregator: Optional[VerdictAggregator] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.config = config
        self.codec = codec
        self.product_store = product_store
        self.scan_store = scan_store
        self.ledger = ledger
        self.fraud_features = fraud_features
        self.image_forensics = image_forensics
        self.event_bus = event_bus
        self.aggregator = aggregator or VerdictAggregator()
        self.clock = clock

    async def verify(self, request: VerificationRequest) -> VerificationOutcome:
        """
        Verify one scanned QR code.

        Args:
            request: Scan request

        Returns:
            VerificationOutcome; an undecodable code is an INVALID outcome, not an error

        Raises:
            PersistenceError: If the scan or its ledger transaction could not be stored
        """
        now = self.clock()
        scan_id = uuid.uuid4().hex

        payload = self.codec.decode(request.qr_encrypted)
        if payload is None:
            return await self._record_invalid(scan_id, request, now)

        product = await self.product_store.get_product(payload.product_id)

        history, verifier_scans, image_result, features = await asyncio.gather(
            self._load_history(payload.product_id),
            self._load_verifier_scans(request.verifier.uid, now),
            self._run_image_forensics(request.image_url, payload.product_id),
            self._load_fraud_features(product, payload, now),
        )

        assessment = self.aggregator.aggregate(AggregationInput(
            payload=payload,
            encrypted_qr=request.qr_encrypted,
            now=now,
            product=product,
            image_supplied=bool(request.image_url),
            image_result=image_result,
            history=history,
            verifier_scans=verifier_scans,
            location=request.location,
            verifier_id=request.verifier.uid,
            fraud_features=features,
        ))

        record = ScanRecord(
            scan_id=scan_id,
            product_id=payload.product_id,
            org_id=payload.org_id,
            manufacturer_id=product.manufacturer_id if product else payload.manufacturer_id,
            timestamp=now,
            verifier_id=request.verifier.uid,
            verifier_name=request.verifier.name,
            location=request.location,
            channel=request.channel,
            verdict=assessment.verdict,
            ai_score=assessment.score,
            confidence=assessment.confidence,
            risk_level=assessment.risk_level,
            qr_size_class=self.codec.size_class(request.qr_encrypted),
            image_url=request.image_url,
            metadata=self._scan_metadata(assessment, payload, now),
        )
        transaction = await self._persist(record, request.verifier, {
            "productId": payload.product_id,
            "aiScore": assessment.score,
            "confidence": assessment.confidence,
        }, now)

        logger.info(
            "Verification completed",
            scan_id=scan_id,
            product_id=payload.product_id,
            verdict=assessment.verdict.value,
            ai_score=assessment.score,
            risk_level=assessment.risk_level.value,
            tx_hash=transaction.tx_hash
        )
        await self._publish(record, transaction)

        return VerificationOutcome(
            scan_id=scan_id,
            verdict=assessment.verdict,
            ai_score=assessment.score,
            confidence=assessment.confidence,
            risk_level=assessment.risk_level,
            factors=assessment.factors,
            product=product,
            transaction=transaction,
        )

    async def _record_invalid(
        self,
        scan_id: str,
        request: VerificationRequest,
        now: datetime
    ) -> VerificationOutcome:
        assessment = VerificationAssessment.invalid()
        logger.warning(
            "QR code could not be decoded",
            scan_id=scan_id,
            verifier_id=request.verifier.uid
        )

        record = ScanRecord(
            scan_id=scan_id,
            product_id=UNKNOWN_PRODUCT_ID,
            org_id=request.verifier.org_id or UNKNOWN_ORG_ID,
            timestamp=now,
            verifier_id=request.verifier.uid,
            verifier_name=request.verifier.name,
            location=request.location,
            channel=request.channel,
            verdict=assessment.verdict,
            ai_score=assessment.score,
            confidence=assessment.confidence,
            risk_level=assessment.risk_level,
            image_url=request.image_url,
            metadata={"error": DECRYPT_FAILURE_REASON},
        )
        transaction = await self._persist(
            record, request.verifier, {"reason": DECRYPT_FAILURE_REASON}, now
        )
        await self._publish(record, transaction)

        return VerificationOutcome(
            scan_id=scan_id,
            verdict=assessment.verdict,
            ai_score=assessment.score,
            confidence=assessment.confidence,
            risk_level=assessment.risk_level,
            factors=assessment.factors,
            product=None,
            transaction=transaction,
        )

    async def _persist(
        self,
        record: ScanRecord,
        verifier: VerifierContext,
        tx_payload: Dict[str, Any],
        now: datetime
    ) -> AuditTransaction:
        try:
            await self.scan_store.append_scan_record(record)
        except Exception as e:
            logger.error("Failed to store scan record", scan_id=record.scan_id, error=str(e))
            raise PersistenceError("Verification could not be recorded") from e

        try:
            return await self.ledger.record_verification(record, verifier.uid, tx_payload, now)
        except Exception as e:
            logger.error(
                "Ledger write failed after scan record was stored",
                orphan_scan_id=record.scan_id,
                error=str(e)
            )
            raise PersistenceError(
                "Verification transaction could not be recorded",
                scan_id=record.scan_id
            ) from e

    async def _load_history(self, product_id: str) -> List[ScanRecord]:
        try:
            return await self.scan_store.get_recent_scans(product_id, self.config.scan_history_limit)
        except Exception as e:
            logger.warning("Scan history unavailable, assuming first scan", product_id=product_id, error=str(e))
            return []

    async def _load_verifier_scans(self, verifier_id: str, now: datetime) -> Optional[List[ScanRecord]]:
        try:
            return await self.scan_store.get_verifier_scans(
                verifier_id, now - VERIFIER_BURST_WINDOW, self.config.verifier_history_limit
            )
        except Exception as e:
            logger.warning("Verifier scan history unavailable", verifier_id=verifier_id, error=str(e))
            return None

    async def _run_image_forensics(
        self,
        image_url: Optional[str],
        product_id: str
    ) -> Optional[ImageVerificationResult]:
        if not image_url or self.image_forensics is None:
            return None
        try:
            return await asyncio.wait_for(
                self.image_forensics.verify_image(image_url, product_id),
                timeout=self.config.image_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Image forensics timed out", product_id=product_id)
            return None
        except Exception as e:
            logger.warning("Image forensics failed", product_id=product_id, error=str(e))
            return None

    async def _load_fraud_features(
        self,
        product: Optional[Product],
        payload: QRPayload,
        now: datetime
    ) -> FraudRiskFeatures:
        try:
            return await self.fraud_features.get_features(product, payload, now)
        except Exception as e:
            logger.warning("Fraud features unavailable", product_id=payload.product_id, error=str(e))
            return FraudRiskFeatures()

    async def _publish(self, record: ScanRecord, transaction: AuditTransaction) -> None:
        if self.event_bus is None:
            return
        message = AgentMessage(
            sender_id=self.config.service_id,
            message_type=VERIFICATION_COMPLETED,
            payload={
                "scanId": record.scan_id,
                "productId": record.product_id,
                "orgId": record.org_id,
                "manufacturerId": record.manufacturer_id,
                "verifierId": record.verifier_id,
                "verdict": record.verdict.value,
                "aiScore": record.ai_score,
                "riskLevel": record.risk_level.value,
                "txHash": transaction.tx_hash,
                "timestamp": record.timestamp.isoformat(),
            },
        )
        try:
            await self.event_bus.publish(VERIFICATION_COMPLETED, message)
        except Exception as e:
            logger.warning("Failed to publish verification event", scan_id=record.scan_id, error=str(e))

    @staticmethod
    def _scan_metadata(
        assessment: VerificationAssessment,
        payload: QRPayload,
        now: datetime
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "factors": assessment.factors,
            "qrAge": to_epoch_ms(now) - payload.issued_at_ms,
            "riskScore": assessment.risk_score,
        }
        if assessment.anomaly is not None:
            metadata["anomalyScore"] = assessment.anomaly.anomaly_score
        if assessment.fraud is not None:
            metadata["fraudRiskScore"] = assessment.fraud.risk_score
        return metadata
