"""
Verdict aggregation.

Folds the metadata, image, anomaly and fraud signals into one running
accumulator and maps the final score onto a verdict band.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from ...models.enums import RiskLevel, VerificationVerdict
from ...models.schemas import (
    FraudRiskFeatures,
    ImageVerificationResult,
    Product,
    QRPayload,
    ScanRecord,
)
from .anomaly_detector import QRAnomalyResult, detect_qr_anomalies
from .fraud_risk import FraudRiskResult, calculate_fraud_risk
from .image_signals import ImageSignal, image_signal
from .metadata_scorer import MetadataScore, score_metadata
from .rules import clamp

ANOMALY_SCORE_WEIGHT = 0.5
FRAUD_SCORE_WEIGHT = 0.3

GENUINE_THRESHOLD = 80.0
SUSPICIOUS_THRESHOLD = 60.0
FAKE_THRESHOLD = 40.0

INVALID_QR_FACTOR = "Failed to decrypt QR code - CRITICAL RISK"


def determine_verdict(score: float) -> VerificationVerdict:
    """
    Map a 0-100 score onto a verdict.

    The SUSPICIOUS band sits above FAKE; the thresholds are kept exactly as
    issued codes have always been judged.
    """
    if score >= GENUINE_THRESHOLD:
        return VerificationVerdict.GENUINE
    if score >= SUSPICIOUS_THRESHOLD:
        return VerificationVerdict.SUSPICIOUS
    if score >= FAKE_THRESHOLD:
        return VerificationVerdict.FAKE
    return VerificationVerdict.INVALID


@dataclass
class ScoreAccumulator:
    """Running state threaded through the aggregation stages."""
    score: float = 50.0
    confidence: float = 50.0
    risk_score: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW
    factors: List[str] = field(default_factory=list)

    def seed(self, metadata: MetadataScore) -> None:
        self.score = metadata.score
        self.confidence = metadata.confidence
        self.risk_score = metadata.risk_delta
        self.factors.extend(metadata.factors)

    def fold_image(self, signal: ImageSignal) -> None:
        self.score += signal.score_delta
        self.risk_score += signal.risk_delta
        self.confidence += signal.confidence_delta
        self.factors.extend(signal.factors)

    def bucket_risk(self) -> None:
        self.risk_level = RiskLevel.from_score(clamp(self.risk_score))

    def fold_anomaly(self, anomaly: QRAnomalyResult) -> None:
        self.score -= anomaly.anomaly_score * ANOMALY_SCORE_WEIGHT
        self.factors.extend(anomaly.anomalies)
        self.risk_level = RiskLevel.highest(self.risk_level, anomaly.risk_level)

    def fold_fraud(self, fraud: FraudRiskResult) -> None:
        self.factors.extend(fraud.factors)
        if fraud.is_elevated:
            self.score -= fraud.risk_score * FRAUD_SCORE_WEIGHT
        self.risk_level = RiskLevel.highest(self.risk_level, fraud.risk_level)

    def clamp(self) -> None:
        self.score = clamp(self.score)
        self.confidence = clamp(self.confidence)
        self.risk_score = clamp(self.risk_score)


class VerificationAssessment(BaseModel):
    """Final scoring outcome for one scan."""
    verdict: VerificationVerdict
    score: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(ge=0.0, le=100.0)
    risk_score: float = Field(0.0, ge=0.0, le=100.0)
    risk_level: RiskLevel
    factors: List[str] = Field(default_factory=list)
    anomaly: Optional[QRAnomalyResult] = None
    fraud: Optional[FraudRiskResult] = None

    @classmethod
    def invalid(cls) -> "VerificationAssessment":
        """Assessment for a QR code that could not be decrypted."""
        return cls(
            verdict=VerificationVerdict.INVALID,
            score=0.0,
            confidence=0.0,
            risk_score=100.0,
            risk_level=RiskLevel.CRITICAL,
            factors=[INVALID_QR_FACTOR],
        )


@dataclass(frozen=True)
class AggregationInput:
    """Everything the aggregator needs for one scan; all fetched up front."""
    payload: QRPayload
    encrypted_qr: str
    now: datetime
    product: Optional[Product] = None
    image_supplied: bool = False
    image_result: Optional[ImageVerificationResult] = None
    history: Sequence[ScanRecord] = ()
    verifier_scans: Optional[Sequence[ScanRecord]] = None
    location: Optional[str] = None
    verifier_id: Optional[str] = None
    fraud_features: FraudRiskFeatures = field(default_factory=FraudRiskFeatures)


class VerdictAggregator:
    """Deterministic verdict pipeline over pre-fetched inputs."""

    def aggregate(self, inputs: AggregationInput) -> VerificationAssessment:
        """
        Run every scoring stage in order.

        Args:
            inputs: Decoded payload, stored product and collaborator results

        Returns:
            VerificationAssessment
        """
        acc = ScoreAccumulator()

        acc.seed(score_metadata(inputs.product, inputs.payload, inputs.now))
        acc.fold_image(image_signal(inputs.image_result, inputs.image_supplied))
        acc.bucket_risk()

        anomaly = detect_qr_anomalies(
            inputs.history,
            inputs.location,
            inputs.verifier_id,
            inputs.encrypted_qr,
            inputs.now,
            inputs.verifier_scans,
        )
        acc.fold_anomaly(anomaly)

        fraud = calculate_fraud_risk(inputs.fraud_features)
        acc.fold_fraud(fraud)

        acc.clamp()

        return VerificationAssessment(
            verdict=determine_verdict(acc.score),
            score=acc.score,
            confidence=acc.confidence,
            risk_score=acc.risk_score,
            risk_level=acc.risk_level,
            factors=acc.factors,
            anomaly=anomaly,
            fraud=fraud,
        )
