"""
Rule-table scorers used by the verification pipeline.
"""

from .anomaly_detector import QRAnomalyResult, detect_qr_anomalies
from .fraud_risk import FraudRiskResult, calculate_fraud_risk
from .image_signals import ImageSignal, fold_image_result, image_signal
from .metadata_scorer import MetadataScore, score_metadata
from .verdict import (
    AggregationInput,
    VerdictAggregator,
    VerificationAssessment,
    determine_verdict,
)

__all__ = [
    "AggregationInput",
    "FraudRiskResult",
    "ImageSignal",
    "MetadataScore",
    "QRAnomalyResult",
    "VerdictAggregator",
    "VerificationAssessment",
    "calculate_fraud_risk",
    "detect_qr_anomalies",
    "determine_verdict",
    "fold_image_result",
    "image_signal",
    "score_metadata",
]
