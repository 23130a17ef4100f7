"""
QR usage anomaly detector.

Looks for cloning patterns in the recent scan history of a product: bursts of
scans, too many places or people in too short a history, a single verifier
scanning in bulk, and encrypted payloads whose structure changed between scans.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from ...models.enums import RiskLevel
from ...models.schemas import ScanRecord
from ..qr_codec import qr_size_class
from .rules import RuleGroup, ScoringRule, clamp, evaluate_rule_groups

HOURLY_SCAN_LIMIT = 10
DAILY_SCAN_LIMIT = 50
LOCATION_LIMIT = 5
LOCATION_HISTORY_WINDOW = 10
VERIFIER_LIMIT = 3
VERIFIER_HISTORY_WINDOW = 15
VERIFIER_HOURLY_LIMIT = 5

ANOMALY_THRESHOLD = 40.0

ONE_HOUR = timedelta(hours=1)
ONE_DAY = timedelta(days=1)


class QRAnomalyResult(BaseModel):
    """Outcome of the anomaly checks for one scan."""
    is_anomalous: bool = False
    anomaly_score: float = Field(0.0, ge=0.0, le=100.0)
    anomalies: List[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=100.0)
    risk_level: RiskLevel = RiskLevel.LOW


@dataclass(frozen=True)
class UsageStats:
    """Aggregates over the scan history the checks are evaluated against."""
    history_length: int
    scans_last_hour: int
    scans_last_day: int
    distinct_locations: int
    distinct_verifiers: int
    verifier_scans_last_hour: int
    size_class: int
    mismatched_size_classes: List[int] = field(default_factory=list)


def _within(scans: Sequence[ScanRecord], now: datetime, window: timedelta) -> List[ScanRecord]:
    since = now - window
    return [scan for scan in scans if scan.timestamp > since]


def collect_usage_stats(
    history: Sequence[ScanRecord],
    current_location: Optional[str],
    current_verifier_id: Optional[str],
    encrypted_qr: str,
    now: datetime,
    verifier_scans: Optional[Sequence[ScanRecord]] = None
) -> UsageStats:
    """
    Reduce the scan history to the figures the anomaly rules look at.

    Args:
        history: Newest-first scans of the product
        current_location: Location reported by the current scan
        current_verifier_id: Verifier performing the current scan
        encrypted_qr: Raw encrypted QR string of the current scan
        now: Evaluation time
        verifier_scans: Recent scans by the current verifier across all products

    Returns:
        UsageStats
    """
    locations = {scan.location for scan in history if scan.location}
    if current_location:
        locations.add(current_location)

    verifiers = {scan.verifier_id for scan in history if scan.verifier_id}

    verifier_hourly = 0
    if current_verifier_id:
        if verifier_scans is None:
            verifier_scans = [scan for scan in history if scan.verifier_id == current_verifier_id]
        verifier_hourly = len(_within(verifier_scans, now, ONE_HOUR))

    size_class = qr_size_class(encrypted_qr)
    mismatched = sorted({
        scan.qr_size_class for scan in history
        if scan.qr_size_class is not None and scan.qr_size_class != size_class
    })

    return UsageStats(
        history_length=len(history),
        scans_last_hour=len(_within(history, now, ONE_HOUR)),
        scans_last_day=len(_within(history, now, ONE_DAY)),
        distinct_locations=len(locations),
        distinct_verifiers=len(verifiers),
        verifier_scans_last_hour=verifier_hourly,
        size_class=size_class,
        mismatched_size_classes=mismatched,
    )


ANOMALY_RULES = [
    RuleGroup("frequency", [
        ScoringRule(
            "burst",
            lambda s: s.scans_last_hour > HOURLY_SCAN_LIMIT or s.scans_last_day > DAILY_SCAN_LIMIT,
            score_delta=30, risk_delta=0,
            factor=lambda s: (
                f"Unusual scan frequency: {s.scans_last_hour} scans in last hour, "
                f"{s.scans_last_day} in last day - HIGH RISK"
            ),
        ),
    ]),
    RuleGroup("location", [
        ScoringRule(
            "spread",
            lambda s: s.distinct_locations > LOCATION_LIMIT and s.history_length < LOCATION_HISTORY_WINDOW,
            score_delta=25, risk_delta=0,
            factor=lambda s: (
                f"Location anomaly: Product scanned in {s.distinct_locations} different locations - MEDIUM RISK"
            ),
        ),
    ]),
    RuleGroup("verifier_diversity", [
        ScoringRule(
            "many_verifiers",
            lambda s: s.distinct_verifiers > VERIFIER_LIMIT and s.history_length < VERIFIER_HISTORY_WINDOW,
            score_delta=20, risk_delta=0,
            factor=lambda s: (
                f"User behavior anomaly: {s.distinct_verifiers} different users scanned this product - MEDIUM RISK"
            ),
        ),
    ]),
    RuleGroup("verifier_burst", [
        ScoringRule(
            "bulk_scanning",
            lambda s: s.verifier_scans_last_hour > VERIFIER_HOURLY_LIMIT,
            score_delta=15, risk_delta=0,
            factor=lambda s: (
                f"Verifier activity anomaly: {s.verifier_scans_last_hour} scans by this verifier "
                f"in last hour - MEDIUM RISK"
            ),
        ),
    ]),
    RuleGroup("cryptographic_consistency", [
        ScoringRule(
            "size_changed",
            lambda s: bool(s.mismatched_size_classes),
            score_delta=35, risk_delta=0,
            factor="Cryptographic inconsistency detected - QR data changed between scans - CRITICAL RISK",
        ),
    ]),
]


def risk_floor(anomaly_score: float) -> RiskLevel:
    """Minimum risk level implied by an anomaly score."""
    if anomaly_score >= 60:
        return RiskLevel.CRITICAL
    if anomaly_score >= 40:
        return RiskLevel.HIGH
    if anomaly_score >= 20:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def detect_qr_anomalies(
    history: Sequence[ScanRecord],
    current_location: Optional[str],
    current_verifier_id: Optional[str],
    encrypted_qr: str,
    now: datetime,
    verifier_scans: Optional[Sequence[ScanRecord]] = None
) -> QRAnomalyResult:
    """
    Run every anomaly check against a product's scan history.

    An empty history yields a clean result.
    """
    if not history:
        return QRAnomalyResult()

    stats = collect_usage_stats(
        history, current_location, current_verifier_id, encrypted_qr, now, verifier_scans
    )
    outcome = evaluate_rule_groups(ANOMALY_RULES, stats)
    anomaly_score = clamp(outcome.score_delta)

    return QRAnomalyResult(
        is_anomalous=anomaly_score > ANOMALY_THRESHOLD,
        anomaly_score=anomaly_score,
        anomalies=outcome.factors,
        confidence=anomaly_score,
        risk_level=risk_floor(anomaly_score),
    )
