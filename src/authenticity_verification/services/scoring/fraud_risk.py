"""
Fraud risk estimator.

A deterministic rule table over pre-aggregated supplier and product statistics.
Missing features fall back to neutral defaults; the estimate's confidence
reflects how many features were actually supplied.
"""

from dataclasses import dataclass
from typing import List

from pydantic import BaseModel, Field

from ...models.enums import RiskLevel
from ...models.schemas import FraudRiskFeatures
from .rules import RuleGroup, ScoringRule, clamp, evaluate_rule_groups

DEFAULT_SUSPICIOUS_RATE = 0.0
DEFAULT_SUPPLIER_REPUTATION = 50.0
DEFAULT_FRAUD_HISTORY = 0


class FraudRiskResult(BaseModel):
    """Risk estimate for one product/supplier snapshot."""
    risk_score: float = Field(ge=0.0, le=100.0)
    risk_level: RiskLevel
    confidence: float = Field(ge=0.0, le=100.0)
    factors: List[str] = Field(default_factory=list)
    prediction: float = Field(ge=0.0, le=1.0)

    @property
    def is_elevated(self) -> bool:
        return self.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)


@dataclass(frozen=True)
class _ResolvedFeatures:
    suspicious_rate: float
    reputation: float
    fraud_history: int
    locations: int
    last_7_days: int
    multi_user: int

    @classmethod
    def from_features(cls, features: FraudRiskFeatures) -> "_ResolvedFeatures":
        def _or(value, default):
            return default if value is None else value

        return cls(
            suspicious_rate=_or(features.suspicious_verification_rate, DEFAULT_SUSPICIOUS_RATE),
            reputation=_or(features.supplier_reputation, DEFAULT_SUPPLIER_REPUTATION),
            fraud_history=_or(features.supplier_fraud_history, DEFAULT_FRAUD_HISTORY),
            locations=_or(features.verification_locations, 0),
            last_7_days=_or(features.verifications_last_7_days, 0),
            multi_user=_or(features.multiple_users_same_product, 0),
        )


def _pct(rate: float) -> str:
    return f"{rate * 100:.0f}%"


def _num(value: float) -> str:
    return f"{value:g}"


FRAUD_RULES = [
    RuleGroup("suspicious_rate", [
        ScoringRule(
            "high", lambda f: f.suspicious_rate > 0.3, score_delta=0, risk_delta=25,
            factor=lambda f: f"High suspicious verification rate ({_pct(f.suspicious_rate)}) - HIGH RISK",
        ),
        ScoringRule(
            "moderate", lambda f: f.suspicious_rate > 0.1, score_delta=0, risk_delta=10,
            factor=lambda f: f"Moderate suspicious verification rate ({_pct(f.suspicious_rate)}) - MEDIUM RISK",
        ),
        ScoringRule(
            "low", lambda f: True, score_delta=0, risk_delta=0,
            factor=lambda f: f"Low verification rate ({_pct(f.suspicious_rate)}) - LOW RISK",
        ),
    ]),
    RuleGroup("supplier_reputation", [
        ScoringRule(
            "poor", lambda f: f.reputation < 30, score_delta=0, risk_delta=30,
            factor=lambda f: f"Low supplier reputation ({_num(f.reputation)}/100) - HIGH RISK",
        ),
        ScoringRule(
            "moderate", lambda f: f.reputation < 60, score_delta=0, risk_delta=15,
            factor=lambda f: f"Moderate supplier reputation ({_num(f.reputation)}/100) - MEDIUM RISK",
        ),
        ScoringRule(
            "good", lambda f: True, score_delta=0, risk_delta=0,
            factor=lambda f: f"Good supplier reputation ({_num(f.reputation)}/100) - LOW RISK",
        ),
    ]),
    RuleGroup("supplier_fraud_history", [
        ScoringRule(
            "high", lambda f: f.fraud_history > 5, score_delta=0, risk_delta=35,
            factor=lambda f: f"High supplier fraud history ({f.fraud_history} incidents) - CRITICAL RISK",
        ),
        ScoringRule(
            "moderate", lambda f: f.fraud_history > 2, score_delta=0, risk_delta=20,
            factor=lambda f: f"Moderate supplier fraud history ({f.fraud_history} incidents) - HIGH RISK",
        ),
        ScoringRule(
            "some", lambda f: f.fraud_history > 0, score_delta=0, risk_delta=10,
            factor=lambda f: f"Some supplier fraud history ({f.fraud_history} incidents) - MEDIUM RISK",
        ),
    ]),
    RuleGroup("verification_locations", [
        ScoringRule(
            "widespread", lambda f: f.locations > 10, score_delta=0, risk_delta=20,
            factor=lambda f: f"Product verified in {f.locations} different locations - MEDIUM RISK",
        ),
        ScoringRule(
            "spread", lambda f: f.locations > 5, score_delta=0, risk_delta=10,
            factor=lambda f: f"Product verified in {f.locations} locations - LOW RISK",
        ),
    ]),
    RuleGroup("weekly_velocity", [
        ScoringRule(
            "high", lambda f: f.last_7_days > 20, score_delta=0, risk_delta=15,
            factor=lambda f: f"High recent verification activity ({f.last_7_days} in 7 days) - MEDIUM RISK",
        ),
    ]),
    RuleGroup("multiple_users", [
        ScoringRule(
            "many", lambda f: f.multi_user > 5, score_delta=0, risk_delta=15,
            factor=lambda f: f"Multiple users scanning same product ({f.multi_user} users) - MEDIUM RISK",
        ),
    ]),
]


def calculate_fraud_risk(features: FraudRiskFeatures) -> FraudRiskResult:
    """
    Estimate fraud risk from a feature snapshot.

    Args:
        features: Feature snapshot; any field may be missing

    Returns:
        FraudRiskResult with the score bucketed at 25/50/75
    """
    outcome = evaluate_rule_groups(FRAUD_RULES, _ResolvedFeatures.from_features(features))
    risk_score = clamp(outcome.risk_delta)
    confidence = clamp(100.0 * features.supplied_count() / FraudRiskFeatures.feature_count())

    return FraudRiskResult(
        risk_score=risk_score,
        risk_level=RiskLevel.from_score(risk_score),
        confidence=confidence,
        factors=outcome.factors,
        prediction=risk_score / 100.0,
    )
