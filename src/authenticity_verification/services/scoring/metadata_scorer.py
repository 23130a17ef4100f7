"""
Metadata consistency scorer.

Compares the decoded QR payload against the authoritative product record and
the age of the code. Higher ``score`` means more likely genuine; ``risk_delta``
moves in the opposite direction.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

from ...models.enums import ProductStatus
from ...models.schemas import Product, QRPayload
from .rules import RuleGroup, ScoringRule, clamp, evaluate_rule_groups

BASELINE_SCORE = 50.0
BASELINE_CONFIDENCE = 50.0
CORROBORATION_CONFIDENCE = 10.0

MAX_QR_AGE = timedelta(days=365)
RECENT_QR_AGE = timedelta(days=7)


@dataclass(frozen=True)
class MetadataContext:
    product: Optional[Product]
    payload: QRPayload
    now: datetime

    @property
    def qr_age(self) -> timedelta:
        return self.now - self.payload.issued_at

    @property
    def qr_age_days(self) -> int:
        return self.qr_age.days


class MetadataScore(BaseModel):
    """Result of the metadata consistency check."""
    score: float = Field(ge=0.0, le=100.0)
    risk_delta: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(ge=0.0, le=100.0)
    factors: List[str] = Field(default_factory=list)
    fired_rules: List[str] = Field(default_factory=list)


def _has_product(ctx: MetadataContext) -> bool:
    return ctx.product is not None


QR_AGE_RULES = RuleGroup("qr_age", [
    ScoringRule(
        "future_dated",
        lambda ctx: ctx.qr_age < timedelta(0),
        score_delta=-30, risk_delta=30,
        factor="Future timestamp in QR code - CRITICAL RISK",
    ),
    ScoringRule(
        "very_old",
        lambda ctx: ctx.qr_age > MAX_QR_AGE,
        score_delta=-20, risk_delta=15,
        factor=lambda ctx: f"QR code timestamp is very old ({ctx.qr_age_days} days) - MEDIUM RISK",
    ),
    ScoringRule(
        "recent",
        lambda ctx: ctx.qr_age < RECENT_QR_AGE,
        score_delta=10, risk_delta=0,
        factor="Recent QR code timestamp - LOW RISK",
        corroborating=True,
    ),
    ScoringRule(
        "normal",
        lambda ctx: True,
        score_delta=0, risk_delta=5,
        factor=lambda ctx: f"QR code age within expected range ({ctx.qr_age_days} days) - LOW RISK",
    ),
])

PRODUCT_STATUS_RULES = RuleGroup("product_status", [
    ScoringRule(
        "missing",
        lambda ctx: ctx.product is None,
        score_delta=-40, risk_delta=40,
        factor="Product not found in database - CRITICAL RISK",
    ),
    ScoringRule(
        "not_active",
        lambda ctx: ctx.product.status != ProductStatus.ACTIVE.value,
        score_delta=-20, risk_delta=20,
        factor=lambda ctx: f"Product status is '{ctx.product.status}', not active - MEDIUM RISK",
    ),
    ScoringRule(
        "active",
        lambda ctx: True,
        score_delta=20, risk_delta=0,
        factor="Product is active in system - LOW RISK",
    ),
])

MANUFACTURER_RULES = RuleGroup("manufacturer", [
    ScoringRule(
        "match",
        lambda ctx: _has_product(ctx) and ctx.product.manufacturer_id == ctx.payload.manufacturer_id,
        score_delta=15, risk_delta=0,
        factor="Manufacturer ID matches - LOW RISK",
        corroborating=True,
    ),
    ScoringRule(
        "mismatch",
        _has_product,
        score_delta=-30, risk_delta=30,
        factor="Manufacturer ID mismatch - HIGH RISK",
    ),
])

ORGANIZATION_RULES = RuleGroup("organization", [
    ScoringRule(
        "match",
        lambda ctx: _has_product(ctx) and ctx.product.org_id == ctx.payload.org_id,
        score_delta=10, risk_delta=0,
        factor="Organization ID matches - LOW RISK",
        corroborating=True,
    ),
    ScoringRule(
        "mismatch",
        _has_product,
        score_delta=-20, risk_delta=20,
        factor="Organization ID mismatch - MEDIUM RISK",
    ),
])

METADATA_RULES = [QR_AGE_RULES, PRODUCT_STATUS_RULES, MANUFACTURER_RULES, ORGANIZATION_RULES]


def score_metadata(product: Optional[Product], payload: QRPayload, now: datetime) -> MetadataScore:
    """
    Score payload/product consistency.

    Args:
        product: Stored product, or None if the payload's product does not exist
        payload: Decoded QR payload
        now: Evaluation time

    Returns:
        MetadataScore seeded from a neutral baseline of 50
    """
    outcome = evaluate_rule_groups(METADATA_RULES, MetadataContext(product, payload, now))

    return MetadataScore(
        score=clamp(BASELINE_SCORE + outcome.score_delta),
        risk_delta=clamp(outcome.risk_delta),
        confidence=clamp(BASELINE_CONFIDENCE + outcome.corroborations * CORROBORATION_CONFIDENCE),
        factors=outcome.factors,
        fired_rules=outcome.fired,
    )
