"""
Folding of image-forensics evidence into the verification score.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ...models.schemas import ImageVerificationResult
from .rules import RuleGroup, ScoringRule, evaluate_rule_groups

LOGO_MATCH_THRESHOLD = 0.5
TAMPERING_THRESHOLD = 0.4
CORROBORATION_CONFIDENCE = 10.0

NO_IMAGE_RISK = 5.0
NO_IMAGE_FACTOR = "No verification image provided - LOW RISK"
IMAGE_UNAVAILABLE_FACTOR = "Image verification unavailable - scored without image evidence"


class ImageSignal(BaseModel):
    """Adjustments contributed by the image stage."""
    score_delta: float = 0.0
    risk_delta: float = 0.0
    confidence_delta: float = 0.0
    factors: List[str] = Field(default_factory=list)


LOGO_RULES = RuleGroup("logo", [
    ScoringRule(
        "low_match",
        lambda result: result.logo_match < LOGO_MATCH_THRESHOLD,
        score_delta=-15, risk_delta=10,
        factor=lambda result: f"Low logo match ({result.logo_match:.2f}) - MEDIUM RISK",
    ),
    ScoringRule(
        "match",
        lambda result: True,
        score_delta=5, risk_delta=0,
        factor=lambda result: f"Logo matches reference ({result.logo_match:.2f}) - LOW RISK",
        corroborating=True,
    ),
])

TAMPERING_RULES = RuleGroup("tampering", [
    ScoringRule(
        "tampered",
        lambda result: result.tampering_score > TAMPERING_THRESHOLD,
        score_delta=-30, risk_delta=30,
        factor=lambda result: f"Image tampering detected ({result.tampering_score:.2f}) - HIGH RISK",
    ),
    ScoringRule(
        "clean",
        lambda result: True,
        score_delta=0, risk_delta=0,
        factor="No image tampering detected - LOW RISK",
    ),
])

SERIAL_RULES = RuleGroup("serial_number", [
    ScoringRule(
        "match",
        lambda result: result.serial_number_match,
        score_delta=15, risk_delta=0,
        factor="Serial number matches product record - LOW RISK",
        corroborating=True,
    ),
    ScoringRule(
        "unmatched_text",
        lambda result: result.text_extracted,
        score_delta=-10, risk_delta=10,
        factor="Extracted text does not match serial number - MEDIUM RISK",
    ),
])

IMAGE_RULES = [LOGO_RULES, TAMPERING_RULES, SERIAL_RULES]


def fold_image_result(result: ImageVerificationResult) -> ImageSignal:
    """
    Convert an image forensics result into score/risk adjustments.

    Args:
        result: Result returned by the forensics service

    Returns:
        ImageSignal with the rule factors followed by the service's own factors
    """
    outcome = evaluate_rule_groups(IMAGE_RULES, result)
    return ImageSignal(
        score_delta=outcome.score_delta,
        risk_delta=outcome.risk_delta,
        confidence_delta=outcome.corroborations * CORROBORATION_CONFIDENCE,
        factors=outcome.factors + list(result.factors),
    )


def no_image_signal() -> ImageSignal:
    return ImageSignal(risk_delta=NO_IMAGE_RISK, factors=[NO_IMAGE_FACTOR])


def image_unavailable_signal() -> ImageSignal:
    return ImageSignal(factors=[IMAGE_UNAVAILABLE_FACTOR])


def image_signal(
    result: Optional[ImageVerificationResult],
    image_supplied: bool
) -> ImageSignal:
    """Select the image contribution for a scan."""
    if not image_supplied:
        return no_image_signal()
    if result is None:
        return image_unavailable_signal()
    return fold_image_result(result)
