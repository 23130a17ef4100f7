"""
Tests for verdict aggregation.
"""

from datetime import timedelta

import pytest

from authenticity_verification.models.enums import RiskLevel, VerificationVerdict
from authenticity_verification.models.schemas import FraudRiskFeatures, ImageVerificationResult
from authenticity_verification.services.scoring.verdict import (
    AggregationInput,
    VerdictAggregator,
    VerificationAssessment,
    determine_verdict,
)

from conftest import NOW


@pytest.fixture
def aggregator() -> VerdictAggregator:
    return VerdictAggregator()


@pytest.fixture
def base_inputs(product, payload, encrypted_qr, low_risk_features):
    """Inputs for a fresh, consistent scan with no image and no history."""
    def _make(**overrides) -> AggregationInput:
        values = {
            "payload": payload,
            "encrypted_qr": encrypted_qr,
            "now": NOW,
            "product": product,
            "verifier_id": "verifier-1",
            "fraud_features": low_risk_features,
        }
        values.update(overrides)
        return AggregationInput(**values)
    return _make


@pytest.mark.parametrize("score,verdict", [
    (100.0, VerificationVerdict.GENUINE),
    (80.0, VerificationVerdict.GENUINE),
    (79.9, VerificationVerdict.SUSPICIOUS),
    (60.0, VerificationVerdict.SUSPICIOUS),
    (59.9, VerificationVerdict.FAKE),
    (40.0, VerificationVerdict.FAKE),
    (39.9, VerificationVerdict.INVALID),
    (0.0, VerificationVerdict.INVALID),
])
def test_verdict_bands(score, verdict):
    """Test the inclusive lower bound of every band."""
    assert determine_verdict(score) == verdict


class TestVerdictAggregator:
    """Test the aggregation pipeline end to end over pre-fetched inputs."""

    def test_fresh_product_is_genuine(self, aggregator, base_inputs):
        """Test a fresh active product with an empty scan history."""
        result = aggregator.aggregate(base_inputs())

        assert result.verdict == VerificationVerdict.GENUINE
        assert result.score == 100.0
        assert result.confidence == 80.0
        assert result.risk_level == RiskLevel.LOW
        assert result.anomaly.anomalies == []
        assert result.factors[0] == "Recent QR code timestamp - LOW RISK"
        assert "No verification image provided - LOW RISK" in result.factors

    def test_very_old_code_is_suspicious(self, aggregator, base_inputs, make_payload):
        """Test that a two year old code is penalised but not invalid on its own."""
        old = make_payload(issued_at=NOW - timedelta(days=730))
        result = aggregator.aggregate(base_inputs(payload=old))

        assert result.score == 75.0
        assert result.verdict == VerificationVerdict.SUSPICIOUS
        assert result.risk_level == RiskLevel.LOW

    def test_cloning_pattern_degrades_verdict(self, aggregator, base_inputs, make_scan):
        """Test twelve scans in the last hour by six verifiers."""
        history = [
            make_scan(minutes_ago=i + 1, verifier_id=f"verifier-{100 + i % 6}")
            for i in range(12)
        ]
        baseline = aggregator.aggregate(base_inputs())
        result = aggregator.aggregate(base_inputs(history=history, verifier_scans=[]))

        assert result.anomaly.is_anomalous is True
        assert result.score == 75.0
        assert result.score < baseline.score
        assert result.verdict == VerificationVerdict.SUSPICIOUS
        assert result.risk_level == RiskLevel.HIGH
        assert any(f.startswith("Unusual scan frequency") for f in result.factors)
        assert any(f.startswith("User behavior anomaly") for f in result.factors)

    def test_missing_product(self, aggregator, base_inputs):
        """Test a decodable code for an unregistered product."""
        result = aggregator.aggregate(base_inputs(product=None))

        assert result.score == 20.0
        assert result.verdict == VerificationVerdict.INVALID
        assert result.risk_score == 45.0
        assert result.risk_level == RiskLevel.MEDIUM
        assert "Product not found in database - CRITICAL RISK" in result.factors

    def test_tampered_image(self, aggregator, base_inputs):
        """Test that image penalties apply after the metadata score is clamped."""
        image = ImageVerificationResult(logo_match=0.9, tampering_score=0.6)
        result = aggregator.aggregate(base_inputs(image_supplied=True, image_result=image))

        assert result.score == 75.0
        assert result.risk_score == 30.0
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.confidence == 90.0

    def test_unavailable_image_contributes_nothing(self, aggregator, base_inputs):
        """Test a supplied image whose analysis failed."""
        result = aggregator.aggregate(base_inputs(image_supplied=True, image_result=None))

        assert result.score == 100.0
        assert result.risk_score == 0.0
        assert "Image verification unavailable - scored without image evidence" in result.factors

    def test_moderate_fraud_risk_does_not_lower_score(self, aggregator, base_inputs):
        """Test that only high or critical fraud risk reduces the score."""
        features = FraudRiskFeatures(suspicious_verification_rate=0.2, supplier_reputation=40.0)
        result = aggregator.aggregate(base_inputs(fraud_features=features))

        assert result.fraud.risk_level == RiskLevel.MEDIUM
        assert result.score == 100.0
        assert result.risk_level == RiskLevel.MEDIUM

    def test_elevated_fraud_risk_lowers_score(self, aggregator, base_inputs):
        """Test the 0.3 fraud weight on an elevated estimate."""
        features = FraudRiskFeatures(suspicious_verification_rate=0.4, supplier_reputation=20.0)
        result = aggregator.aggregate(base_inputs(fraud_features=features))

        assert result.fraud.risk_score == 55.0
        assert result.score == pytest.approx(83.5)
        assert result.verdict == VerificationVerdict.GENUINE
        assert result.risk_level == RiskLevel.HIGH

    def test_risk_level_never_below_stage_levels(self, aggregator, base_inputs, make_scan, encrypted_qr):
        """Test that the final level is at least every stage's level."""
        from authenticity_verification.services.qr_codec import qr_size_class

        history = [make_scan(qr_size_class=qr_size_class(encrypted_qr) + 1)]
        result = aggregator.aggregate(base_inputs(history=history))

        assert result.anomaly.risk_level == RiskLevel.MEDIUM
        assert result.risk_level.rank >= result.anomaly.risk_level.rank
        assert result.risk_level.rank >= result.fraud.risk_level.rank

    def test_worst_case_stays_in_bounds(self, aggregator, base_inputs, product, make_payload, make_scan):
        """Test that every penalty at once clamps into [0, 100]."""
        payload = make_payload(
            manufacturer_id="mfr-999",
            org_id="org-999",
            issued_at=NOW + timedelta(days=2)
        )
        image = ImageVerificationResult(
            logo_match=0.1,
            tampering_score=0.9,
            text_extracted=True
        )
        features = FraudRiskFeatures(
            suspicious_verification_rate=0.9,
            supplier_reputation=0.0,
            supplier_fraud_history=9
        )
        history = [make_scan(minutes_ago=i + 1, verifier_id=f"v-{i}") for i in range(12)]
        result = aggregator.aggregate(base_inputs(
            payload=payload,
            product=product.model_copy(update={"status": "blocked"}),
            image_supplied=True,
            image_result=image,
            history=history,
            fraud_features=features,
        ))

        assert result.score == 0.0
        assert result.risk_score == 100.0
        assert result.confidence == 50.0
        assert result.verdict == VerificationVerdict.INVALID
        assert result.risk_level == RiskLevel.CRITICAL

    def test_aggregation_is_deterministic(self, aggregator, base_inputs, make_scan):
        """Test that identical inputs produce identical assessments."""
        inputs = base_inputs(history=[make_scan(location="Lagos")], location="Accra")

        assert aggregator.aggregate(inputs).model_dump() == aggregator.aggregate(inputs).model_dump()


def test_invalid_assessment():
    """Test the assessment used for undecodable codes."""
    result = VerificationAssessment.invalid()

    assert result.verdict == VerificationVerdict.INVALID
    assert result.score == 0.0
    assert result.confidence == 0.0
    assert result.risk_level == RiskLevel.CRITICAL
    assert result.factors == ["Failed to decrypt QR code - CRITICAL RISK"]
