"""
Fraud feature materialisation from stored verification aggregates.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import structlog

from ..db.repositories.base import ScanStatisticsStore
from ..models.schemas import FraudRiskFeatures, Product, QRPayload

logger = structlog.get_logger(__name__)

REPUTATION_PENALTY_PER_INCIDENT = 10


class FraudFeatureProvider(ABC):
    """Supplies the fraud risk estimator with pre-aggregated statistics."""

    @abstractmethod
    async def get_features(
        self,
        product: Optional[Product],
        payload: QRPayload,
        now: datetime
    ) -> FraudRiskFeatures:
        """Feature snapshot for the product and supplier behind a scan."""


class ScanStatsFeatureProvider(FraudFeatureProvider):
    """Builds features from the verification log."""

    def __init__(self, stats_store: ScanStatisticsStore):
        self.stats_store = stats_store

    async def get_features(
        self,
        product: Optional[Product],
        payload: QRPayload,
        now: datetime
    ) -> FraudRiskFeatures:
        """
        Materialise product and supplier features.

        The supplier is the manufacturer on record, or the one claimed by the
        payload when the product is unknown.

        Args:
            product: Stored product, if any
            payload: Decoded QR payload
            now: Evaluation time

        Returns:
            FraudRiskFeatures
        """
        manufacturer_id = product.manufacturer_id if product else payload.manufacturer_id

        stats = await self.stats_store.get_product_scan_stats(payload.product_id, now)
        fraud_count = await self.stats_store.count_flagged_for_manufacturer(manufacturer_id)

        product_age_days = None
        if product and product.created_at:
            product_age_days = max(0.0, (now - product.created_at).total_seconds() / 86400)

        features = FraudRiskFeatures(
            product_age_days=product_age_days,
            verification_count=stats.verification_count,
            suspicious_verification_rate=stats.flagged_rate,
            supplier_reputation=float(max(0, 100 - REPUTATION_PENALTY_PER_INCIDENT * fraud_count)),
            supplier_fraud_history=fraud_count,
            verification_locations=stats.distinct_locations,
            verifications_last_7_days=stats.verifications_last_7_days,
            verifications_last_30_days=stats.verifications_last_30_days,
            repeated_scans_same_user=stats.max_scans_single_verifier,
            multiple_users_same_product=stats.distinct_verifiers,
        )

        logger.debug(
            "Fraud features materialised",
            product_id=payload.product_id,
            manufacturer_id=manufacturer_id,
            supplied=features.supplied_count()
        )
        return features
