"""
Request and response schemas for the verify endpoint.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ....models.enums import RiskLevel, TransactionStatus, TransactionType, VerificationChannel, VerificationVerdict
from ....models.schemas import AuditTransaction, Product
from ....services.verification_service import VerificationOutcome
from ....utils.time_utils import to_epoch_ms


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImageReference(BaseModel):
    url: str = Field(..., min_length=1)


class VerifyRequest(CamelModel):
    """Scan submitted for verification."""
    qr_encrypted: str = Field(..., min_length=1, description="Encrypted QR payload as scanned")
    image: Optional[Union[str, ImageReference]] = Field(None, description="Verification photo URL")
    location: Optional[str] = Field(None, max_length=255)
    channel: VerificationChannel = VerificationChannel.WEB

    @property
    def image_url(self) -> Optional[str]:
        if isinstance(self.image, ImageReference):
            return self.image.url
        return self.image or None


class ProductSummary(CamelModel):
    product_id: str
    name: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    manufacturer_id: str
    status: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductSummary":
        return cls(
            product_id=product.product_id,
            name=product.name,
            sku=product.sku,
            category=product.category,
            manufacturer_id=product.manufacturer_id,
            status=product.status,
        )


class TransactionSummary(CamelModel):
    tx_hash: str
    block_number: int
    status: TransactionStatus
    type: TransactionType
    timestamp: int = Field(..., description="Transaction time in epoch milliseconds")

    @classmethod
    def from_transaction(cls, transaction: AuditTransaction) -> "TransactionSummary":
        return cls(
            tx_hash=transaction.tx_hash,
            block_number=transaction.block_number,
            status=transaction.status,
            type=transaction.type,
            timestamp=to_epoch_ms(transaction.created_at),
        )


class VerifyResponse(CamelModel):
    """Verdict returned to the caller."""
    verdict: VerificationVerdict
    ai_score: float
    confidence: float
    risk_level: RiskLevel
    factors: List[str] = Field(default_factory=list)
    product: Optional[ProductSummary] = None
    transaction: TransactionSummary

    @classmethod
    def from_outcome(cls, outcome: VerificationOutcome) -> "VerifyResponse":
        return cls(
            verdict=outcome.verdict,
            ai_score=outcome.ai_score,
            confidence=outcome.confidence,
            risk_level=outcome.risk_level,
            factors=outcome.factors,
            product=ProductSummary.from_product(outcome.product) if outcome.product else None,
            transaction=TransactionSummary.from_transaction(outcome.transaction),
        )
