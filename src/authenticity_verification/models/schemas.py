"""
Domain models exchanged between the verification pipeline and its collaborators.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..utils.time_utils import from_epoch_ms
from .enums import (
    RiskLevel,
    TransactionStatus,
    TransactionType,
    VerificationChannel,
    VerificationVerdict,
)


class QRPayload(BaseModel):
    """
    Decrypted content of a product QR code.

    Serialised on the wire as ``{"productId", "manufacturerId", "orgId", "ts"}``
    where ``ts`` is the issuance time in epoch milliseconds.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_id: str = Field(..., min_length=1, alias="productId")
    manufacturer_id: str = Field(..., min_length=1, alias="manufacturerId")
    org_id: str = Field(..., min_length=1, alias="orgId")
    issued_at_ms: int = Field(..., alias="ts")

    @field_validator("issued_at_ms")
    @classmethod
    def check_representable(cls, v: int) -> int:
        # Out-of-range timestamps would blow up later in age arithmetic
        try:
            from_epoch_ms(v)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"timestamp out of range: {v}") from e
        return v

    @property
    def issued_at(self) -> datetime:
        return from_epoch_ms(self.issued_at_ms)

    def to_wire(self) -> Dict[str, Any]:
        """Wire representation used inside the encrypted QR code."""
        return self.model_dump(by_alias=True)


class Product(BaseModel):
    """Authoritative product record owned by the registering organization."""
    product_id: str
    org_id: str
    manufacturer_id: str
    status: str
    created_at: Optional[datetime] = None
    name: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    batch_id: Optional[str] = None


class ScanRecord(BaseModel):
    """One verification attempt. Append-only."""
    scan_id: str
    product_id: str
    org_id: str
    timestamp: datetime
    manufacturer_id: Optional[str] = None
    verifier_id: Optional[str] = None
    verifier_name: Optional[str] = None
    location: Optional[str] = None
    channel: VerificationChannel = VerificationChannel.WEB
    verdict: VerificationVerdict
    ai_score: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(0.0, ge=0.0, le=100.0)
    risk_level: RiskLevel = RiskLevel.LOW
    qr_size_class: Optional[int] = None
    image_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ImageVerificationResult(BaseModel):
    """Output contract of the image forensics service."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    logo_match: float = Field(ge=0.0, le=1.0)
    tampering_score: float = Field(ge=0.0, le=1.0)
    text_extracted: bool = False
    serial_number_match: bool = False
    factors: List[str] = Field(default_factory=list)


class FraudRiskFeatures(BaseModel):
    """Pre-aggregated supplier/product statistics. Every feature is optional."""

    # Product features
    product_age_days: Optional[float] = None
    verification_count: Optional[int] = None
    suspicious_verification_rate: Optional[float] = None

    # Supplier features
    supplier_reputation: Optional[float] = None
    supplier_verification_count: Optional[int] = None
    supplier_fraud_history: Optional[int] = None

    # Location features
    verification_locations: Optional[int] = None
    distance_from_origin: Optional[float] = None

    # Temporal features
    verifications_last_7_days: Optional[int] = None
    verifications_last_30_days: Optional[int] = None

    # Pattern features
    repeated_scans_same_user: Optional[int] = None
    multiple_users_same_product: Optional[int] = None

    def supplied_count(self) -> int:
        """Number of features that carry a value."""
        return sum(1 for value in self.model_dump().values() if value is not None)

    @classmethod
    def feature_count(cls) -> int:
        return len(cls.model_fields)


class AuditTransaction(BaseModel):
    """Write-once, hash-identified ledger entry."""
    tx_hash: str
    type: TransactionType
    status: TransactionStatus = TransactionStatus.CONFIRMED
    block_number: int
    ref_type: str
    ref_id: str
    org_id: Optional[str] = None
    created_by: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    product_id: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
