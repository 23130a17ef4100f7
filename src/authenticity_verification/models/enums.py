"""
Enumerations shared by the scoring pipeline, persistence layer and API.
"""

from enum import Enum


class VerificationVerdict(str, Enum):
    """Terminal classification of a single scan."""
    GENUINE = "GENUINE"
    SUSPICIOUS = "SUSPICIOUS"
    FAKE = "FAKE"
    INVALID = "INVALID"


class RiskLevel(str, Enum):
    """Severity tier, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Bucket a 0-100 risk score at 25/50/75."""
        if score < 25:
            return cls.LOW
        if score < 50:
            return cls.MEDIUM
        if score < 75:
            return cls.HIGH
        return cls.CRITICAL

    @classmethod
    def highest(cls, *levels: "RiskLevel") -> "RiskLevel":
        """Return the most severe of the given levels."""
        return max(levels, key=lambda level: level.rank)


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class ProductStatus(str, Enum):
    """Lifecycle status of a registered product."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    RECALLED = "recalled"
    BLOCKED = "blocked"
    REVOKED = "revoked"
    FLAGGED = "flagged"


class TransactionType(str, Enum):
    """Ledger transaction types."""
    PRODUCT_REGISTER = "PRODUCT_REGISTER"
    VERIFY = "VERIFY"
    MOVEMENT = "MOVEMENT"
    TRANSFER = "TRANSFER"
    QC_LOG = "QC_LOG"


class TransactionStatus(str, Enum):
    """Ledger transaction status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class VerificationChannel(str, Enum):
    """Channel a verification request arrived through."""
    WEB = "web"
    MOBILE = "mobile"
    API = "api"


class AlertType(str, Enum):
    """Supply-chain alert categories."""
    SUPPLIER_ANOMALY = "supplier_anomaly"
    PRODUCT_FLOW_ANOMALY = "product_flow_anomaly"
    FRAUD_DETECTED = "fraud_detected"
    RISK_THRESHOLD_EXCEEDED = "risk_threshold_exceeded"


class EnforcementActionType(str, Enum):
    """Automated enforcement actions."""
    BLOCK_PRODUCT = "block_product"
    REVOKE_REGISTRATION = "revoke_registration"
    FLAG_SUPPLIER = "flag_supplier"
    SUSPEND_ACCOUNT = "suspend_account"


class EnforcementTarget(str, Enum):
    """Entity an enforcement action applies to."""
    PRODUCT = "product"
    SUPPLIER = "supplier"
    USER = "user"
    BATCH = "batch"
