"""
API v1 request and response schemas.
"""

from .alerts import SupplyChainMonitorResponse
from .verification import ProductSummary, TransactionSummary, VerifyRequest, VerifyResponse

__all__ = [
    "ProductSummary",
    "SupplyChainMonitorResponse",
    "TransactionSummary",
    "VerifyRequest",
    "VerifyResponse",
]
