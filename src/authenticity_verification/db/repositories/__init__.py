"""
Store interfaces and their SQLAlchemy repositories.
"""

from .base import (
    ProductScanStats,
    ProductStatusStore,
    ProductStore,
    ScanStatisticsStore,
    ScanStore,
    SupplierScanStats,
    SupplierStatsStore,
    TransactionStore,
)
from .product_repository import ProductRepository
from .scan_repository import ScanRepository
from .transaction_repository import TransactionRepository

__all__ = [
    "ProductRepository",
    "ProductScanStats",
    "ProductStatusStore",
    "ProductStore",
    "ScanRepository",
    "ScanStatisticsStore",
    "ScanStore",
    "SupplierScanStats",
    "SupplierStatsStore",
    "TransactionRepository",
    "TransactionStore",
]
