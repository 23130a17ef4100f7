"""
Store interfaces consumed by the verification pipeline.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ...models.schemas import AuditTransaction, Product, ScanRecord


@dataclass(frozen=True)
class ProductScanStats:
    """Stored verification aggregates for one product."""
    verification_count: int = 0
    flagged_count: int = 0
    verifications_last_7_days: int = 0
    verifications_last_30_days: int = 0
    distinct_locations: int = 0
    distinct_verifiers: int = 0
    max_scans_single_verifier: int = 0

    @property
    def flagged_rate(self) -> Optional[float]:
        if not self.verification_count:
            return None
        return self.flagged_count / self.verification_count


@dataclass(frozen=True)
class SupplierScanStats:
    """Stored verification aggregates for one manufacturer's products."""
    supplier_id: str
    org_id: str
    product_count: int = 0
    verification_count: int = 0
    recent_verifications: int = 0
    failure_count: int = 0
    fraud_count: int = 0
    suspicious_count: int = 0
    average_ai_score: Optional[float] = None
    last_activity_at: Optional[datetime] = None

    @property
    def failure_rate(self) -> float:
        if not self.verification_count:
            return 0.0
        return self.failure_count / self.verification_count

    @property
    def suspicious_rate(self) -> float:
        if not self.verification_count:
            return 0.0
        return self.suspicious_count / self.verification_count


class ProductStore(ABC):

    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]:
        """Return the product, or None if it does not exist."""


class ProductStatusStore(ABC):
    """Status changes made by enforcement. Each returns the number of products updated."""

    @abstractmethod
    async def set_product_status(self, product_id: str, status: str) -> int:
        """Set the status of one product."""

    @abstractmethod
    async def set_batch_status(self, batch_id: str, status: str) -> int:
        """Set the status of every product in a batch."""

    @abstractmethod
    async def set_manufacturer_status(self, manufacturer_id: str, status: str) -> int:
        """Set the status of every product registered by a manufacturer."""


class ScanStore(ABC):

    @abstractmethod
    async def get_recent_scans(self, product_id: str, limit: int) -> List[ScanRecord]:
        """Most recent scans of a product, newest first."""

    @abstractmethod
    async def get_verifier_scans(self, verifier_id: str, since: datetime, limit: int) -> List[ScanRecord]:
        """Scans by one verifier across all products since a point in time, newest first."""

    @abstractmethod
    async def append_scan_record(self, record: ScanRecord) -> ScanRecord:
        """Append a scan record. Records are never updated."""


class ScanStatisticsStore(ABC):

    @abstractmethod
    async def get_product_scan_stats(self, product_id: str, now: datetime) -> ProductScanStats:
        """Verification aggregates for one product."""

    @abstractmethod
    async def count_flagged_for_manufacturer(self, manufacturer_id: str) -> int:
        """Number of FAKE or INVALID verifications across a manufacturer's products."""


class SupplierStatsStore(ABC):

    @abstractmethod
    async def get_supplier_stats(self, now: datetime, window: timedelta) -> List[SupplierScanStats]:
        """
        Verification aggregates per manufacturer with registered products.

        Args:
            now: Reference time
            window: Trailing window counted as recent activity
        """


class TransactionStore(ABC):

    @abstractmethod
    async def append_transaction(self, transaction: AuditTransaction) -> AuditTransaction:
        """Append a ledger transaction. Transactions are never updated."""

    @abstractmethod
    async def get_latest_block_number(self) -> Optional[int]:
        """Highest block number recorded so far, or None for an empty ledger."""

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> Optional[AuditTransaction]:
        """Look up a transaction by hash."""
