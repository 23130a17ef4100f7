"""
Repository for the append-only verification (scan) log.
"""

from datetime import datetime, timedelta
from typing import List

import structlog
from sqlalchemy import case, desc, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...models.database import ProductRow, VerificationRow
from ...models.enums import VerificationVerdict
from ...models.schemas import ScanRecord
from ...utils.time_utils import ensure_utc
from .base import (
    ProductScanStats,
    ScanStatisticsStore,
    ScanStore,
    SupplierScanStats,
    SupplierStatsStore,
)

FLAGGED_VERDICTS = (VerificationVerdict.FAKE.value, VerificationVerdict.INVALID.value)


def _to_row(record: ScanRecord) -> VerificationRow:
    return VerificationRow(
        scan_id=record.scan_id,
        product_id=record.product_id,
        org_id=record.org_id,
        manufacturer_id=record.manufacturer_id,
        verifier_id=record.verifier_id,
        verifier_name=record.verifier_name,
        location=record.location,
        channel=record.channel.value,
        verdict=record.verdict.value,
        ai_score=record.ai_score,
        confidence=record.confidence,
        risk_level=record.risk_level.value,
        qr_size_class=record.qr_size_class,
        image_url=record.image_url,
        details=record.metadata,
        created_at=record.timestamp,
    )


def _to_record(row: VerificationRow) -> ScanRecord:
    return ScanRecord(
        scan_id=row.scan_id,
        product_id=row.product_id,
        org_id=row.org_id,
        timestamp=ensure_utc(row.created_at),
        manufacturer_id=row.manufacturer_id,
        verifier_id=row.verifier_id,
        verifier_name=row.verifier_name,
        location=row.location,
        channel=row.channel,
        verdict=row.verdict,
        ai_score=row.ai_score,
        confidence=row.confidence,
        risk_level=row.risk_level,
        qr_size_class=row.qr_size_class,
        image_url=row.image_url,
        metadata=row.details or {},
    )


class ScanRepository(ScanStore, ScanStatisticsStore, SupplierStatsStore):
    """Scan history and aggregates backed by the ``verifications`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = structlog.get_logger(component="scan_repository")

    async def get_recent_scans(self, product_id: str, limit: int) -> List[ScanRecord]:
        try:
            async with self.session_factory() as session:
                query = (
                    select(VerificationRow)
                    .where(VerificationRow.product_id == product_id)
                    .order_by(desc(VerificationRow.created_at))
                    .limit(limit)
                )
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars().all()]

        except Exception as e:
            self.logger.error("Failed to get recent scans", product_id=product_id, error=str(e))
            raise

    async def get_verifier_scans(self, verifier_id: str, since: datetime, limit: int) -> List[ScanRecord]:
        try:
            async with self.session_factory() as session:
                query = (
                    select(VerificationRow)
                    .where(
                        VerificationRow.verifier_id == verifier_id,
                        VerificationRow.created_at > since
                    )
                    .order_by(desc(VerificationRow.created_at))
                    .limit(limit)
                )
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars().all()]

        except Exception as e:
            self.logger.error("Failed to get verifier scans", verifier_id=verifier_id, error=str(e))
            raise

    async def append_scan_record(self, record: ScanRecord) -> ScanRecord:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(_to_row(record))

            self.logger.info(
                "Scan record appended",
                scan_id=record.scan_id,
                product_id=record.product_id,
                verdict=record.verdict.value
            )
            return record

        except Exception as e:
            self.logger.error("Failed to append scan record", scan_id=record.scan_id, error=str(e))
            raise

    async def get_product_scan_stats(self, product_id: str, now: datetime) -> ProductScanStats:
        """
        Aggregate the stored verifications of a product.

        Args:
            product_id: Product to aggregate
            now: Reference time for the 7 and 30 day windows

        Returns:
            ProductScanStats
        """
        try:
            async with self.session_factory() as session:
                of_product = VerificationRow.product_id == product_id

                totals = await session.execute(
                    select(
                        func.count(VerificationRow.scan_id),
                        func.count(distinct(VerificationRow.location)),
                        func.count(distinct(VerificationRow.verifier_id)),
                    ).where(of_product)
                )
                total, locations, verifiers = totals.one()

                flagged = await session.scalar(
                    select(func.count(VerificationRow.scan_id))
                    .where(of_product, VerificationRow.verdict.in_(FLAGGED_VERDICTS))
                )
                last_7 = await session.scalar(
                    select(func.count(VerificationRow.scan_id))
                    .where(of_product, VerificationRow.created_at > now - timedelta(days=7))
                )
                last_30 = await session.scalar(
                    select(func.count(VerificationRow.scan_id))
                    .where(of_product, VerificationRow.created_at > now - timedelta(days=30))
                )

                per_verifier = (
                    select(func.count(VerificationRow.scan_id).label("scans"))
                    .where(of_product, VerificationRow.verifier_id.is_not(None))
                    .group_by(VerificationRow.verifier_id)
                    .subquery()
                )
                max_single = await session.scalar(select(func.max(per_verifier.c.scans)))

            return ProductScanStats(
                verification_count=total or 0,
                flagged_count=flagged or 0,
                verifications_last_7_days=last_7 or 0,
                verifications_last_30_days=last_30 or 0,
                distinct_locations=locations or 0,
                distinct_verifiers=verifiers or 0,
                max_scans_single_verifier=max_single or 0,
            )

        except Exception as e:
            self.logger.error("Failed to aggregate product scans", product_id=product_id, error=str(e))
            raise

    async def count_flagged_for_manufacturer(self, manufacturer_id: str) -> int:
        try:
            async with self.session_factory() as session:
                count = await session.scalar(
                    select(func.count(VerificationRow.scan_id)).where(
                        VerificationRow.manufacturer_id == manufacturer_id,
                        VerificationRow.verdict.in_(FLAGGED_VERDICTS)
                    )
                )
                return count or 0

        except Exception as e:
            self.logger.error(
                "Failed to count flagged verifications",
                manufacturer_id=manufacturer_id,
                error=str(e)
            )
            raise

    async def get_supplier_stats(self, now: datetime, window: timedelta) -> List[SupplierScanStats]:
        """
        Aggregate stored verifications per manufacturer.

        Verifications are attributed through the ``products`` table. FAKE and
        INVALID verdicts count as failures, FAKE alone as fraud.

        Args:
            now: Reference time for the recent-activity window
            window: Trailing window counted as recent verifications

        Returns:
            One SupplierScanStats per manufacturer with registered products
        """
        def _count_if(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        try:
            async with self.session_factory() as session:
                products = await session.execute(
                    select(
                        ProductRow.manufacturer_id,
                        func.min(ProductRow.org_id),
                        func.count(ProductRow.product_id),
                        func.max(ProductRow.created_at),
                    ).group_by(ProductRow.manufacturer_id)
                )
                supplier_rows = products.all()

                verifications = await session.execute(
                    select(
                        ProductRow.manufacturer_id,
                        func.count(VerificationRow.scan_id),
                        _count_if(VerificationRow.created_at > now - window),
                        _count_if(VerificationRow.verdict.in_(FLAGGED_VERDICTS)),
                        _count_if(VerificationRow.verdict == VerificationVerdict.FAKE.value),
                        _count_if(VerificationRow.verdict == VerificationVerdict.SUSPICIOUS.value),
                        func.avg(VerificationRow.ai_score),
                        func.max(VerificationRow.created_at),
                    )
                    .join(ProductRow, ProductRow.product_id == VerificationRow.product_id)
                    .group_by(ProductRow.manufacturer_id)
                )
                by_supplier = {row[0]: row[1:] for row in verifications.all()}

            stats = []
            for supplier_id, org_id, product_count, last_registered in supplier_rows:
                total, recent, failures, fraud, suspicious, average, last_scanned = by_supplier.get(
                    supplier_id, (0, 0, 0, 0, 0, None, None)
                )
                activity = [ensure_utc(ts) for ts in (last_registered, last_scanned) if ts is not None]
                stats.append(SupplierScanStats(
                    supplier_id=supplier_id,
                    org_id=org_id,
                    product_count=product_count,
                    verification_count=total,
                    recent_verifications=int(recent),
                    failure_count=int(failures),
                    fraud_count=int(fraud),
                    suspicious_count=int(suspicious),
                    average_ai_score=float(average) if average is not None else None,
                    last_activity_at=max(activity) if activity else None,
                ))
            return stats

        except Exception as e:
            self.logger.error("Failed to aggregate supplier verifications", error=str(e))
            raise
