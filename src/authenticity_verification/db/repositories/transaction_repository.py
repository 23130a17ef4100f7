"""
Repository for write-once ledger transactions.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...models.database import TransactionRow
from ...models.schemas import AuditTransaction
from ...utils.time_utils import ensure_utc
from .base import TransactionStore


def _to_transaction(row: TransactionRow) -> AuditTransaction:
    return AuditTransaction(
        tx_hash=row.tx_hash,
        type=row.type,
        status=row.status,
        block_number=row.block_number,
        ref_type=row.ref_type,
        ref_id=row.ref_id,
        org_id=row.org_id,
        created_by=row.created_by,
        payload=row.payload or {},
        product_id=row.product_id,
        created_at=ensure_utc(row.created_at),
        confirmed_at=ensure_utc(row.confirmed_at) if row.confirmed_at else None,
    )


class TransactionRepository(TransactionStore):
    """Ledger backed by the ``transactions`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = structlog.get_logger(component="transaction_repository")

    async def append_transaction(self, transaction: AuditTransaction) -> AuditTransaction:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(TransactionRow(
                        tx_hash=transaction.tx_hash,
                        type=transaction.type.value,
                        status=transaction.status.value,
                        block_number=transaction.block_number,
                        ref_type=transaction.ref_type,
                        ref_id=transaction.ref_id,
                        org_id=transaction.org_id,
                        created_by=transaction.created_by,
                        product_id=transaction.product_id,
                        payload=transaction.payload,
                        created_at=transaction.created_at,
                        confirmed_at=transaction.confirmed_at,
                    ))

            self.logger.info(
                "Transaction appended",
                tx_hash=transaction.tx_hash,
                type=transaction.type.value,
                block_number=transaction.block_number
            )
            return transaction

        except Exception as e:
            self.logger.error("Failed to append transaction", tx_hash=transaction.tx_hash, error=str(e))
            raise

    async def get_latest_block_number(self) -> Optional[int]:
        try:
            async with self.session_factory() as session:
                return await session.scalar(select(func.max(TransactionRow.block_number)))

        except Exception as e:
            self.logger.error("Failed to get latest block number", error=str(e))
            raise

    async def get_transaction(self, tx_hash: str) -> Optional[AuditTransaction]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TransactionRow).where(TransactionRow.tx_hash == tx_hash)
                )
                row = result.scalar_one_or_none()
                return _to_transaction(row) if row else None

        except Exception as e:
            self.logger.error("Failed to get transaction", tx_hash=tx_hash, error=str(e))
            raise
