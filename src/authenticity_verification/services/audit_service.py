"""
Append-only audit ledger.

Every recorded event becomes a hash-identified transaction in a sequentially
numbered block.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from ..db.repositories.base import TransactionStore
from ..models.enums import TransactionStatus, TransactionType
from ..models.schemas import AuditTransaction, ScanRecord
from ..utils.crypto_utils import CryptoUtils
from ..utils.time_utils import to_epoch_ms

logger = structlog.get_logger(__name__)

GENESIS_BLOCK_NUMBER = 1000
TX_HASH_LENGTH = 40


def compute_tx_hash(
    tx_type: TransactionType,
    ref_id: str,
    created_at: datetime,
    org_id: Optional[str],
    crypto: Optional[CryptoUtils] = None
) -> str:
    """
    Deterministic transaction hash.

    Args:
        tx_type: Transaction type
        ref_id: Id of the referenced record
        created_at: Transaction time
        org_id: Owning organization, ``global`` when absent

    Returns:
        ``0x`` followed by 40 hex characters
    """
    crypto = crypto or CryptoUtils()
    seed = f"{tx_type.value}:{ref_id}:{to_epoch_ms(created_at)}:{org_id or 'global'}"
    return "0x" + crypto.generate_secure_hash(seed)[:TX_HASH_LENGTH]


class AuditLedger:
    """Writes ledger transactions through a TransactionStore."""

    def __init__(self, store: TransactionStore, crypto: Optional[CryptoUtils] = None):
        self.store = store
        self.crypto = crypto or CryptoUtils()

    async def next_block_number(self) -> int:
        latest = await self.store.get_latest_block_number()
        return (latest if latest is not None else GENESIS_BLOCK_NUMBER) + 1

    async def record(
        self,
        tx_type: TransactionType,
        ref_type: str,
        ref_id: str,
        org_id: Optional[str],
        created_by: str,
        payload: Dict[str, Any],
        now: datetime
    ) -> AuditTransaction:
        """
        Append a confirmed transaction.

        Args:
            tx_type: Transaction type
            ref_type: Kind of record referenced
            ref_id: Id of the referenced record
            org_id: Owning organization
            created_by: Actor id
            payload: Transaction payload
            now: Transaction time

        Returns:
            The stored AuditTransaction
        """
        transaction = AuditTransaction(
            tx_hash=compute_tx_hash(tx_type, ref_id, now, org_id, self.crypto),
            type=tx_type,
            status=TransactionStatus.CONFIRMED,
            block_number=await self.next_block_number(),
            ref_type=ref_type,
            ref_id=ref_id,
            org_id=org_id,
            created_by=created_by,
            payload=payload,
            product_id=payload.get("productId"),
            created_at=now,
            confirmed_at=now,
        )
        stored = await self.store.append_transaction(transaction)
        logger.info(
            "Ledger transaction recorded",
            tx_hash=stored.tx_hash,
            type=tx_type.value,
            block_number=stored.block_number,
            ref_id=ref_id
        )
        return stored

    async def record_verification(
        self,
        record: ScanRecord,
        created_by: str,
        payload: Dict[str, Any],
        now: datetime
    ) -> AuditTransaction:
        """Append the VERIFY transaction for a scan record."""
        payload = {**payload, "verdict": record.verdict.value}
        if record.product_id != "unknown":
            payload.setdefault("productId", record.product_id)
        return await self.record(
            TransactionType.VERIFY,
            "verification",
            record.scan_id,
            record.org_id,
            created_by,
            payload,
            now,
        )

    def verify_hash(self, transaction: AuditTransaction) -> bool:
        """Check that a transaction's hash matches its content."""
        expected = compute_tx_hash(
            transaction.type,
            transaction.ref_id,
            transaction.created_at,
            transaction.org_id,
            self.crypto,
        )
        return expected == transaction.tx_hash
