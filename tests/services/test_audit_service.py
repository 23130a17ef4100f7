"""
Tests for the audit ledger.
"""

import hashlib

import pytest

from authenticity_verification.models.enums import (
    TransactionStatus,
    TransactionType,
    VerificationVerdict,
)
from authenticity_verification.services.audit_service import AuditLedger, compute_tx_hash
from authenticity_verification.utils.time_utils import to_epoch_ms

from conftest import NOW


@pytest.fixture
def ledger(transaction_store) -> AuditLedger:
    return AuditLedger(transaction_store)


class TestComputeTxHash:
    """Test transaction hash derivation."""

    def test_hash_format(self):
        """Test the 0x-prefixed 40 character hex digest."""
        tx_hash = compute_tx_hash(TransactionType.VERIFY, "scan-1", NOW, "org-001")

        seed = f"VERIFY:scan-1:{to_epoch_ms(NOW)}:org-001"
        assert tx_hash == "0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest()[:40]
        assert len(tx_hash) == 42

    def test_missing_org_hashes_as_global(self):
        """Test the placeholder used for transactions without an organization."""
        assert compute_tx_hash(TransactionType.VERIFY, "scan-1", NOW, None) == \
            compute_tx_hash(TransactionType.VERIFY, "scan-1", NOW, "global")

    def test_hash_depends_on_every_field(self):
        """Test that changing any input changes the hash."""
        base = compute_tx_hash(TransactionType.VERIFY, "scan-1", NOW, "org-001")

        assert compute_tx_hash(TransactionType.MOVEMENT, "scan-1", NOW, "org-001") != base
        assert compute_tx_hash(TransactionType.VERIFY, "scan-2", NOW, "org-001") != base
        assert compute_tx_hash(TransactionType.VERIFY, "scan-1", NOW, "org-002") != base


class TestAuditLedger:
    """Test appending transactions."""

    @pytest.mark.asyncio
    async def test_first_block_follows_genesis(self, ledger):
        """Test that an empty ledger starts at block 1001."""
        assert await ledger.next_block_number() == 1001

    @pytest.mark.asyncio
    async def test_record_transaction(self, ledger, transaction_store):
        """Test a confirmed transaction referencing a product."""
        tx = await ledger.record(
            TransactionType.PRODUCT_REGISTER,
            "product",
            "prod-001",
            "org-001",
            "user-1",
            {"productId": "prod-001", "sku": "SHEA-250"},
            NOW,
        )

        assert tx.status == TransactionStatus.CONFIRMED
        assert tx.block_number == 1001
        assert tx.product_id == "prod-001"
        assert tx.created_at == NOW
        assert tx.confirmed_at == NOW
        assert transaction_store.transactions == [tx]
        assert await ledger.next_block_number() == 1002

    @pytest.mark.asyncio
    async def test_record_verification(self, ledger, make_scan):
        """Test the VERIFY transaction for a scan of a known product."""
        record = make_scan(verdict=VerificationVerdict.SUSPICIOUS)
        tx = await ledger.record_verification(record, "verifier-1", {"aiScore": 70.0}, NOW)

        assert tx.type == TransactionType.VERIFY
        assert tx.ref_type == "verification"
        assert tx.ref_id == record.scan_id
        assert tx.org_id == record.org_id
        assert tx.product_id == "prod-001"
        assert tx.payload == {"aiScore": 70.0, "verdict": "SUSPICIOUS", "productId": "prod-001"}

    @pytest.mark.asyncio
    async def test_record_verification_of_unknown_product(self, ledger, make_scan):
        """Test that undecodable scans reference no product."""
        record = make_scan(product_id="unknown", verdict=VerificationVerdict.INVALID)
        tx = await ledger.record_verification(record, "verifier-1", {"reason": "bad code"}, NOW)

        assert tx.product_id is None
        assert "productId" not in tx.payload

    @pytest.mark.asyncio
    async def test_verify_hash(self, ledger, make_scan):
        """Test detection of a transaction whose content no longer matches its hash."""
        tx = await ledger.record_verification(make_scan(), "verifier-1", {}, NOW)

        assert ledger.verify_hash(tx) is True
        assert ledger.verify_hash(tx.model_copy(update={"ref_id": "scan-forged"})) is False
