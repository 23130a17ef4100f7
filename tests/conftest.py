"""
Pytest configuration and fixtures.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["APP_DEBUG"] = "false"
os.environ["QR_AES_SECRET"] = "test-qr-secret"
os.environ["API_TOKEN_SECRET"] = "test-token-secret"
os.environ["EVENT_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from authenticity_verification.agents.enforcement_agent import EnforcementAgent
from authenticity_verification.agents.supply_chain_monitor import SupplyChainMonitorAgent
from authenticity_verification.config.settings import Settings
from authenticity_verification.core.container import ServiceContainer
from authenticity_verification.core.database import Database
from authenticity_verification.db.repositories.base import (
    ProductStatusStore,
    ProductStore,
    ScanStore,
    SupplierScanStats,
    SupplierStatsStore,
    TransactionStore,
)
from authenticity_verification.models.enums import RiskLevel, VerificationVerdict
from authenticity_verification.models.schemas import (
    AuditTransaction,
    FraudRiskFeatures,
    ImageVerificationResult,
    Product,
    QRPayload,
    ScanRecord,
)
from authenticity_verification.services.audit_service import AuditLedger
from authenticity_verification.main import create_app
from authenticity_verification.services.auth import ApiTokenVerifier, VerifierContext
from authenticity_verification.services.event_bus import InMemoryEventBus
from authenticity_verification.services.fraud_features import FraudFeatureProvider
from authenticity_verification.services.image_forensics import (
    ImageForensicsClient,
    ImageForensicsError,
)
from authenticity_verification.services.qr_codec import QRCodec
from authenticity_verification.services.verification_service import (
    VerificationConfig,
    VerificationService,
)
from authenticity_verification.utils.time_utils import to_epoch_ms

QR_SECRET = "test-qr-secret"
TOKEN_SECRET = "test-token-secret"
NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryProductStore(ProductStore, ProductStatusStore):
    """Product store over a dict."""

    def __init__(self, products: Optional[List[Product]] = None):
        self.products: Dict[str, Product] = {p.product_id: p for p in products or []}
        self.fail = False

    async def get_product(self, product_id: str) -> Optional[Product]:
        if self.fail:
            raise ConnectionError("product store unavailable")
        return self.products.get(product_id)

    async def set_product_status(self, product_id: str, status: str) -> int:
        return self._set_status(lambda p: p.product_id == product_id, status)

    async def set_batch_status(self, batch_id: str, status: str) -> int:
        return self._set_status(lambda p: p.batch_id == batch_id, status)

    async def set_manufacturer_status(self, manufacturer_id: str, status: str) -> int:
        return self._set_status(lambda p: p.manufacturer_id == manufacturer_id, status)

    def _set_status(self, matches, status: str) -> int:
        if self.fail:
            raise ConnectionError("product store unavailable")
        targets = [p for p in self.products.values() if matches(p)]
        for p in targets:
            self.products[p.product_id] = p.model_copy(update={"status": status})
        return len(targets)


class StaticSupplierStats(SupplierStatsStore):
    """Returns fixed supplier aggregates and records each query."""

    def __init__(self, stats: Optional[List[SupplierScanStats]] = None):
        self.stats = stats or []
        self.calls: List[tuple] = []

    async def get_supplier_stats(self, now: datetime, window: timedelta) -> List[SupplierScanStats]:
        self.calls.append((now, window))
        return list(self.stats)


class InMemoryScanStore(ScanStore):
    """Append-only scan log over a list."""

    def __init__(self):
        self.records: List[ScanRecord] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get_recent_scans(self, product_id: str, limit: int) -> List[ScanRecord]:
        if self.fail_reads:
            raise ConnectionError("scan history unavailable")
        scans = [r for r in self.records if r.product_id == product_id]
        return sorted(scans, key=lambda r: r.timestamp, reverse=True)[:limit]

    async def get_verifier_scans(self, verifier_id: str, since: datetime, limit: int) -> List[ScanRecord]:
        if self.fail_reads:
            raise ConnectionError("scan history unavailable")
        scans = [r for r in self.records if r.verifier_id == verifier_id and r.timestamp > since]
        return sorted(scans, key=lambda r: r.timestamp, reverse=True)[:limit]

    async def append_scan_record(self, record: ScanRecord) -> ScanRecord:
        if self.fail_writes:
            raise ConnectionError("scan store unavailable")
        self.records.append(record)
        return record


class InMemoryTransactionStore(TransactionStore):
    """Ledger over a list."""

    def __init__(self):
        self.transactions: List[AuditTransaction] = []
        self.fail_writes = False

    async def append_transaction(self, transaction: AuditTransaction) -> AuditTransaction:
        if self.fail_writes:
            raise ConnectionError("ledger unavailable")
        self.transactions.append(transaction)
        return transaction

    async def get_latest_block_number(self) -> Optional[int]:
        if not self.transactions:
            return None
        return max(tx.block_number for tx in self.transactions)

    async def get_transaction(self, tx_hash: str) -> Optional[AuditTransaction]:
        return next((tx for tx in self.transactions if tx.tx_hash == tx_hash), None)


class StaticFeatureProvider(FraudFeatureProvider):
    """Returns a fixed feature snapshot."""

    def __init__(self, features: Optional[FraudRiskFeatures] = None):
        self.features = features or FraudRiskFeatures()
        self.fail = False

    async def get_features(self, product, payload, now) -> FraudRiskFeatures:
        if self.fail:
            raise ConnectionError("feature store unavailable")
        return self.features


class StubImageForensics(ImageForensicsClient):
    """Image forensics double with a canned result, error or delay."""

    def __init__(
        self,
        result: Optional[ImageVerificationResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0
    ):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def verify_image(self, image_url: str, product_id: str) -> ImageVerificationResult:
        self.calls.append((image_url, product_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.result is None:
            raise ImageForensicsError("no result configured")
        return self.result


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def codec() -> QRCodec:
    return QRCodec(QR_SECRET)


@pytest.fixture
def product() -> Product:
    """Active product registered thirty days before NOW."""
    return Product(
        product_id="prod-001",
        org_id="org-001",
        manufacturer_id="mfr-001",
        status="active",
        created_at=NOW - timedelta(days=30),
        name="Organic Shea Butter",
        sku="SHEA-250",
        category="cosmetics",
    )


@pytest.fixture
def make_payload() -> Callable[..., QRPayload]:
    def _make(
        product_id: str = "prod-001",
        manufacturer_id: str = "mfr-001",
        org_id: str = "org-001",
        issued_at: datetime = NOW - timedelta(days=1)
    ) -> QRPayload:
        return QRPayload(
            product_id=product_id,
            manufacturer_id=manufacturer_id,
            org_id=org_id,
            issued_at_ms=to_epoch_ms(issued_at)
        )
    return _make


@pytest.fixture
def payload(make_payload) -> QRPayload:
    """Payload issued one day before NOW, matching the product fixture."""
    return make_payload()


@pytest.fixture
def encrypted_qr(codec, payload) -> str:
    return codec.encode(payload)


@pytest.fixture
def make_scan() -> Callable[..., ScanRecord]:
    counter = {"n": 0}

    def _make(
        product_id: str = "prod-001",
        minutes_ago: float = 5,
        verifier_id: Optional[str] = "verifier-x",
        location: Optional[str] = None,
        qr_size_class: Optional[int] = None,
        verdict: VerificationVerdict = VerificationVerdict.GENUINE,
        risk_level: RiskLevel = RiskLevel.LOW,
        manufacturer_id: Optional[str] = "mfr-001"
    ) -> ScanRecord:
        counter["n"] += 1
        return ScanRecord(
            scan_id=f"scan-{counter['n']:04d}",
            product_id=product_id,
            org_id="org-001",
            manufacturer_id=manufacturer_id,
            timestamp=NOW - timedelta(minutes=minutes_ago),
            verifier_id=verifier_id,
            location=location,
            verdict=verdict,
            ai_score=90.0,
            confidence=80.0,
            risk_level=risk_level,
            qr_size_class=qr_size_class,
        )
    return _make


@pytest.fixture
def low_risk_features() -> FraudRiskFeatures:
    return FraudRiskFeatures(
        suspicious_verification_rate=0.0,
        supplier_reputation=90.0,
        supplier_fraud_history=0,
        verification_locations=1,
        verifications_last_7_days=1,
        multiple_users_same_product=1,
    )


@pytest.fixture
def verifier() -> VerifierContext:
    return VerifierContext(uid="verifier-1", org_id="org-001", name="Amina Diallo")


@pytest.fixture
def admin() -> VerifierContext:
    return VerifierContext(uid="admin-1", org_id="org-001", name="Kofi Mensah", role="admin")


@pytest.fixture
def product_store(product) -> InMemoryProductStore:
    return InMemoryProductStore([product])


@pytest.fixture
def scan_store() -> InMemoryScanStore:
    return InMemoryScanStore()


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def supplier_stats() -> StaticSupplierStats:
    return StaticSupplierStats()


@pytest.fixture
def feature_provider(low_risk_features) -> StaticFeatureProvider:
    return StaticFeatureProvider(low_risk_features)


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def build_service(codec, product_store, scan_store, transaction_store, feature_provider, event_bus):
    """Factory for a VerificationService over the in-memory stores."""
    def _build(
        image_forensics: Optional[ImageForensicsClient] = None,
        config: Optional[VerificationConfig] = None
    ) -> VerificationService:
        return VerificationService(
            config=config or VerificationConfig(),
            codec=codec,
            product_store=product_store,
            scan_store=scan_store,
            ledger=AuditLedger(transaction_store),
            fraud_features=feature_provider,
            image_forensics=image_forensics,
            event_bus=event_bus,
            clock=lambda: NOW,
        )
    return _build


@pytest.fixture
def verification_service(build_service) -> VerificationService:
    return build_service()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """In-memory SQLite database with the schema created."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.create_schema()
    yield db
    await db.close()


@pytest.fixture
def token_verifier() -> ApiTokenVerifier:
    return ApiTokenVerifier(TOKEN_SECRET)


@pytest.fixture
def auth_headers(token_verifier, verifier) -> Dict[str, str]:
    """Bearer header for the verifier fixture."""
    return {"Authorization": f"Bearer {token_verifier.issue_token(verifier)}"}


@pytest.fixture
def admin_headers(token_verifier, admin) -> Dict[str, str]:
    """Bearer header for the admin fixture."""
    return {"Authorization": f"Bearer {token_verifier.issue_token(admin)}"}


@pytest.fixture
def api_container(
    verification_service, token_verifier, event_bus, product_store, supplier_stats
) -> ServiceContainer:
    """
    Service container over the in-memory stores.

    Returns:
        ServiceContainer: Container with a healthy stub database
    """
    database = MagicMock()
    database.check_connection = AsyncMock(return_value=True)
    monitor = SupplyChainMonitorAgent(event_bus=event_bus, supplier_stats=supplier_stats)
    enforcement = EnforcementAgent(event_bus=event_bus, product_store=product_store)
    return ServiceContainer(
        settings=Settings(event_backend="memory"),
        verification_service=verification_service,
        token_verifier=token_verifier,
        event_bus=event_bus,
        monitor_agent=monitor,
        enforcement_agent=enforcement,
        database=database,
        agents=[monitor, enforcement],
    )


@pytest_asyncio.fixture
async def async_client(api_container) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async test client for the FastAPI app.

    Yields:
        AsyncClient: Async test client
    """
    app = create_app(settings=api_container.settings, container=api_container)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
