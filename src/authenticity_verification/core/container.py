"""
Process-wide service wiring.

Everything the request handlers need is built once from Settings, started by
the application lifespan and handed to endpoints through ``app.state``.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from ..agents.base import BaseAgent
from ..agents.enforcement_agent import EnforcementAgent
from ..agents.supply_chain_monitor import SupplyChainMonitorAgent
from ..config.settings import Settings
from ..db.repositories import ProductRepository, ScanRepository, TransactionRepository
from ..services.audit_service import AuditLedger
from ..services.auth import ApiTokenVerifier
from ..services.event_bus import EventBus, InMemoryEventBus, RedisEventBus
from ..services.fraud_features import ScanStatsFeatureProvider
from ..services.image_forensics import HttpImageForensicsClient, ImageForensicsClient
from ..services.qr_codec import QRCodec
from ..services.verification_service import VerificationConfig, VerificationService
from .database import Database

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """Long-lived collaborators shared by all requests."""
    settings: Settings
    verification_service: VerificationService
    token_verifier: ApiTokenVerifier
    event_bus: EventBus
    monitor_agent: SupplyChainMonitorAgent
    enforcement_agent: EnforcementAgent
    database: Optional[Database] = None
    image_forensics: Optional[ImageForensicsClient] = None
    agents: List[BaseAgent] = field(default_factory=list)

    async def start(self, create_schema: bool = False) -> None:
        if self.database is not None and create_schema:
            await self.database.create_schema()
        for agent in self.agents:
            await agent.start()
        logger.info("Service container started", agents=[agent.agent_id for agent in self.agents])

    async def stop(self) -> None:
        for agent in self.agents:
            await agent.stop()
        if self.image_forensics is not None:
            await self.image_forensics.close()
        await self.event_bus.close()
        if self.database is not None:
            await self.database.close()
        logger.info("Service container stopped")


def build_event_bus(settings: Settings) -> EventBus:
    if settings.event_backend == "memory":
        return InMemoryEventBus(history_size=settings.agent_history_limit)
    if settings.event_backend == "redis":
        return RedisEventBus.from_url(settings.redis_url)
    raise ValueError(f"Unsupported event backend: {settings.event_backend}")


def build_container(settings: Settings) -> ServiceContainer:
    """
    Build every long-lived collaborator from settings.

    Args:
        settings: Application settings

    Returns:
        ServiceContainer ready to be started
    """
    database = Database(settings.database_url, echo=settings.database_echo)
    event_bus = build_event_bus(settings)

    scans = ScanRepository(database.session_factory)
    products = ProductRepository(database.session_factory)
    image_forensics = None
    if settings.image_forensics_enabled:
        image_forensics = HttpImageForensicsClient(
            settings.image_forensics_url,
            timeout_seconds=settings.image_forensics_timeout_seconds
        )

    verification_service = VerificationService(
        config=VerificationConfig.from_settings(settings),
        codec=QRCodec(settings.qr_aes_secret),
        product_store=products,
        scan_store=scans,
        ledger=AuditLedger(TransactionRepository(database.session_factory)),
        fraud_features=ScanStatsFeatureProvider(scans),
        image_forensics=image_forensics,
        event_bus=event_bus,
    )

    monitor = SupplyChainMonitorAgent(
        event_bus=event_bus,
        supplier_stats=scans,
        high_risk_threshold=settings.high_risk_alert_threshold,
        window_size=settings.high_risk_alert_window,
        activity_window_days=settings.supplier_activity_window_days,
        history_limit=settings.agent_history_limit,
        max_tracked_products=settings.max_tracked_products
    )
    enforcement = EnforcementAgent(
        event_bus=event_bus,
        product_store=products,
        auto_enforcement_enabled=settings.auto_enforcement_enabled,
        history_limit=settings.agent_history_limit
    )

    return ServiceContainer(
        settings=settings,
        verification_service=verification_service,
        token_verifier=ApiTokenVerifier(settings.api_token_secret),
        event_bus=event_bus,
        monitor_agent=monitor,
        enforcement_agent=enforcement,
        database=database,
        image_forensics=image_forensics,
        agents=[monitor, enforcement],
    )
