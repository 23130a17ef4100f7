"""
Tests for service wiring.
"""

from datetime import timedelta

import pytest

from authenticity_verification.agents.base import AgentStatus
from authenticity_verification.config.settings import Settings
from authenticity_verification.core.container import build_container, build_event_bus
from authenticity_verification.db.repositories import ProductRepository, ScanRepository
from authenticity_verification.services.event_bus import InMemoryEventBus, RedisEventBus
from authenticity_verification.services.image_forensics import HttpImageForensicsClient


def _settings(**overrides) -> Settings:
    values = {"event_backend": "memory", "database_url": "sqlite+aiosqlite:///:memory:"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestBuildEventBus:
    """Test event bus selection."""

    def test_memory_backend(self):
        assert isinstance(build_event_bus(_settings()), InMemoryEventBus)

    def test_redis_backend(self):
        bus = build_event_bus(_settings(event_backend="redis", redis_url="redis://cache:6379/1"))
        assert isinstance(bus, RedisEventBus)

    def test_unsupported_backend(self):
        with pytest.raises(ValueError, match="Unsupported event backend"):
            build_event_bus(_settings(event_backend="kafka"))


class TestBuildContainer:
    """Test the assembled container."""

    def test_wiring(self):
        """Test that the shared collaborators are wired together."""
        container = build_container(_settings(high_risk_alert_threshold=5, auto_enforcement_enabled=True))

        service = container.verification_service
        assert service.event_bus is container.event_bus
        assert isinstance(service.product_store, ProductRepository)
        assert service.image_forensics is None
        assert container.monitor_agent.high_risk_threshold == 5
        assert container.enforcement_agent.auto_enforcement_enabled is True
        assert container.agents == [container.monitor_agent, container.enforcement_agent]

    def test_agents_read_stores(self):
        """Test that the agents share the repositories and history limits."""
        container = build_container(_settings(agent_history_limit=50, supplier_activity_window_days=14))

        monitor = container.monitor_agent
        assert isinstance(monitor.supplier_stats, ScanRepository)
        assert monitor.activity_window == timedelta(days=14)
        assert monitor.raised_alerts.maxlen == 50
        assert container.enforcement_agent.product_store is container.verification_service.product_store
        assert container.enforcement_agent.executed_actions.maxlen == 50
        assert container.event_bus.published.maxlen == 50

    def test_image_forensics_client(self):
        """Test that a configured forensics URL builds an HTTP client."""
        container = build_container(_settings(
            image_forensics_url="http://forensics:9000/",
            image_forensics_timeout_seconds=3.0
        ))

        client = container.image_forensics
        assert isinstance(client, HttpImageForensicsClient)
        assert client.base_url == "http://forensics:9000"
        assert client.timeout_seconds == 3.0
        assert container.verification_service.image_forensics is client

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Test the container lifecycle."""
        container = build_container(_settings())

        await container.start(create_schema=True)
        assert all(agent.status == AgentStatus.RUNNING for agent in container.agents)
        assert await container.database.check_connection() is True
        assert await ProductRepository(container.database.session_factory).get_product("prod-001") is None

        await container.stop()
        assert all(agent.status == AgentStatus.STOPPED for agent in container.agents)
