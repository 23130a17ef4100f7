"""
Tests for BaseAgent class and core agent functionality.
"""

import asyncio
from datetime import datetime

import pytest

from authenticity_verification.agents.base import (
    AgentCapability,
    AgentMetadata,
    AgentResponse,
    AgentStatus,
    BaseAgent,
)
from authenticity_verification.models.messages import AgentMessage


class MockAgent(BaseAgent):
    """Mock agent implementation for testing."""

    subscribed_channels = ("test.events",)

    def __init__(self, agent_id: str = "test_agent", event_bus=None):
        capabilities = [
            AgentCapability(
                name="test_capability",
                description="Test capability",
                input_types=["test_input"],
                output_types=["test_output"]
            )
        ]

        super().__init__(
            agent_id=agent_id,
            agent_type="mock_agent",
            version="1.0.0",
            capabilities=capabilities,
            event_bus=event_bus
        )
        self.seen = []

    async def process_message(self, message: AgentMessage) -> AgentResponse:
        """Mock message processing."""
        if message.message_type == "explode":
            raise ValueError("boom")
        if message.message_type == "reject":
            return AgentResponse(success=False, error="rejected")

        self.seen.append(message)
        return AgentResponse(
            success=True,
            result={"processed": True, "message_type": message.message_type}
        )


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestAgentMessage:
    """Test AgentMessage data structure."""

    def test_agent_message_creation(self):
        """Test creating an agent message."""
        message = AgentMessage(
            sender_id="sender_001",
            recipient_id="recipient_001",
            message_type="test_message",
            payload={"data": "test"}
        )

        assert message.sender_id == "sender_001"
        assert message.recipient_id == "recipient_001"
        assert message.message_type == "test_message"
        assert message.payload == {"data": "test"}
        assert message.priority == 0
        assert message.message_id is not None
        assert isinstance(message.timestamp, datetime)
        assert message.timestamp.tzinfo is not None

    def test_agent_message_serialization(self):
        """Test JSON serialization of agent message."""
        message = AgentMessage(
            sender_id="sender_001",
            message_type="test_message",
            payload={"data": "test"}
        )

        json_str = message.model_dump_json()
        assert "sender_001" in json_str
        assert AgentMessage.model_validate_json(json_str) == message


class TestAgentLifecycle:
    """Test agent start, stop, pause and resume."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Test the basic lifecycle without an event bus."""
        agent = MockAgent()
        assert agent.status == AgentStatus.STOPPED

        await agent.start()
        assert agent.status == AgentStatus.RUNNING
        assert agent.started_at is not None
        assert agent.running_tasks == []

        await agent.stop()
        assert agent.status == AgentStatus.STOPPED

    @pytest.mark.asyncio
    async def test_start_twice_fails(self):
        """Test that a running agent cannot be started again."""
        agent = MockAgent()
        await agent.start()

        with pytest.raises(RuntimeError):
            await agent.start()

        await agent.stop()

    @pytest.mark.asyncio
    async def test_pause_and_resume(self):
        """Test pausing and resuming a running agent."""
        agent = MockAgent()
        await agent.start()

        await agent.pause()
        assert agent.status == AgentStatus.PAUSED

        await agent.resume()
        assert agent.status == AgentStatus.RUNNING

        await agent.stop()

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self):
        """Test stopping an agent that never started."""
        agent = MockAgent()
        await agent.stop()
        assert agent.status == AgentStatus.STOPPED


class TestMessageHandling:
    """Test message processing and accounting."""

    @pytest.mark.asyncio
    async def test_successful_message(self):
        """Test that a processed message is counted once."""
        agent = MockAgent()
        message = AgentMessage(sender_id="s", message_type="test_input", correlation_id="corr-1")

        response = await agent.handle_message(message)

        assert response.success is True
        assert response.correlation_id == "corr-1"
        assert response.processing_time_ms >= 0
        assert agent.processed_messages == 1
        assert agent.error_count == 0

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_response(self):
        """Test that a raising handler is reported, counted once, and not propagated."""
        agent = MockAgent()
        response = await agent.handle_message(AgentMessage(sender_id="s", message_type="explode"))

        assert response.success is False
        assert "boom" in response.error
        assert agent.error_count == 1
        assert agent.processed_messages == 0

    @pytest.mark.asyncio
    async def test_rejected_message_counts_as_error(self):
        """Test that an unsuccessful response is counted as an error."""
        agent = MockAgent()
        await agent.handle_message(AgentMessage(sender_id="s", message_type="reject"))

        assert agent.error_count == 1

    def test_get_metadata(self):
        """Test the metadata snapshot."""
        metadata = MockAgent().get_metadata()

        assert isinstance(metadata, AgentMetadata)
        assert metadata.agent_id == "test_agent"
        assert metadata.agent_type == "mock_agent"
        assert metadata.status == AgentStatus.STOPPED
        assert metadata.capabilities[0].name == "test_capability"


class TestEventBusIntegration:
    """Test consuming and publishing bus events."""

    @pytest.mark.asyncio
    async def test_listener_processes_subscribed_events(self, event_bus):
        """Test that events on a subscribed channel reach process_message."""
        agent = MockAgent(event_bus=event_bus)
        await agent.start()
        await asyncio.sleep(0)

        await event_bus.publish("test.events", AgentMessage(sender_id="s", message_type="test_input"))
        await _wait_until(lambda: agent.processed_messages == 1)

        await agent.stop()
        assert agent.running_tasks == []
        assert agent.seen[0].message_type == "test_input"

    @pytest.mark.asyncio
    async def test_paused_agent_skips_events(self, event_bus):
        """Test that a paused agent drops events instead of processing them."""
        agent = MockAgent(event_bus=event_bus)
        await agent.start()
        await asyncio.sleep(0)
        await agent.pause()

        await event_bus.publish("test.events", AgentMessage(sender_id="s", message_type="test_input"))
        await asyncio.sleep(0.05)

        assert agent.processed_messages == 0
        await agent.stop()

    @pytest.mark.asyncio
    async def test_publish(self, event_bus):
        """Test publishing from an agent."""
        agent = MockAgent(event_bus=event_bus)
        message = await agent.publish("test.out", {"value": 1})

        assert message.sender_id == "test_agent"
        assert message.message_type == "test.out"
        assert list(event_bus.published) == [message]

    @pytest.mark.asyncio
    async def test_publish_without_bus(self):
        """Test that publishing without a bus is a no-op."""
        assert await MockAgent().publish("test.out", {}) is None
