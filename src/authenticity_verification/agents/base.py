"""
Base agent class and core data structures for the alerting agents.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel, Field

from ..models.messages import AgentMessage
from ..services.event_bus import EventBus
from ..utils.time_utils import utc_now

logger = structlog.get_logger(__name__)


class AgentStatus(Enum):
    """Agent lifecycle status enumeration."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"
    PAUSED = "paused"


class AgentResponse(BaseModel):
    """Response structure for agent message processing."""
    success: bool = Field(..., description="Whether processing was successful")
    result: Optional[Dict[str, Any]] = Field(None, description="Response data")
    error: Optional[str] = Field(None, description="Error message if failed")
    processing_time_ms: float = Field(0.0, description="Processing time in milliseconds")
    correlation_id: Optional[str] = Field(None, description="Correlation ID from original message")


class AgentCapability(BaseModel):
    """Agent capability definition."""
    name: str = Field(..., description="Capability name")
    description: str = Field(..., description="Capability description")
    input_types: List[str] = Field(..., description="Supported input message types")
    output_types: List[str] = Field(..., description="Produced output message types")


class AgentMetadata(BaseModel):
    """Agent metadata for health reporting."""
    agent_id: str
    agent_type: str
    version: str = "1.0.0"
    capabilities: List[AgentCapability] = Field(default_factory=list)
    status: AgentStatus = AgentStatus.STOPPED
    started_at: Optional[datetime] = None
    processed_messages: int = 0
    error_count: int = 0


class BaseAgent(ABC):
    """
    Abstract base class for event-driven agents.

    Provides core functionality for:
    - Agent lifecycle management
    - Event bus subscription and publishing
    - Message processing with timing and error accounting
    """

    # Channels the agent consumes once started
    subscribed_channels: Tuple[str, ...] = ()

    def __init__(
        self,
        agent_id: str,
        agent_type: str,
        version: str = "1.0.0",
        capabilities: Optional[List[AgentCapability]] = None,
        event_bus: Optional[EventBus] = None
    ):
        """
        Initialize base agent.

        Args:
            agent_id: Unique identifier for this agent instance
            agent_type: Type/class of agent
            version: Agent version
            capabilities: List of agent capabilities
            event_bus: Bus to consume and publish events on
        """
        self.agent_id = agent_id
        self.agent_type = agent_type
        self.version = version
        self.capabilities = capabilities or []
        self.event_bus = event_bus

        self.status = AgentStatus.STOPPED
        self.running_tasks: List[asyncio.Task] = []
        self.shutdown_event = asyncio.Event()

        # Performance metrics
        self.processed_messages = 0
        self.error_count = 0
        self.started_at: Optional[datetime] = None

        self.logger = structlog.get_logger(
            agent_id=agent_id,
            agent_type=agent_type
        )

    async def start(self) -> None:
        """Start the agent and its event listener."""
        if self.status != AgentStatus.STOPPED:
            raise RuntimeError(f"Agent {self.agent_id} is not in STOPPED state")

        try:
            self.status = AgentStatus.STARTING
            self.started_at = utc_now()
            self.shutdown_event.clear()

            if self.event_bus is not None and self.subscribed_channels:
                self.running_tasks.append(
                    asyncio.create_task(self._event_listener(list(self.subscribed_channels)))
                )

            self.status = AgentStatus.RUNNING
            self.logger.info("Agent started successfully", channels=self.subscribed_channels)

        except Exception as e:
            self.status = AgentStatus.ERROR
            self.error_count += 1
            self.logger.error("Failed to start agent", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop the agent and cancel background tasks."""
        if self.status not in [AgentStatus.RUNNING, AgentStatus.PAUSED]:
            return

        self.status = AgentStatus.STOPPING
        self.logger.info("Stopping agent")
        self.shutdown_event.set()

        for task in self.running_tasks:
            task.cancel()
        if self.running_tasks:
            await asyncio.gather(*self.running_tasks, return_exceptions=True)
        self.running_tasks.clear()

        self.status = AgentStatus.STOPPED
        self.logger.info("Agent stopped successfully")

    async def pause(self) -> None:
        """Pause agent processing."""
        if self.status == AgentStatus.RUNNING:
            self.status = AgentStatus.PAUSED
            self.logger.info("Agent paused")

    async def resume(self) -> None:
        """Resume agent processing."""
        if self.status == AgentStatus.PAUSED:
            self.status = AgentStatus.RUNNING
            self.logger.info("Agent resumed")

    @abstractmethod
    async def process_message(self, message: AgentMessage) -> AgentResponse:
        """
        Process an incoming message or event.

        Args:
            message: Incoming message to process

        Returns:
            Processing response
        """
        pass

    async def handle_message(self, message: AgentMessage) -> AgentResponse:
        """Process a message, recording timing and error counts."""
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        try:
            response = await self.process_message(message)
        except Exception as e:
            self.logger.error(
                "Error processing message",
                error=str(e),
                message_id=message.message_id,
                message_type=message.message_type
            )
            response = AgentResponse(success=False, error=f"Error processing message: {str(e)}")

        response.processing_time_ms = (loop.time() - start_time) * 1000
        response.correlation_id = message.correlation_id
        if response.success:
            self.processed_messages += 1
        else:
            self.error_count += 1

        self.logger.debug(
            "Message processed",
            message_id=message.message_id,
            message_type=message.message_type,
            processing_time_ms=response.processing_time_ms
        )
        return response

    async def publish(self, channel: str, payload: Dict[str, Any]) -> Optional[AgentMessage]:
        """
        Publish an event on the bus.

        Returns:
            The published message, or None when no bus is configured
        """
        if self.event_bus is None:
            return None

        message = AgentMessage(sender_id=self.agent_id, message_type=channel, payload=payload)
        try:
            await self.event_bus.publish(channel, message)
        except Exception as e:
            self.error_count += 1
            self.logger.error("Failed to publish event", channel=channel, error=str(e))
            return None
        return message

    def get_metadata(self) -> AgentMetadata:
        """Get current agent metadata."""
        return AgentMetadata(
            agent_id=self.agent_id,
            agent_type=self.agent_type,
            version=self.version,
            capabilities=self.capabilities,
            status=self.status,
            started_at=self.started_at,
            processed_messages=self.processed_messages,
            error_count=self.error_count
        )

    async def _event_listener(self, channels: List[str]) -> None:
        """Feed bus events on the given channels to handle_message."""
        try:
            async for message in self.event_bus.subscribe(channels):
                if self.shutdown_event.is_set():
                    break
                if self.status != AgentStatus.RUNNING:
                    continue
                await self.handle_message(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error_count += 1
            self.logger.error("Event listener error", error=str(e))
