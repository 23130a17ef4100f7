"""
Outbound event bus.

The verification path publishes completed scans here; slower consumers such as
the supply-chain monitor and the enforcement agent subscribe independently.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, List, Sequence

import redis.asyncio as redis
import structlog
from redis.asyncio import Redis

from ..models.messages import AgentMessage

logger = structlog.get_logger(__name__)


class EventBus(ABC):
    """Publish/subscribe transport for AgentMessages."""

    @abstractmethod
    async def publish(self, channel: str, message: AgentMessage) -> None:
        """Publish a message on a channel."""

    @abstractmethod
    def subscribe(self, channels: Sequence[str]) -> AsyncIterator[AgentMessage]:
        """Iterate over messages published on the given channels."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryEventBus(EventBus):
    """Single-process bus backed by asyncio queues. Keeps the most recent messages in ``published``."""

    def __init__(self, history_size: int = 1000):
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self.published: Deque[AgentMessage] = deque(maxlen=history_size)

    async def publish(self, channel: str, message: AgentMessage) -> None:
        self.published.append(message)
        for queue in list(self._subscribers.get(channel, [])):
            queue.put_nowait(message)

    async def subscribe(self, channels: Sequence[str]) -> AsyncIterator[AgentMessage]:
        queue: asyncio.Queue = asyncio.Queue()
        for channel in channels:
            self._subscribers[channel].append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            for channel in channels:
                self._subscribers[channel].remove(queue)


class RedisEventBus(EventBus):
    """Bus on Redis pub/sub; messages travel as JSON."""

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisEventBus":
        return cls(redis.from_url(redis_url, encoding="utf-8", decode_responses=True))

    async def publish(self, channel: str, message: AgentMessage) -> None:
        await self.client.publish(channel, message.model_dump_json())
        logger.debug("Event published", channel=channel, message_id=message.message_id)

    async def subscribe(self, channels: Sequence[str]) -> AsyncIterator[AgentMessage]:
        pubsub = self.client.pubsub()
        await pubsub.subscribe(*channels)
        logger.info("Event subscription started", channels=list(channels))
        try:
            async for raw in pubsub.listen():
                if raw["type"] != "message":
                    continue
                try:
                    yield AgentMessage.model_validate_json(raw["data"])
                except ValueError as e:
                    logger.warning("Dropping malformed event", channel=raw.get("channel"), error=str(e))
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()

    async def ping(self) -> bool:
        try:
            await self.client.ping()
            return True
        except Exception as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.client.aclose()
