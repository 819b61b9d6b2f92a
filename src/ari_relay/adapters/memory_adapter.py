"""
In-memory adapter for the ARI relay.

This adapter is primarily used for:
- Local development without a running NATS server
- Unit testing

Published messages are kept in memory, in publish order.
"""
import logging
from dataclasses import dataclass
from typing import List

from ..core.errors import PublishError
from .base import BusAdapter, Payload, QoS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedMessage:
    """A message accepted by the memory adapter."""
    topic: str
    payload: Payload
    qos: QoS
    retain: bool


class MemoryAdapter(BusAdapter):
    """
    In-memory bus adapter for development and testing.

    Every publish is appended to `published`; nothing is delivered anywhere.
    """

    def __init__(self):
        """Initialize the memory adapter."""
        self._connected = False
        self.published: List[PublishedMessage] = []

    async def connect(self) -> None:
        """Mark adapter as connected."""
        if self._connected:
            logger.warning("Memory adapter already connected")
            return

        self._connected = True
        logger.info("Memory adapter connected (in-memory mode)")

    async def disconnect(self) -> None:
        """Mark adapter as disconnected. Published messages are kept."""
        self._connected = False
        logger.info(f"Memory adapter disconnected ({len(self.published)} messages published)")

    async def publish(
        self,
        topic: str,
        payload: Payload,
        qos: QoS = QoS.AT_MOST_ONCE,
        retain: bool = False,
    ) -> None:
        """Record a published message."""
        if not self._connected:
            raise PublishError("Memory adapter not connected")

        self.published.append(PublishedMessage(topic, payload, qos, retain))
        logger.debug(f"Published to topic: {topic}")

    def messages_for(self, topic: str) -> List[Payload]:
        """Return the payloads published to one topic, in order."""
        return [m.payload for m in self.published if m.topic == topic]

    @property
    def is_connected(self) -> bool:
        """Check if the adapter is connected."""
        return self._connected
