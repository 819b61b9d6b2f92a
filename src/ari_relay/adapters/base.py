"""
Base adapter interface for message bus backends.

The relay publishes every event through a BusAdapter, which keeps the relay
core independent of the concrete bus (NATS, in-memory).
"""
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Union

# Event payloads are relayed as read from the wire
Payload = Union[str, bytes]


class QoS(IntEnum):
    """Delivery guarantee requested for a publish call."""
    AT_MOST_ONCE = 0


class BusAdapter(ABC):
    """
    Abstract base class for bus adapters.

    Adapters own their connection handle; the relay only calls publish().
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the message bus.

        Raises:
            ConnectError: If unable to connect to the message bus
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Gracefully disconnect from the message bus.

        Pending outbound messages are flushed before the connection closes.
        """
        pass

    @abstractmethod
    async def publish(
        self,
        topic: str,
        payload: Payload,
        qos: QoS = QoS.AT_MOST_ONCE,
        retain: bool = False,
    ) -> None:
        """
        Publish a payload to a topic.

        Args:
            topic: The topic to publish to (e.g., "ari.events")
            payload: Raw event payload, relayed unchanged
            qos: Delivery guarantee
            retain: Whether the bus should retain the message

        Raises:
            PublishError: If the message could not be published
        """
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the adapter is connected to the message bus.

        Returns:
            True if connected, False otherwise
        """
        pass

    @property
    def name(self) -> str:
        """Return the adapter name for logging."""
        return self.__class__.__name__


def encode_payload(payload: Payload) -> bytes:
    """Return the wire bytes for a payload (text is UTF-8 encoded)."""
    if isinstance(payload, bytes):
        return payload
    return payload.encode("utf-8")
