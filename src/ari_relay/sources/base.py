"""
Base interface for event sources.

An event source owns one long-lived connection to the signaling server and
hands out raw event payloads one at a time.
"""
from abc import ABC, abstractmethod

from ..adapters.base import Payload


class EventSource(ABC):
    """
    Abstract base class for event sources.

    The relay's receive loop is the only caller of read_next(); close() may
    be called concurrently by the shutdown path.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection to the signaling server.

        Raises:
            ConnectError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def read_next(self) -> Payload:
        """
        Wait for the next event payload.

        Returns:
            The payload exactly as received

        Raises:
            ReadError: If the connection is closed or broken
        """
        pass

    @abstractmethod
    async def close(self, reason: str = "") -> None:
        """
        Send a normal-closure close frame and release the connection.

        Calling close() more than once sends a single close frame.
        """
        pass

    async def reconnect(self) -> None:
        """
        Replace a dead connection with a new one.

        Raises:
            ConnectError: If the new connection cannot be established
        """
        await self.connect()

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the source connection is open."""
        pass

    @property
    def name(self) -> str:
        """Return the source name for logging."""
        return self.__class__.__name__
