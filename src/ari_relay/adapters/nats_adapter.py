"""
NATS adapter for the ARI relay.

This adapter implements the BusAdapter interface using NATS Core pub/sub.
Core publishes are fire-and-forget, which is the at-most-once delivery
the relay asks for.
"""
import logging

import nats
from nats.aio.client import Client as NatsClient

from ..core.config import Settings
from ..core.errors import ConnectError, PublishError
from .base import BusAdapter, Payload, QoS, encode_payload

logger = logging.getLogger(__name__)


def build_bus_url(settings: Settings) -> str:
    """Build the broker URL from BROKER_* settings."""
    return (
        f"{settings.broker_scheme}://{settings.broker_host}:"
        f"{settings.broker_port}{settings.broker_path}"
    )


class NatsAdapter(BusAdapter):
    """
    NATS adapter for the ARI relay.

    Features:
    - Automatic reconnection handled by the NATS client
    - Client name and user/password authentication
    - Optional subject prefix (e.g., "ari." -> "ari.<topic>")
    """

    def __init__(
        self,
        url: str = "nats://localhost:4222",
        client_id: str = "ARI-Handler",
        user: str = "",
        password: str = "",
        subject_prefix: str = "",
        reconnect_time_wait: int = 2,
        max_reconnect_attempts: int = -1,
    ):
        """
        Initialize the NATS adapter.

        Args:
            url: NATS server URL
            client_id: Client name reported to the server
            user: Username (empty for anonymous access)
            password: Password
            subject_prefix: Prefix prepended to every topic
            reconnect_time_wait: Time to wait between reconnection attempts (seconds)
            max_reconnect_attempts: Max reconnection attempts (-1 for infinite)
        """
        self._url = url
        self._client_id = client_id
        self._user = user
        self._password = password
        self._subject_prefix = subject_prefix
        self._reconnect_time_wait = reconnect_time_wait
        self._max_reconnect_attempts = max_reconnect_attempts
        self._client: NatsClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "NatsAdapter":
        """Create an adapter from BROKER_* settings."""
        return cls(
            url=build_bus_url(settings),
            client_id=settings.broker_client_id,
            user=settings.broker_user,
            password=settings.broker_pass,
            subject_prefix=settings.broker_subject_prefix,
            reconnect_time_wait=settings.broker_reconnect_time_wait,
            max_reconnect_attempts=settings.broker_max_reconnect_attempts,
        )

    async def connect(self) -> None:
        """Connect to NATS server with auto-reconnection."""
        if self._client is not None and self._client.is_connected:
            logger.warning("Already connected to NATS")
            return

        logger.info(f"Connecting to NATS at {self._url} as {self._client_id}")

        try:
            self._client = await nats.connect(
                servers=[self._url],
                name=self._client_id,
                user=self._user or None,
                password=self._password or None,
                reconnect_time_wait=self._reconnect_time_wait,
                max_reconnect_attempts=self._max_reconnect_attempts,
                error_cb=self._error_callback,
                disconnected_cb=self._disconnected_callback,
                reconnected_cb=self._reconnected_callback,
                closed_cb=self._closed_callback,
            )
            logger.info(f"Connected to NATS server: {self._client.connected_url}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise ConnectError(f"Failed to connect to NATS at {self._url}: {e}") from e

    async def disconnect(self) -> None:
        """Drain pending publishes and close the connection."""
        if self._client is None:
            return

        logger.info("Disconnecting from NATS")

        try:
            await self._client.drain()
        except Exception as e:
            logger.warning(f"Error draining NATS connection: {e}")

        self._client = None
        logger.info("Disconnected from NATS")

    async def publish(
        self,
        topic: str,
        payload: Payload,
        qos: QoS = QoS.AT_MOST_ONCE,
        retain: bool = False,
    ) -> None:
        """
        Publish a payload to a NATS subject.

        Args:
            topic: Topic name, mapped to a subject with the configured prefix
            payload: Raw event payload
            qos: Only QoS.AT_MOST_ONCE is supported by NATS Core
            retain: NATS Core has no retained messages, must be False
        """
        if qos != QoS.AT_MOST_ONCE:
            raise PublishError(f"NATS Core does not support QoS {qos!r}")
        if retain:
            raise PublishError("NATS Core does not support retained messages")
        if not self.is_connected:
            raise PublishError("Not connected to NATS")

        subject = self._topic_to_subject(topic)

        try:
            await self._client.publish(subject, encode_payload(payload))
            logger.debug(f"Published message to {subject}")
        except Exception as e:
            logger.error(f"Failed to publish to {subject}: {e}")
            raise PublishError(f"Failed to publish to {subject}: {e}") from e

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS."""
        return self._client is not None and self._client.is_connected

    def _topic_to_subject(self, topic: str) -> str:
        """
        Convert topic name to NATS subject.

        Examples (prefix "ari."):
            "events" -> "ari.events"
            "1234_5678" -> "ari.1234_5678"
        """
        return f"{self._subject_prefix}{topic}"

    # NATS callbacks for connection lifecycle

    async def _error_callback(self, e: Exception) -> None:
        """Called on NATS errors."""
        logger.error(f"NATS error: {e}")

    async def _disconnected_callback(self) -> None:
        """Called when disconnected from NATS."""
        logger.warning("Disconnected from NATS server")

    async def _reconnected_callback(self) -> None:
        """Called when reconnected to NATS."""
        logger.info(f"Reconnected to NATS server: {self._client.connected_url}")

    async def _closed_callback(self) -> None:
        """Called when NATS connection is closed."""
        logger.info("NATS connection closed")
