"""
WebSocket event source for the Asterisk REST Interface (ARI).

ARI pushes call-control events as JSON text frames over a WebSocket opened
against /ari/events. Credentials and the application name travel in the
query string.
"""
import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.frames import CloseCode

from ..adapters.base import Payload
from ..core.config import Settings
from ..core.errors import ConnectError, ReadError
from .base import EventSource

logger = logging.getLogger(__name__)


def build_source_url(settings: Settings) -> str:
    """
    Build the ARI events URL from VOIP_* settings.

    Example:
        ws://pbx:8088/ari/events?api_key=user%3Apass&app=relay&subscribeAll=true
    """
    query = urlencode({
        "api_key": f"{settings.voip_user}:{settings.voip_pass}",
        "app": settings.voip_app,
        "subscribeAll": "true",
    })
    return (
        f"{settings.voip_scheme}://{settings.voip_host}:{settings.voip_port}"
        f"{settings.voip_path}?{query}"
    )


class WebSocketEventSource(EventSource):
    """
    ARI event stream over a WebSocket connection.

    Keep-alive pings are handled by the websockets library. The close frame
    is sent at most once per connection.
    """

    def __init__(
        self,
        url: str,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
    ):
        """
        Initialize the WebSocket event source.

        Args:
            url: Full ARI events URL, including query parameters
            open_timeout: Timeout for the opening handshake (seconds)
            ping_interval: Interval between keep-alive pings (None disables them)
        """
        self._url = url
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ws: Any = None
        self._close_sent = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebSocketEventSource":
        """Create a source from VOIP_* settings."""
        return cls(
            url=build_source_url(settings),
            open_timeout=settings.voip_open_timeout,
            ping_interval=settings.voip_ping_interval,
        )

    async def connect(self) -> None:
        """Open the WebSocket connection."""
        if self.is_connected:
            logger.warning("Already connected to event source")
            return

        # Never log the query string, it carries the credentials
        logger.info(f"Connecting to event source at {self._url.split('?', 1)[0]}")

        try:
            self._ws = await websockets.connect(
                self._url,
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake, InvalidURI) as e:
            logger.error(f"Failed to connect to event source: {e}")
            raise ConnectError(f"Error connecting to websocket: {e}") from e

        self._close_sent = False
        logger.info("Connected to event source")

    async def read_next(self) -> Payload:
        """Wait for the next frame from the event stream."""
        if self._ws is None:
            raise ReadError("Event source is not connected")

        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise ReadError(f"Event source connection closed: {e}") from e

    async def close(self, reason: str = "") -> None:
        """Send a normal-closure frame and wait for the closing handshake."""
        if self._ws is None or self._close_sent:
            return

        self._close_sent = True
        logger.info("Closing event source connection")
        await self._ws.close(code=CloseCode.NORMAL_CLOSURE, reason=reason)
        logger.info("Event source connection closed")

    async def reconnect(self) -> None:
        """Drop the dead connection and open a new one."""
        self._ws = None
        await self.connect()

    @property
    def is_connected(self) -> bool:
        """Check if the WebSocket is open and no close frame was sent."""
        return self._ws is not None and not self._close_sent
