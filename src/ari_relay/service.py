"""
Service wiring - builds the relay from settings and runs it.
"""
import logging
from typing import Any, Dict, Optional

from .adapters import BusAdapter, MemoryAdapter, NatsAdapter
from .core.config import Settings
from .relay import Relay
from .shutdown import ShutdownCoordinator
from .sources import EventSource, WebSocketEventSource
from .topics import TopicMode, TopicRouter

logger = logging.getLogger(__name__)


def build_source(settings: Settings) -> EventSource:
    """Create the ARI WebSocket event source."""
    return WebSocketEventSource.from_settings(settings)


def build_bus(settings: Settings) -> BusAdapter:
    """
    Factory function to create the bus adapter based on configuration.
    """
    if settings.bus_adapter == "memory":
        return MemoryAdapter()
    return NatsAdapter.from_settings(settings)


def build_router(settings: Settings) -> TopicRouter:
    """Create the topic router from TOPIC_* settings."""
    return TopicRouter(
        mode=TopicMode(settings.topic_mode),
        fixed_topic=settings.publish_topic,
        identifier_field=settings.topic_identifier_field,
    )


def build_relay(
    settings: Settings,
    source: Optional[EventSource] = None,
    bus: Optional[BusAdapter] = None,
) -> Relay:
    """Create a relay, building any collaborator that is not passed in."""
    return Relay(
        source=source or build_source(settings),
        bus=bus or build_bus(settings),
        router=build_router(settings),
        queue_size=settings.queue_size,
        publish_max_retries=settings.publish_max_retries,
        publish_retry_base_delay=settings.publish_retry_base_delay,
        publish_retry_max_delay=settings.publish_retry_max_delay,
        close_timeout=settings.close_timeout,
        drain_timeout=settings.drain_timeout,
        max_reconnect_attempts=settings.voip_max_reconnect_attempts,
        reconnect_base_delay=settings.voip_reconnect_base_delay,
        reconnect_max_delay=settings.voip_reconnect_max_delay,
    )


async def serve(settings: Settings, relay: Optional[Relay] = None) -> Dict[str, Any]:
    """
    Connect and run the relay until it stops.

    SIGINT/SIGTERM are handled from the first connection attempt on; a
    signal during connect stops the relay as soon as it starts running.

    Returns:
        Final relay statistics

    Raises:
        ConnectError: If the event source or the bus cannot be reached
    """
    relay = relay or build_relay(settings)
    coordinator = ShutdownCoordinator(relay)
    coordinator.install()
    try:
        await relay.connect()

        logger.info(f"* Running Application: {settings.voip_app}")
        logger.info(f"* Connected to VOIP: {settings.voip_host}:{settings.voip_port}")
        logger.info(f"* Connected to BROKER: {settings.broker_host}:{settings.broker_port}")

        await relay.run()
    finally:
        coordinator.uninstall()
        await coordinator.wait()

    return relay.get_stats()
