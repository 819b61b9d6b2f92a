"""
Tests for service wiring.
"""
import asyncio
import os
import signal

import pytest

from ari_relay.adapters import MemoryAdapter, NatsAdapter
from ari_relay.core.errors import ConnectError
from ari_relay.relay import Relay
from ari_relay.service import build_bus, build_relay, build_router, build_source, serve
from ari_relay.sources import WebSocketEventSource
from ari_relay.topics import TopicMode

from conftest import FakeEventSource


class InterruptingSource(FakeEventSource):
    """Event source that receives SIGINT while connecting."""

    async def connect(self) -> None:
        await super().connect()
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.sleep(0.05)


class TestBuilders:

    def test_build_source(self, settings):
        assert isinstance(build_source(settings), WebSocketEventSource)

    def test_build_bus(self, settings):
        assert isinstance(build_bus(settings), MemoryAdapter)
        nats_settings = settings.model_copy(update={"bus_adapter": "nats"})
        assert isinstance(build_bus(nats_settings), NatsAdapter)

    def test_build_router(self, settings):
        router = build_router(settings.model_copy(update={"topic_mode": "derived"}))
        assert router.mode is TopicMode.DERIVED
        assert router.fixed_topic == "ari.events"
        assert router.identifier_field == "asterisk_id"

    def test_build_relay_uses_injected_collaborators(self, settings, source, bus):
        relay = build_relay(settings, source=source, bus=bus)
        assert isinstance(relay, Relay)
        assert relay._source is source
        assert relay._bus is bus


class TestServe:

    async def test_serve_relays_until_source_ends(self, settings, source):
        bus = MemoryAdapter()
        source.feed('{"type": "ChannelCreated"}', '{"type": "ChannelDestroyed"}')
        source.end()
        relay = build_relay(settings, source=source, bus=bus)

        stats = await asyncio.wait_for(serve(settings, relay=relay), timeout=5)

        assert stats["received"] == 2
        assert stats["delivered"] == 2
        assert bus.messages_for("ari.events") == [
            '{"type": "ChannelCreated"}',
            '{"type": "ChannelDestroyed"}',
        ]

    async def test_serve_logs_banner(self, settings, source, caplog):
        source.end()
        relay = build_relay(settings, source=source, bus=MemoryAdapter())

        with caplog.at_level("INFO", logger="ari_relay.service"):
            await asyncio.wait_for(serve(settings, relay=relay), timeout=5)

        assert "* Running Application: relay" in caplog.text
        assert "* Connected to VOIP: pbx.local:8088" in caplog.text
        assert "* Connected to BROKER: nats.local:4222" in caplog.text

    async def test_serve_propagates_connect_error(self, settings, source):
        source.connect_error = ConnectError("refused")
        relay = build_relay(settings, source=source, bus=MemoryAdapter())

        with pytest.raises(ConnectError):
            await serve(settings, relay=relay)

    async def test_signal_during_connect_stops_relay(self, settings, bus):
        """SIGINT while connecting is handled by the coordinator, not raised."""
        source = InterruptingSource()
        relay = build_relay(settings, source=source, bus=bus)

        stats = await asyncio.wait_for(serve(settings, relay=relay), timeout=5)

        assert source.close_frames == [(1000, "SIGINT received")]
        assert stats["received"] == 0
        assert stats["state"] == "stopped"
        assert bus.disconnects == 1
