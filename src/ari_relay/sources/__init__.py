"""
Event Sources

Connections that produce raw call-control events for the relay.
"""
from .base import EventSource
from .websocket_source import WebSocketEventSource, build_source_url

__all__ = [
    "EventSource",
    "WebSocketEventSource",
    "build_source_url",
]
