"""
Bus Adapters

This package provides the adapter pattern implementation for the message bus
the relay publishes to (NATS, In-Memory).
"""
from .base import BusAdapter, Payload, QoS
from .nats_adapter import NatsAdapter, build_bus_url
from .memory_adapter import MemoryAdapter, PublishedMessage

__all__ = [
    "BusAdapter",
    "Payload",
    "QoS",
    "NatsAdapter",
    "build_bus_url",
    "MemoryAdapter",
    "PublishedMessage",
]
