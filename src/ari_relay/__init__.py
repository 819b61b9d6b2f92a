"""
ARI Relay - forwards Asterisk ARI events onto a NATS message bus.

The relay holds one WebSocket connection to the ARI event stream, fans every
event out to a log observer and a bus publisher, and shuts down in an orderly
way on SIGINT/SIGTERM.
"""

__version__ = "0.1.0"
