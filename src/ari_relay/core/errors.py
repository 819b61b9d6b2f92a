"""
Error taxonomy for the ARI relay.

Startup errors (ConfigError, ConnectError) are fatal. Steady-state errors are
handled where they occur: ReadError ends the receive loop, PublishError is
retried and then dropped by the publish loop.
"""


class RelayError(Exception):
    """Base exception for relay errors."""
    pass


class ConfigError(RelayError):
    """Raised when required configuration is missing or invalid."""
    pass


class ConnectError(RelayError):
    """Raised when the event source or the bus cannot be reached at startup."""
    pass


class ReadError(RelayError):
    """Raised when the event source can no longer deliver messages."""
    pass


class PublishError(RelayError):
    """Raised when a message could not be published to the bus."""
    pass


class TopicDerivationError(RelayError):
    """Raised when a bus topic cannot be derived from an event payload."""
    pass
