"""
Topic routing for relayed events.

By default every event goes to one fixed topic. In derived mode the topic is
taken from the event's Asterisk system identifier, so each Asterisk instance
gets its own topic (e.g. "1234:5678" -> "1234_5678").
"""
import json
import logging
from enum import Enum

from .adapters.base import Payload
from .core.errors import TopicDerivationError

logger = logging.getLogger(__name__)

IDENTIFIER_FIELD = "asterisk_id"


class TopicMode(str, Enum):
    """How the publish topic is chosen for each event."""
    FIXED = "fixed"
    DERIVED = "derived"


def derive_topic(payload: Payload, field: str = IDENTIFIER_FIELD) -> str:
    """
    Derive a bus topic from an event payload.

    Args:
        payload: JSON event payload (text or UTF-8 bytes)
        field: Top-level key holding the identifier

    Returns:
        The identifier with every ":" replaced by "_"

    Raises:
        TopicDerivationError: If the payload is not a JSON object or the
            identifier is missing or not a non-empty string
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TopicDerivationError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise TopicDerivationError("Payload is not a JSON object")

    identifier = data.get(field)
    if not isinstance(identifier, str) or not identifier:
        raise TopicDerivationError(f"Payload has no string '{field}' field")

    return identifier.replace(":", "_")


class TopicRouter:
    """
    Resolves the publish topic for each event.

    In derived mode, events without a usable identifier fall back to the
    fixed topic so they are still relayed.
    """

    def __init__(
        self,
        mode: TopicMode = TopicMode.FIXED,
        fixed_topic: str = "ari.events",
        identifier_field: str = IDENTIFIER_FIELD,
    ):
        self.mode = TopicMode(mode)
        self.fixed_topic = fixed_topic
        self.identifier_field = identifier_field

    def resolve(self, payload: Payload) -> str:
        """Return the topic to publish this payload to."""
        if self.mode is TopicMode.FIXED:
            return self.fixed_topic

        try:
            return derive_topic(payload, self.identifier_field)
        except TopicDerivationError as e:
            logger.warning(f"Using fixed topic {self.fixed_topic}: {e}")
            return self.fixed_topic
