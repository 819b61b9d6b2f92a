"""
Shutdown coordination for the ARI relay.

SIGINT/SIGTERM trigger a single coordinated stop of the relay: the event
source gets a normal-closure close frame, the receive loop ends, queued
events are drained and both connections are released. A second signal while
the stop is in progress is only logged.
"""
import asyncio
import logging
import signal
from typing import Iterable, Optional

from .relay import Relay

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Turns the first OS interrupt into relay.stop()."""

    def __init__(self, relay: Relay, signals: Iterable[signal.Signals] = DEFAULT_SIGNALS):
        self._relay = relay
        self._signals = tuple(signals)
        self._fired = False
        self._stop_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def fired(self) -> bool:
        """Whether a shutdown has been triggered."""
        return self._fired

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Register the signal handlers on the event loop."""
        self._loop = loop or asyncio.get_running_loop()
        for sig in self._signals:
            self._loop.add_signal_handler(sig, self.trigger, sig)
        logger.debug(f"Shutdown handlers installed for {[s.name for s in self._signals]}")

    def uninstall(self) -> None:
        """Remove the signal handlers again."""
        if self._loop is None:
            return
        for sig in self._signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def trigger(self, signum: int = signal.SIGINT) -> None:
        """
        Start the coordinated stop. Must be called from the event loop.

        Only the first call schedules a stop.
        """
        name = signal.Signals(signum).name
        if self._fired:
            logger.info(f"Received {name}, shutdown already in progress")
            return

        self._fired = True
        logger.info(f"Received {name} interrupt signal.")
        self._stop_task = asyncio.get_running_loop().create_task(
            self._relay.stop(reason=f"{name} received"),
            name="relay-shutdown",
        )

    async def wait(self) -> None:
        """Wait for a triggered stop to complete."""
        if self._stop_task is not None:
            await self._stop_task
