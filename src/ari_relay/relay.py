"""
Relay core - moves events from the event source onto the message bus.

The relay runs three concurrent tasks:
1. Receive loop - reads events from the source and fans each one out
2. Observer loop - logs every event (or hands it to a custom observer)
3. Publish loop - publishes every event to the bus

Each consumer has its own bounded queue, so a stalled publish does not hold
back the observer until the publish queue is full. A full queue blocks the
receive loop (back-pressure); events that were read are never dropped by
the relay itself.

Lifecycle: idle -> connected -> running -> draining -> stopped.
"""
import asyncio
import inspect
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .adapters.base import BusAdapter, Payload, QoS
from .core.errors import ConnectError, ReadError
from .sources.base import EventSource
from .topics import TopicRouter

logger = logging.getLogger(__name__)

# Queued behind the last message to tell a consumer loop to exit
_END = object()


class RelayState(str, Enum):
    """Relay lifecycle states."""
    IDLE = "idle"
    CONNECTED = "connected"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass(frozen=True)
class EventMessage:
    """One event read from the source, numbered in read order."""
    sequence: int
    payload: Payload


class PublishStatus(str, Enum):
    """Result of publishing one event."""
    DELIVERED = "delivered"
    RETRIED = "retried"
    DROPPED = "dropped"


@dataclass(frozen=True)
class PublishOutcome:
    """
    Outcome of publishing one event.

    `retries` is the number of attempts after the first one; `reason` is the
    last error for dropped events.
    """
    sequence: int
    topic: str
    status: PublishStatus
    retries: int = 0
    reason: Optional[str] = None


@dataclass
class RelayStats:
    """Runtime counters for monitoring."""
    received: int = 0
    observed: int = 0
    observer_errors: int = 0
    delivered: int = 0
    retried: int = 0
    dropped: int = 0
    reconnects: int = 0
    started_at: Optional[datetime] = None


Observer = Callable[[EventMessage], Any]
OutcomeSink = Callable[[PublishOutcome], Any]


def log_message(message: EventMessage) -> None:
    """Default observer: one log line per received event."""
    payload = message.payload
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    logger.info(f"Message received: {payload}")


async def _call(func: Callable[..., Any], *args: Any) -> None:
    """Call a sync or async callback."""
    result = func(*args)
    if inspect.isawaitable(result):
        await result


class Relay:
    """
    Event relay between one event source and one bus adapter.

    The source, bus and topic router are injected; the queues are owned by
    the relay instance.
    """

    def __init__(
        self,
        source: EventSource,
        bus: BusAdapter,
        router: Optional[TopicRouter] = None,
        queue_size: int = 1000,
        publish_max_retries: int = 3,
        publish_retry_base_delay: float = 0.5,
        publish_retry_max_delay: float = 10.0,
        close_timeout: float = 5.0,
        drain_timeout: float = 10.0,
        max_reconnect_attempts: int = 0,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
        observer: Optional[Observer] = None,
        on_outcome: Optional[OutcomeSink] = None,
    ):
        """
        Initialize the relay.

        Args:
            source: Event source to read from
            bus: Bus adapter to publish to
            router: Topic router (fixed "ari.events" topic if omitted)
            queue_size: Capacity of each consumer queue
            publish_max_retries: Retries after a failed publish before dropping
            publish_retry_base_delay: First retry delay, doubled per retry (seconds)
            publish_retry_max_delay: Upper bound for the retry delay (seconds)
            close_timeout: Deadline for the close handshake and for the
                receive loop to exit after it (seconds)
            drain_timeout: Deadline for consumers to finish queued work (seconds)
            max_reconnect_attempts: Source reconnects before giving up
                (0 = never, -1 = infinite)
            reconnect_base_delay: First reconnect delay, doubled per attempt (seconds)
            reconnect_max_delay: Upper bound for the reconnect delay (seconds)
            observer: Callback for every event (sync or async), defaults to logging
            on_outcome: Callback for every publish outcome (sync or async)
        """
        self._source = source
        self._bus = bus
        self._router = router or TopicRouter()
        self._publish_max_retries = publish_max_retries
        self._publish_retry_base_delay = publish_retry_base_delay
        self._publish_retry_max_delay = publish_retry_max_delay
        self._close_timeout = close_timeout
        self._drain_timeout = drain_timeout
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_base_delay = reconnect_base_delay
        self._reconnect_max_delay = reconnect_max_delay
        self._observer = observer or log_message
        self._on_outcome = on_outcome

        self._observations: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._publications: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._stop_requested = asyncio.Event()
        self._receive_task: Optional[asyncio.Task] = None
        self._holding_message = False  # read but not yet queued for both consumers
        self._fan_out_deadline: Optional[asyncio.TimerHandle] = None
        self._state = RelayState.IDLE
        self.stats = RelayStats()

    @property
    def state(self) -> RelayState:
        """Current lifecycle state."""
        return self._state

    def _set_state(self, state: RelayState) -> None:
        if state is self._state:
            return
        logger.debug(f"Relay state {self._state.value} -> {state.value}")
        self._state = state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """
        Connect the event source, then the bus.

        Raises:
            ConnectError: If either endpoint cannot be reached. The source is
                closed again when only the bus fails.
        """
        if self._state is not RelayState.IDLE:
            raise RuntimeError(f"Cannot connect relay in state {self._state.value}")

        await self._source.connect()
        try:
            await self._bus.connect()
        except ConnectError:
            try:
                await self._source.close(reason="bus unavailable")
            except Exception as e:
                logger.warning(f"Error closing event source: {e}")
            raise

        self._set_state(RelayState.CONNECTED)

    async def run(self) -> None:
        """
        Relay events until the source is exhausted or stop() is called.

        Returns once every loop has exited and both connections have been
        released. An unexpected error in the receive loop is re-raised after
        the queued events were drained.
        """
        if self._state is not RelayState.CONNECTED:
            raise RuntimeError(f"Cannot run relay in state {self._state.value}")

        self.stats.started_at = datetime.now(timezone.utc)
        self._set_state(RelayState.RUNNING)
        logger.info(f"Relaying events from {self._source.name} to {self._bus.name}")

        self._receive_task = asyncio.create_task(self._receive_loop(), name="relay-receive")
        consumers = [
            asyncio.create_task(self._observe_loop(), name="relay-observe"),
            asyncio.create_task(self._publish_loop(), name="relay-publish"),
        ]
        failure: Optional[BaseException] = None

        try:
            await asyncio.wait([self._receive_task])
            if not self._receive_task.cancelled():
                failure = self._receive_task.exception()
            if failure is not None:
                logger.error(f"Receive loop failed: {failure!r}")

            self._set_state(RelayState.DRAINING)
            await self._drain(consumers)
        finally:
            if self._fan_out_deadline is not None:
                self._fan_out_deadline.cancel()
            pending = [t for t in (self._receive_task, *consumers) if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            await self._release()
            self._set_state(RelayState.STOPPED)
            logger.info(f"Relay stopped. Stats: {self.get_stats()}")

        if failure is not None:
            raise failure

    async def stop(self, reason: str = "shutdown") -> None:
        """
        Stop the relay in an orderly way.

        Only the first call has an effect. No read is started after the stop
        flag is set; the close frame makes a pending read fail, which ends
        the receive loop. If the loop does not exit within the close timeout
        while it is still reading, it is cancelled. A loop that is waiting on
        a full queue holds a message that was already read, so it gets the
        drain timeout to hand it over before it is cancelled. run() then
        drains the queues and releases both connections.
        """
        if self._stop_requested.is_set():
            return
        self._stop_requested.set()

        logger.info(f"Stopping relay ({reason})")
        if self._state is RelayState.RUNNING:
            self._set_state(RelayState.DRAINING)

        try:
            await asyncio.wait_for(
                self._source.close(reason=reason),
                timeout=self._close_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Timed out after {self._close_timeout}s closing event source")
        except Exception as e:
            logger.error(f"Error during closing event source: {e}")

        task = self._receive_task
        if task is not None and not task.done():
            done, _ = await asyncio.wait([task], timeout=self._close_timeout)
            if done:
                return
            if self._holding_message:
                logger.warning(
                    f"Receive loop is waiting on a full queue; allowing "
                    f"{self._drain_timeout}s to queue the last message"
                )
                self._fan_out_deadline = asyncio.get_running_loop().call_later(
                    self._drain_timeout, task.cancel
                )
            else:
                logger.warning("Receive loop did not exit after close, cancelling it")
                task.cancel()

    def get_stats(self) -> Dict[str, Any]:
        """Return relay statistics for monitoring."""
        stats = asdict(self.stats)
        stats["started_at"] = (
            self.stats.started_at.isoformat() if self.stats.started_at else None
        )
        stats["state"] = self._state.value
        stats["pending_observations"] = self._observations.qsize()
        stats["pending_publications"] = self._publications.qsize()
        return stats

    # =========================================================================
    # Receive loop
    # =========================================================================

    async def _receive_loop(self) -> None:
        """Read events and offer each one to both consumer queues."""
        attempt = 0

        while not self._stop_requested.is_set():
            try:
                payload = await self._source.read_next()
            except ReadError as e:
                if self._stop_requested.is_set():
                    logger.info(f"Event source closed: {e}")
                    return
                if await self._reconnect(attempt, e):
                    attempt += 1
                    continue
                if not self._stop_requested.is_set():
                    logger.warning(f"Event source exhausted: {e}")
                return

            attempt = 0
            self.stats.received += 1
            self._holding_message = True
            try:
                await self._fan_out(EventMessage(self.stats.received, payload))
            finally:
                self._holding_message = False

    async def _fan_out(self, message: EventMessage) -> None:
        """
        Offer a message to both queues; wait only on the ones that are full.

        If the wait is cancelled, the consumers that never got the message
        are accounted for: a missed publication is recorded as dropped.
        """
        blocked = []
        for queue in (self._observations, self._publications):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                blocked.append(queue)

        try:
            while blocked:
                await blocked[0].put(message)
                blocked.pop(0)
        except asyncio.CancelledError:
            if self._observations in blocked:
                logger.warning(f"Message {message.sequence} was never observed: relay stopped")
            if self._publications in blocked:
                await self._record(PublishOutcome(
                    message.sequence,
                    "",
                    PublishStatus.DROPPED,
                    reason="relay stopped before the message was queued for publishing",
                ))
            raise

    async def _reconnect(self, attempt: int, error: ReadError) -> bool:
        """
        Reconnect the source with exponential backoff.

        Returns:
            True if the receive loop should keep reading, False to give up
        """
        if self._max_reconnect_attempts >= 0 and attempt >= self._max_reconnect_attempts:
            return False

        delay = min(
            self._reconnect_base_delay * (2 ** attempt),
            self._reconnect_max_delay,
        )
        logger.warning(f"{error}; reconnecting in {delay:.1f}s (attempt {attempt + 1})")

        try:
            await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
            return False  # Stop requested during backoff
        except asyncio.TimeoutError:
            pass

        try:
            await self._source.reconnect()
        except ConnectError as e:
            logger.warning(f"Reconnect attempt {attempt + 1} failed: {e}")
            return True

        self.stats.reconnects += 1
        logger.info(f"Reconnected to event source (attempt {attempt + 1})")
        return True

    # =========================================================================
    # Consumer loops
    # =========================================================================

    async def _observe_loop(self) -> None:
        """Hand every event to the observer. Observer errors are swallowed."""
        while True:
            message = await self._observations.get()
            if message is _END:
                return
            try:
                await _call(self._observer, message)
                self.stats.observed += 1
            except Exception:
                self.stats.observer_errors += 1
                logger.debug(f"Observer failed for message {message.sequence}", exc_info=True)

    async def _publish_loop(self) -> None:
        """Publish every event; a failed event never blocks the next one."""
        while True:
            message = await self._publications.get()
            if message is _END:
                return
            try:
                outcome = await self._publish(message)
            except Exception as e:
                outcome = PublishOutcome(
                    message.sequence, "", PublishStatus.DROPPED, reason=str(e)
                )
            await self._record(outcome)

    async def _publish(self, message: EventMessage) -> PublishOutcome:
        """Publish one event, retrying with exponential backoff."""
        topic = self._router.resolve(message.payload)
        error: Optional[Exception] = None

        for attempt in range(self._publish_max_retries + 1):
            if attempt:
                delay = min(
                    self._publish_retry_base_delay * (2 ** (attempt - 1)),
                    self._publish_retry_max_delay,
                )
                await asyncio.sleep(delay)
            try:
                await self._bus.publish(
                    topic, message.payload, qos=QoS.AT_MOST_ONCE, retain=False
                )
            except Exception as e:
                error = e
                logger.info(
                    f"Publish of message {message.sequence} to {topic} failed "
                    f"(attempt {attempt + 1}): {e}"
                )
                continue

            status = PublishStatus.DELIVERED if attempt == 0 else PublishStatus.RETRIED
            return PublishOutcome(message.sequence, topic, status, retries=attempt)

        return PublishOutcome(
            message.sequence,
            topic,
            PublishStatus.DROPPED,
            retries=self._publish_max_retries,
            reason=str(error),
        )

    async def _record(self, outcome: PublishOutcome) -> None:
        """Count an outcome, log it and pass it to the outcome sink."""
        if outcome.status is PublishStatus.DELIVERED:
            self.stats.delivered += 1
            logger.debug(f"Published message {outcome.sequence} to {outcome.topic}")
        elif outcome.status is PublishStatus.RETRIED:
            self.stats.retried += 1
            logger.info(
                f"Published message {outcome.sequence} to {outcome.topic} "
                f"after {outcome.retries} retries"
            )
        else:
            self.stats.dropped += 1
            logger.warning(
                f"Dropped message {outcome.sequence} for {outcome.topic}: {outcome.reason}"
            )

        if self._on_outcome is not None:
            try:
                await _call(self._on_outcome, outcome)
            except Exception:
                logger.exception("Error in publish outcome handler")

    # =========================================================================
    # Shutdown helpers
    # =========================================================================

    async def _drain(self, consumers: List[asyncio.Task]) -> None:
        """Let consumers finish queued events, bounded by the drain timeout."""
        try:
            await asyncio.wait_for(self._finish(consumers), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Drain timed out after {self._drain_timeout}s; abandoning "
                f"{self._observations.qsize()} observations and "
                f"{self._publications.qsize()} publications"
            )
            for task in consumers:
                task.cancel()
            await asyncio.gather(*consumers, return_exceptions=True)

    async def _finish(self, consumers: List[asyncio.Task]) -> None:
        await asyncio.gather(self._observations.put(_END), self._publications.put(_END))
        await asyncio.gather(*consumers)

    async def _release(self) -> None:
        """Close the source (no-op if already closed) and disconnect the bus."""
        try:
            await asyncio.wait_for(
                self._source.close(reason="relay stopped"),
                timeout=self._close_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {self._close_timeout}s closing event source")
        except Exception as e:
            logger.warning(f"Error closing event source: {e}")

        try:
            await self._bus.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting from bus: {e}")
