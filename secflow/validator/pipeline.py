"""
Validator pipeline: drains the backlog of the source subject, then routes live messages concurrently.

Lifecycle (forward only):

    UNINITIALIZED -> DRAINING -> LIVE -> STOPPING -> CLOSED

Startup failures jump straight to CLOSED after releasing the bus connection.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from secflow.clients.github import GitHubClient
from secflow.clients.nats import MessageBus, NATSClient, Unsubscribable
from secflow.errors import BusError, BusTimeoutError, PipelineStateError
from secflow.utils.config import (
    DEFAULT_DRAIN_IDLE_TIMEOUT_SECONDS,
    DEFAULT_MAX_IN_FLIGHT,
    ValidatorSettings,
)
from secflow.utils.error_handling import ErrorCounter, record_exception_and_ignore
from secflow.utils.logging import get_logger
from secflow.validator.checker import ExistenceChecker
from secflow.validator.router import Router

logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[MessageBus]]
RouterFactory = Callable[[MessageBus, asyncio.Event], Router]


class PipelineState(StrEnum):
    UNINITIALIZED = "uninitialized"
    DRAINING = "draining"
    LIVE = "live"
    STOPPING = "stopping"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.UNINITIALIZED: frozenset({PipelineState.DRAINING, PipelineState.CLOSED}),
    PipelineState.DRAINING: frozenset({PipelineState.LIVE, PipelineState.CLOSED}),
    PipelineState.LIVE: frozenset({PipelineState.STOPPING}),
    PipelineState.STOPPING: frozenset({PipelineState.CLOSED}),
    PipelineState.CLOSED: frozenset(),
}


@dataclass(frozen=True)
class PipelineStats:
    drained: int = 0
    drain_failed: int = 0
    processed: int = 0
    failed: int = 0
    refused: int = 0
    in_flight: int = 0


class ValidationPipeline:
    """Owns the bus connection, the drain-then-subscribe startup and the graceful shutdown."""

    def __init__(
        self,
        nats_url: str,
        source_subject: str,
        router_factory: RouterFactory,
        connect: Connector = NATSClient.connect,
        process_startup_messages: bool = True,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        drain_idle_timeout_seconds: float = DEFAULT_DRAIN_IDLE_TIMEOUT_SECONDS,
    ):
        """Initialize the pipeline.

        Args:
            nats_url: URL of the NATS server
            source_subject: Subject carrying inbound repository messages
            router_factory: Builds the router once the bus connection is open
            connect: Coroutine opening the bus connection
            process_startup_messages: Drain the backlog serially before going live
            max_in_flight: Maximum number of live messages routed at the same time
            drain_idle_timeout_seconds: How long a drain pull waits before the backlog counts as empty
        """
        if max_in_flight <= 0:
            raise ValueError("max_in_flight must be positive")

        self.nats_url = nats_url
        self.source_subject = source_subject
        self.process_startup_messages = process_startup_messages
        self.drain_idle_timeout_seconds = drain_idle_timeout_seconds
        self._router_factory = router_factory
        self._connect = connect

        self.state = PipelineState.UNINITIALIZED
        self.bus: MessageBus | None = None
        self.router: Router | None = None
        self.shutdown_event = asyncio.Event()

        self._subscription: Unsubscribable | None = None
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self._in_flight: set[asyncio.Task[None]] = set()
        self._drain_counter: ErrorCounter = {}
        self._live_counter: ErrorCounter = {}
        self._refused = 0

    @classmethod
    def from_settings(cls, settings: ValidatorSettings) -> "ValidationPipeline":
        """Wire a pipeline that checks repositories on GitHub and routes over NATS."""
        github_client = GitHubClient(token=settings.github_token)
        checker = ExistenceChecker(github_client, probe_path=settings.probe_path)

        def router_factory(bus: MessageBus, shutdown_event: asyncio.Event) -> Router:
            return Router(
                bus=bus,
                checker=checker,
                valid_subject=settings.valid_subject,
                invalid_subject=settings.invalid_subject,
                shutdown_event=shutdown_event,
            )

        return cls(
            nats_url=settings.nats_url,
            source_subject=settings.source_subject,
            router_factory=router_factory,
            process_startup_messages=settings.process_startup_messages,
            max_in_flight=settings.max_in_flight,
            drain_idle_timeout_seconds=settings.drain_idle_timeout_seconds,
        )

    @property
    def stats(self) -> PipelineStats:
        return PipelineStats(
            drained=self._drain_counter.get("successful", 0),
            drain_failed=self._drain_counter.get("failed", 0),
            processed=self._live_counter.get("successful", 0),
            failed=self._live_counter.get("failed", 0),
            refused=self._refused,
            in_flight=len(self._in_flight),
        )

    def _transition(self, new_state: PipelineState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise PipelineStateError(f"cannot move pipeline from {self.state} to {new_state}")
        logger.debug(f"Pipeline state {self.state} -> {new_state}")
        self.state = new_state

    async def start(self) -> None:
        """Connect, drain the backlog, then subscribe for live delivery.

        Raises:
            PipelineStateError: If the pipeline was already started
            BusError: If connecting, draining or subscribing fails. The connection is closed before raising.
        """
        self._transition(PipelineState.DRAINING)
        logger.info(f"Starting validator pipeline on subject: {self.source_subject}")

        try:
            self.bus = await self._connect(self.nats_url)
        except Exception:
            self._transition(PipelineState.CLOSED)
            raise

        try:
            self.router = self._router_factory(self.bus, self.shutdown_event)
            logger.info(f"Valid repos will be sent to: {self.router.valid_subject}")
            logger.info(f"Invalid repos will be sent to: {self.router.invalid_subject}")

            await self.process_existing_messages()

            self._subscription = await self.bus.subscribe(self.source_subject, self._on_message)
        except Exception:
            await self.bus.close()
            self.bus = None
            self._transition(PipelineState.CLOSED)
            raise

        self._transition(PipelineState.LIVE)
        logger.info("Validator pipeline started successfully")

    async def process_existing_messages(self) -> None:
        """Route every message already waiting on the source subject, one at a time, in order.

        The backlog counts as empty the first time a pull times out. Routing failures are logged and
        counted without stopping the drain; any receive failure other than the timeout propagates.
        """
        if not self.process_startup_messages:
            logger.info("Startup message processing disabled, skipping...")
            return
        assert self.bus is not None and self.router is not None

        logger.info(f"Processing existing messages from subject: {self.source_subject}")
        subscription = await self.bus.subscribe_sync(self.source_subject)
        try:
            while True:
                try:
                    payload = await subscription.next_message(self.drain_idle_timeout_seconds)
                except BusTimeoutError:
                    break

                with record_exception_and_ignore(
                    logger, "Error processing startup message", self._drain_counter
                ):
                    await self.router.process(payload)
        finally:
            try:
                await subscription.unsubscribe()
            except BusError as e:
                logger.warning(f"Failed to unsubscribe during startup processing: {e}")

        logger.info(
            f"Startup message processing completed. Processed {self.stats.drained} messages, "
            f"{self.stats.drain_failed} failed."
        )

    async def _on_message(self, payload: bytes) -> None:
        """Push handler: hand each delivery to its own tracked task and return immediately."""
        if self.shutdown_event.is_set():
            self._refused += 1
            logger.warning("Shutdown in progress, not processing new messages")
            return

        task = asyncio.create_task(self._route_live_message(payload))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _route_live_message(self, payload: bytes) -> None:
        assert self.router is not None
        async with self._semaphore:
            with record_exception_and_ignore(
                logger, "Error processing message", self._live_counter
            ):
                await self.router.process(payload)

    async def stop(self) -> None:
        """Stop accepting messages, wait for every in-flight message, then close the connection.

        Safe to call more than once. Must not be called while start() is still draining.
        """
        if self.state in (PipelineState.STOPPING, PipelineState.CLOSED):
            return
        if self.state == PipelineState.UNINITIALIZED:
            self._transition(PipelineState.CLOSED)
            return

        self._transition(PipelineState.STOPPING)
        logger.info("Stopping validator pipeline...")

        self.shutdown_event.set()

        if self._subscription is not None:
            try:
                await self._subscription.unsubscribe()
            except BusError as e:
                logger.warning(f"Failed to unsubscribe: {e}")
            self._subscription = None

        while self._in_flight:
            logger.info(f"Waiting for {len(self._in_flight)} in-flight messages")
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

        if self.bus is not None:
            await self.bus.close()

        self._transition(PipelineState.CLOSED)
        stats = self.stats
        logger.info(
            f"Validator pipeline stopped. Routed {stats.processed} live messages, {stats.failed} failed."
        )

    async def wait(self) -> None:
        """Block until shutdown begins."""
        await self.shutdown_event.wait()
