"""NATS client for publishing and subscribing to repository subjects."""

from collections.abc import Awaitable, Callable
from typing import Protocol

import nats
import nats.errors
from nats.aio.client import Client as NATSConnection
from nats.aio.msg import Msg
from nats.aio.subscription import Subscription

from secflow.errors import BusConnectionError, BusError, BusPublishError, BusTimeoutError
from secflow.utils.logging import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[bytes], Awaitable[None]]


class Unsubscribable(Protocol):
    async def unsubscribe(self) -> None: ...


class PullSubscription(Protocol):
    """Synchronous-style subscription: the caller pulls one message at a time."""

    async def next_message(self, timeout: float) -> bytes: ...

    async def unsubscribe(self) -> None: ...


class MessageBus(Protocol):
    """The bus capabilities the pipeline depends on."""

    async def publish(self, subject: str, data: bytes) -> None: ...

    async def subscribe_sync(self, subject: str) -> PullSubscription: ...

    async def subscribe(self, subject: str, handler: MessageHandler) -> Unsubscribable: ...

    async def close(self) -> None: ...


class NATSSubscription:
    """Wrapper around a nats-py subscription usable both for pulling and for push delivery."""

    def __init__(self, subject: str, subscription: Subscription):
        self.subject = subject
        self._subscription = subscription

    async def next_message(self, timeout: float) -> bytes:
        """Wait up to `timeout` seconds for the next message.

        Raises:
            BusTimeoutError: If no message arrived in time
            BusError: For any other receive failure
        """
        try:
            msg = await self._subscription.next_msg(timeout=timeout)
        except nats.errors.TimeoutError as e:
            raise BusTimeoutError(f"no message on {self.subject} within {timeout}s") from e
        except nats.errors.Error as e:
            raise BusError(f"error receiving message on {self.subject}: {e}") from e
        return msg.data

    async def unsubscribe(self) -> None:
        try:
            await self._subscription.unsubscribe()
        except nats.errors.Error as e:
            raise BusError(f"failed to unsubscribe from {self.subject}: {e}") from e


class NATSClient:
    """Client for NATS core publish/subscribe."""

    def __init__(self, connection: NATSConnection):
        self._nc = connection

    @classmethod
    async def connect(cls, url: str) -> "NATSClient":
        """Connect to a NATS server.

        Raises:
            BusConnectionError: If the server cannot be reached
        """
        try:
            connection = await nats.connect(url)
        except (nats.errors.Error, OSError) as e:
            raise BusConnectionError(f"failed to connect to NATS at {url}: {e}") from e

        logger.info(f"Connected to NATS at {url}")
        return cls(connection)

    @property
    def is_closed(self) -> bool:
        return self._nc.is_closed

    async def publish(self, subject: str, data: bytes) -> None:
        try:
            await self._nc.publish(subject, data)
        except nats.errors.Error as e:
            raise BusPublishError(f"failed to publish to {subject}: {e}") from e

    async def subscribe_sync(self, subject: str) -> NATSSubscription:
        """Subscribe without a callback; messages are pulled with next_message()."""
        try:
            subscription = await self._nc.subscribe(subject)
        except nats.errors.Error as e:
            raise BusError(f"failed to create sync subscription on {subject}: {e}") from e
        return NATSSubscription(subject, subscription)

    async def subscribe(self, subject: str, handler: MessageHandler) -> NATSSubscription:
        """Subscribe with push delivery. The handler receives each message's raw payload.

        nats-py awaits the callback before delivering the next message on the subscription,
        so handlers must return promptly.
        """

        async def _callback(msg: Msg) -> None:
            await handler(msg.data)

        try:
            subscription = await self._nc.subscribe(subject, cb=_callback)
        except nats.errors.Error as e:
            raise BusError(f"failed to subscribe to {subject}: {e}") from e
        return NATSSubscription(subject, subscription)

    async def close(self) -> None:
        """Flush and close the connection. Closing twice is a no-op."""
        if self._nc.is_closed:
            return
        await self._nc.close()
        logger.info("NATS connection closed")
