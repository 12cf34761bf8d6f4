"""Routing of repository messages to the valid or invalid subject."""

import asyncio
from dataclasses import dataclass

from secflow.clients.nats import MessageBus
from secflow.errors import BusError, ExistenceCheckError, RoutePublishError
from secflow.models import RepositoryRecord
from secflow.utils.logging import LogContext, get_logger
from secflow.validator.checker import ExistenceChecker
from secflow.validator.clone_url import extract_owner

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of routing one message. Computed per message, never cached."""

    repository: str
    owner: str
    subject: str
    valid: bool
    check_failed: bool = False


class Router:
    """Decodes a repository message, probes the repository and republishes the original bytes."""

    def __init__(
        self,
        bus: MessageBus,
        checker: ExistenceChecker,
        valid_subject: str,
        invalid_subject: str,
        shutdown_event: asyncio.Event | None = None,
    ):
        self.bus = bus
        self.checker = checker
        self.valid_subject = valid_subject
        self.invalid_subject = invalid_subject
        self.shutdown_event = shutdown_event

    async def process(self, payload: bytes) -> RoutingDecision:
        """Route one inbound message.

        Args:
            payload: Raw message bytes as received from the bus

        Returns:
            The routing decision that was published

        Raises:
            RecordDecodeError: The payload is not a repository record; nothing is published
            UnrecognizedCloneURLError: The owner cannot be derived; nothing is published
            RoutePublishError: Publishing to the chosen subject failed
        """
        record = RepositoryRecord.from_json(payload)
        owner = extract_owner(record.clone_url)

        with LogContext(repository=record.name, owner=owner):
            logger.info(f"Processing repository: {record.name}")

            check_failed = False
            try:
                valid = await self.checker.has_probe_file(
                    owner, record.name, shutdown_event=self.shutdown_event
                )
            except ExistenceCheckError as e:
                # Fail closed: an unanswered check routes to the invalid subject
                logger.error(
                    f"Error checking {self.checker.probe_path} for {owner}/{record.name}: {e}"
                )
                valid = False
                check_failed = True

            if valid:
                subject = self.valid_subject
                logger.info(
                    f"Repository {record.name} has {self.checker.probe_path} - routing to {subject}"
                )
            else:
                subject = self.invalid_subject
                logger.info(
                    f"Repository {record.name} missing {self.checker.probe_path} - routing to {subject}"
                )

            try:
                await self.bus.publish(subject, payload)
            except BusError as e:
                raise RoutePublishError(subject, record.name, str(e)) from e

        return RoutingDecision(
            repository=record.name,
            owner=owner,
            subject=subject,
            valid=valid,
            check_failed=check_failed,
        )
