"""Shared fixtures: an in-memory message bus and a scriptable existence checker."""

import asyncio
import json
from collections import defaultdict

import pytest

from secflow.errors import BusTimeoutError, ExistenceCheckError

SOURCE_SUBJECT = "github.repositories"
VALID_SUBJECT = "repos.valid"
INVALID_SUBJECT = "repos.invalid"


def make_payload(name: str = "demo", owner: str = "acme", **extra) -> bytes:
    """Build an inbound message the way the collector serializes it."""
    body = {
        "name": name,
        "clone_url": f"https://github.com/{owner}/{name}.git",
        "ssh_url": f"git@github.com:{owner}/{name}.git",
        "https_url": f"https://github.com/{owner}/{name}.git",
        "created_at": "2024-01-15T10:00:00Z",
        "updated_at": "2024-01-16T12:00:00Z",
    }
    body.update(extra)
    return json.dumps(body).encode("utf-8")


class FakeSubscription:
    def __init__(self, bus: "FakeBus", subject: str, handler=None):
        self.bus = bus
        self.subject = subject
        self.handler = handler
        self.queue: asyncio.Queue[bytes] = asyncio.Queue()
        self.active = True

    async def next_message(self, timeout: float) -> bytes:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except TimeoutError as e:
            raise BusTimeoutError(f"no message on {self.subject}") from e

    async def unsubscribe(self) -> None:
        self.active = False
        if self in self.bus.subscriptions[self.subject]:
            self.bus.subscriptions[self.subject].remove(self)


class FakeBus:
    """In-memory stand-in for NATSClient.

    Messages placed in `backlog` are handed to the first pull subscription on their subject, modelling the
    messages already waiting when the validator starts.
    """

    def __init__(self):
        self.published: list[tuple[str, bytes]] = []
        self.backlog: dict[str, list[bytes]] = defaultdict(list)
        self.subscriptions: dict[str, list[FakeSubscription]] = defaultdict(list)
        self.subscribe_calls: list[tuple[str, str]] = []
        self.closed = False
        self.close_calls = 0

    def published_to(self, subject: str) -> list[bytes]:
        return [data for s, data in self.published if s == subject]

    async def publish(self, subject: str, data: bytes) -> None:
        self.published.append((subject, data))
        for subscription in list(self.subscriptions[subject]):
            if subscription.handler is not None:
                await subscription.handler(data)
            else:
                subscription.queue.put_nowait(data)

    async def subscribe_sync(self, subject: str) -> FakeSubscription:
        self.subscribe_calls.append(("sync", subject))
        subscription = FakeSubscription(self, subject)
        for data in self.backlog.pop(subject, []):
            subscription.queue.put_nowait(data)
        self.subscriptions[subject].append(subscription)
        return subscription

    async def subscribe(self, subject: str, handler) -> FakeSubscription:
        self.subscribe_calls.append(("push", subject))
        subscription = FakeSubscription(self, subject, handler)
        self.subscriptions[subject].append(subscription)
        return subscription

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakeChecker:
    """Existence checker with per-repository answers.

    `results` maps repository name to True/False or to an exception instance to raise. `gate`, when set,
    makes every check wait for it, which keeps messages in flight for as long as a test needs.
    """

    probe_path = "appsec-config.yml"

    def __init__(self, default: bool = True):
        self.default = default
        self.results: dict[str, bool | Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self.active = 0
        self.max_active = 0

    async def has_probe_file(self, owner, repo_name, shutdown_event=None) -> bool:
        self.calls.append((owner, repo_name))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            result = self.results.get(repo_name, self.default)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active -= 1


def check_error(repo_name: str = "demo") -> ExistenceCheckError:
    return ExistenceCheckError("acme", repo_name, "appsec-config.yml", "connection reset")


@pytest.fixture
def fake_bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def fake_checker() -> FakeChecker:
    return FakeChecker()
