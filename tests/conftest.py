"""Shared test fixtures for topicast."""

from __future__ import annotations

import json
from typing import Any

import pytest
import pytest_asyncio

from topicast.core.config import Settings
from topicast.services.dispatch import Dispatcher
from topicast.services.feeds import default_feeds
from topicast.services.registry import SubscriptionRegistry
from topicast.services.scheduler import BroadcastScheduler
from topicast.services.session import ClientSession, new_session_id


class FakeTransport:
    """In-memory Transport that records what was sent."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.open = True
        self.fail = False
        self.closed_with: int | None = None

    @property
    def is_open(self) -> bool:
        return self.open

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("connection closed mid-send")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.open = False
        self.closed_with = code

    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]

    def topic_frames(self, topic: str | None = None) -> list[dict[str, Any]]:
        return [
            f
            for f in self.frames()
            if "topic" in f["data"] and (topic is None or f["data"]["topic"] == topic)
        ]


class Harness:
    """Registry + scheduler wired like the server, without the timer callbacks."""

    def __init__(self) -> None:
        self.feeds = default_feeds()
        self.registry = SubscriptionRegistry()
        self.scheduler = BroadcastScheduler(self.registry, self.feeds, interval_sec=0.1)
        self._sessions: list[ClientSession] = []

    async def connect(self) -> tuple[ClientSession, FakeTransport]:
        transport = FakeTransport()
        session = ClientSession(new_session_id(), Dispatcher(transport))
        session.dispatcher.start()
        await self.registry.add(session)
        self._sessions.append(session)
        return session, transport

    async def ticks(self, n: int) -> None:
        for _ in range(n):
            await self.scheduler.tick()
        for session in self._sessions:
            await session.dispatcher.flush()

    async def close(self) -> None:
        await self.scheduler.aclose()
        for session in self._sessions:
            await session.dispatcher.close()


@pytest_asyncio.fixture
async def harness():
    h = Harness()
    yield h
    await h.close()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, BROADCAST_INTERVAL=1000, STATIC_DIR=None, MAX_CLIENTS=5)


@pytest.fixture
def make_transport():
    """Factory for extra FakeTransports within one test."""
    return FakeTransport
