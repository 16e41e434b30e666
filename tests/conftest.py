"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from roomchat.config import ChatConfig
from roomchat.core.framework import ChatKit
from roomchat.core.session import ChatSession
from roomchat.models.wire import ServerFrame
from roomchat.store.memory import InMemoryStore


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Realtime fan-out is delivered by background tasks::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def config() -> ChatConfig:
    return ChatConfig()


@pytest.fixture
async def kit(store: InMemoryStore, config: ChatConfig):
    k = ChatKit(store=store, config=config)
    yield k
    await k.close()


class Outbox:
    """Records frames sent to connections, keyed by connection id."""

    def __init__(self) -> None:
        self.frames: dict[str, list[ServerFrame]] = {}

    async def send(self, connection_id: str, frame: ServerFrame) -> None:
        self.frames.setdefault(connection_id, []).append(frame)

    def events(self, connection_id: str, event: str | None = None) -> list[ServerFrame]:
        frames = self.frames.get(connection_id, [])
        return [f for f in frames if event is None or f.event == event]

    def data(self, connection_id: str, event: str) -> list[Any]:
        return [f.data for f in self.events(connection_id, event)]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


async def join(kit: ChatKit, outbox: Outbox, connection_id: str, user_id: str) -> ChatSession:
    """Open a connection and join it as ``user_id``."""
    session = kit.connect(connection_id, outbox.send)
    await session.dispatch("join", {"userId": user_id, "name": user_id.title()})
    return session
