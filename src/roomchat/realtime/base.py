"""Abstract base class and types for room fan-out backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4


class EphemeralEventType(StrEnum):
    """Signals relayed to room subscribers. Never persisted."""

    USER_JOINED_ROOM = "userJoinedRoom"
    USER_LEFT_ROOM = "userLeftRoom"
    TYPING_START = "userTyping"
    TYPING_STOP = "userStoppedTyping"


@dataclass
class EphemeralEvent:
    """One signal published on a room channel.

    ``origin_connection_id`` names the connection that caused the signal so
    subscribers can skip echoing it back. The event type value doubles as the
    client-facing event name and ``payload`` is sent as-is.
    """

    room_id: str
    type: EphemeralEventType
    user_id: str | None
    origin_connection_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


EphemeralCallback = Callable[[EphemeralEvent], Coroutine[Any, Any, None]]


def room_channel(room_id: str) -> str:
    """Channel name carrying the signals of one room."""
    return f"room:{room_id}"


class RealtimeBackend(ABC):
    """Abstract base for pub/sub backends carrying room fan-out.

    Implement this to plug in Redis pub/sub, NATS or similar when several
    server processes share rooms. ``InMemoryRealtime`` covers a single
    process.
    """

    @abstractmethod
    async def publish(self, channel: str, event: EphemeralEvent) -> None:
        """Publish an event to a channel.

        Args:
            channel: Channel name, usually built with :func:`room_channel`.
            event: The signal to deliver to every current subscriber.
        """
        ...

    @abstractmethod
    async def subscribe(self, channel: str, callback: EphemeralCallback) -> str:
        """Subscribe to a channel.

        Args:
            channel: Channel name.
            callback: Awaited once per event published after subscribing.

        Returns:
            A subscription id for :meth:`unsubscribe`.
        """
        ...

    @abstractmethod
    async def unsubscribe(self, subscription_id: str) -> bool:
        """Drop a subscription. Returns ``True`` if it existed."""
        ...

    async def publish_to_room(self, room_id: str, event: EphemeralEvent) -> None:
        """Publish ``event`` on the channel of ``room_id``."""
        await self.publish(room_channel(room_id), event)

    async def subscribe_to_room(self, room_id: str, callback: EphemeralCallback) -> str:
        """Subscribe ``callback`` to the channel of ``room_id``."""
        return await self.subscribe(room_channel(room_id), callback)

    async def close(self) -> None:
        """Clean up resources. The default does nothing."""
        return None
