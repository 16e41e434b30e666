"""In-memory realtime backend."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from uuid import uuid4

from roomchat.realtime.base import EphemeralCallback, EphemeralEvent, RealtimeBackend

logger = logging.getLogger("roomchat.realtime")


class InMemoryRealtime(RealtimeBackend):
    """In-process pub/sub where each subscription drains its own queue.

    A slow subscriber only delays itself. When a subscriber falls more than
    ``max_queue_size`` events behind, its oldest pending events are dropped.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscriptions: dict[str, _Subscription] = {}
        self._channels: dict[str, set[str]] = {}
        self._closed = False

    async def publish(self, channel: str, event: EphemeralEvent) -> None:
        """Queue ``event`` for every subscription on ``channel``.

        Returns once queued; callbacks run on each subscription's drain task.
        Publishing after :meth:`close` is a no-op.
        """
        if self._closed:
            return
        for sub_id in self._channels.get(channel, ()):
            self._subscriptions[sub_id].push(event)

    async def subscribe(self, channel: str, callback: EphemeralCallback) -> str:
        """Start a drain task for ``callback`` on ``channel``.

        Args:
            channel: Channel name.
            callback: Awaited per event; exceptions are logged and skipped.

        Returns:
            The new subscription id.
        """
        sub = _Subscription(channel, callback, self._max_queue_size)
        self._subscriptions[sub.id] = sub
        self._channels.setdefault(channel, set()).add(sub.id)
        sub.start()
        return sub.id

    async def unsubscribe(self, subscription_id: str) -> bool:
        """Stop a subscription, discarding its undelivered events."""
        sub = self._subscriptions.pop(subscription_id, None)
        if sub is None:
            return False
        members = self._channels.get(sub.channel)
        if members is not None:
            members.discard(subscription_id)
            if not members:
                del self._channels[sub.channel]
        await sub.stop()
        return True

    async def close(self) -> None:
        """Stop every subscription and refuse further publishes."""
        self._closed = True
        for sub in list(self._subscriptions.values()):
            await sub.stop()
        self._subscriptions.clear()
        self._channels.clear()

    @property
    def subscription_count(self) -> int:
        """Number of live subscriptions across all channels."""
        return len(self._subscriptions)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))


class _Subscription:
    def __init__(self, channel: str, callback: EphemeralCallback, max_queue_size: int) -> None:
        self.id = uuid4().hex
        self.channel = channel
        self._callback = callback
        self._pending: deque[EphemeralEvent] = deque(maxlen=max_queue_size)
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def push(self, event: EphemeralEvent) -> None:
        if self._task is None:
            return
        if len(self._pending) == self._pending.maxlen:
            logger.warning("Subscription %s on %s dropped an event", self.id, self.channel)
        self._pending.append(event)
        self._wakeup.set()

    def start(self) -> None:
        self._task = asyncio.create_task(self._drain())

    async def stop(self) -> None:
        task, self._task = self._task, None
        self._pending.clear()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _drain(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            while self._pending:
                event = self._pending.popleft()
                try:
                    await self._callback(event)
                except Exception:
                    logger.exception("Error in realtime callback for subscription %s", self.id)
