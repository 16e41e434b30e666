"""Registry of live transport connections."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from roomchat.models.wire import ServerFrame

logger = logging.getLogger("roomchat.transport.hub")

SendFn = Callable[[str, ServerFrame], Coroutine[Any, Any, None]]
DropFn = Callable[[str], Coroutine[Any, Any, None]]


class ConnectionHub:
    """Maps connection ids to send callbacks and delivers frames to them.

    A connection whose callback keeps failing is dropped after
    ``max_consecutive_errors`` attempts; a single success resets the count.
    Sends to unknown connection ids are skipped, which is what happens to
    deliveries racing a disconnect.

    When a connection is dropped the optional ``on_drop`` callback is
    scheduled as a task rather than awaited, so a fan-out in progress never
    re-enters presence or session teardown.
    """

    def __init__(self, max_consecutive_errors: int = 3, on_drop: DropFn | None = None) -> None:
        self._connections: dict[str, SendFn] = {}
        self._error_counts: dict[str, int] = {}
        self._max_consecutive_errors = max_consecutive_errors
        self._on_drop = on_drop
        self._scheduled_tasks: set[asyncio.Task[Any]] = set()

    def register(self, connection_id: str, send_fn: SendFn) -> None:
        """Register a send callback for a connection.

        Args:
            connection_id: Unique connection identifier.
            send_fn: Async callback receiving ``(connection_id, frame)``.
                Registering an existing id replaces its callback and clears
                its error count.
        """
        self._connections[connection_id] = send_fn
        self._error_counts.pop(connection_id, None)

    def unregister(self, connection_id: str) -> None:
        """Remove a connection. Unknown ids are ignored."""
        self._connections.pop(connection_id, None)
        self._error_counts.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    @property
    def connection_ids(self) -> list[str]:
        return list(self._connections)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def send(self, connection_id: str, event: str, data: Any = None) -> bool:
        """Send one frame to a single connection.

        Args:
            connection_id: Target connection.
            event: Server event name, e.g. ``newMessage``.
            data: JSON-ready payload.

        Returns:
            ``True`` if the callback accepted the frame, ``False`` if the
            connection is unknown or the callback raised.
        """
        send_fn = self._connections.get(connection_id)
        if send_fn is None:
            logger.debug("Skipping %s for vanished connection %s", event, connection_id)
            return False
        try:
            await send_fn(connection_id, ServerFrame(event=event, data=data))
        except Exception:
            self._handle_send_error(connection_id)
            return False
        self._error_counts.pop(connection_id, None)
        return True

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Any = None) -> int:
        """Send one frame to each listed connection once. Returns the delivered count."""
        delivered = 0
        for connection_id in dict.fromkeys(connection_ids):
            if await self.send(connection_id, event, data):
                delivered += 1
        return delivered

    async def broadcast(self, event: str, data: Any = None, *, exclude: str | None = None) -> int:
        """Send one frame to every live connection except ``exclude``."""
        targets = [c for c in self._connections if c != exclude]
        return await self.send_many(targets, event, data)

    async def close(self) -> None:
        """Wait for scheduled drop callbacks to finish."""
        if self._scheduled_tasks:
            await asyncio.gather(*self._scheduled_tasks, return_exceptions=True)
        self._scheduled_tasks.clear()

    def _handle_send_error(self, connection_id: str) -> None:
        consecutive = self._error_counts.get(connection_id, 0) + 1
        self._error_counts[connection_id] = consecutive
        if consecutive >= self._max_consecutive_errors:
            logger.warning(
                "Connection %s removed after %d consecutive send failures",
                connection_id,
                consecutive,
            )
            self.unregister(connection_id)
            if self._on_drop is not None:
                self._create_task(self._on_drop(connection_id), f"drop-{connection_id}")
        else:
            logger.warning(
                "Send failed for connection %s (attempt %d/%d)",
                connection_id,
                consecutive,
                self._max_consecutive_errors,
                exc_info=True,
            )

    def _create_task(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        task.add_done_callback(self._task_done)
        self._scheduled_tasks.add(task)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._scheduled_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Drop callback %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )
