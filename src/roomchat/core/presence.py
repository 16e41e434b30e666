"""Presence registry: which users are reachable right now."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from roomchat.core.errors import PersistenceError
from roomchat.models.user import PresenceEntry
from roomchat.models.wire import OnlineUser
from roomchat.store.base import ChatStore
from roomchat.transport.hub import ConnectionHub

logger = logging.getLogger("roomchat.presence")

ONLINE_USERS_EVENT = "onlineUsers"


class PresenceRegistry:
    """Process-local map of live connections to user identity.

    Entries are keyed by connection id. A user may hold several connections
    at once; deliveries go to all of them and the durable record goes
    offline only when the last one closes.

    The registry is authoritative for delivery while the process is up. The
    ``is_online`` flag in the store is a best-effort mirror: failures writing
    it are logged and never interrupt a connect or disconnect. Several server
    processes would each see only their own connections; that deployment
    needs a shared registry keyed by user id with TTL-based liveness.
    """

    def __init__(self, store: ChatStore, hub: ConnectionHub) -> None:
        self._store = store
        self._hub = hub
        self._entries: dict[str, PresenceEntry] = {}
        # user id -> connection ids, oldest first
        self._by_user: dict[str, list[str]] = {}

    async def register(
        self,
        connection_id: str,
        user_id: str,
        name: str | None = None,
        avatar_url: str | None = None,
        *,
        email: str | None = None,
    ) -> list[OnlineUser]:
        """Track a connection for ``user_id`` and broadcast the new roster.

        Registering a known connection id again replaces its entry, moving it
        to another user if the id differs.

        Args:
            connection_id: The transport connection joining.
            user_id: Stable id supplied by the identity provider.
            name: Display name carried in the roster.
            avatar_url: Avatar carried in the roster.
            email: Stored on first sight of the user.

        Returns:
            The roster after the change, as broadcast to every connection.
        """
        previous = self._entries.get(connection_id)
        if previous is not None and previous.user_id != user_id:
            self._forget(connection_id)

        self._entries[connection_id] = PresenceEntry(
            connection_id=connection_id,
            user_id=user_id,
            name=name,
            email=email,
            avatar_url=avatar_url,
        )
        connections = self._by_user.setdefault(user_id, [])
        if connection_id in connections:
            connections.remove(connection_id)
        connections.append(connection_id)

        await self._persist(
            user_id,
            is_online=True,
            connection_id=connection_id,
            name=name,
            email=email,
            avatar_url=avatar_url,
        )
        if previous is not None and previous.user_id != user_id:
            await self._persist_departure(previous.user_id)
        logger.info(
            "%s joined",
            name or user_id,
            extra={"user_id": user_id, "connection_id": connection_id},
        )
        return await self._broadcast()

    async def deregister(self, connection_id: str) -> list[OnlineUser]:
        """Forget a connection and broadcast the new roster.

        Unknown connection ids are a no-op apart from returning the roster.
        """
        entry = self._forget(connection_id)
        if entry is None:
            return self.roster()
        await self._persist_departure(entry.user_id)
        logger.info(
            "%s disconnected",
            entry.name or entry.user_id,
            extra={"user_id": entry.user_id, "connection_id": connection_id},
        )
        return await self._broadcast()

    def resolve_connection(self, user_id: str) -> str | None:
        """Most recently registered live connection of ``user_id``.

        Returns:
            The connection id, or ``None`` when the user is offline.
        """
        connections = self._by_user.get(user_id)
        return connections[-1] if connections else None

    def resolve_connections(self, user_id: str) -> list[str]:
        """All live connections of ``user_id``, oldest first."""
        return list(self._by_user.get(user_id, ()))

    def roster(self) -> list[OnlineUser]:
        """Current online roster, one row per live connection in join order.

        This is the payload broadcast as ``onlineUsers``.
        """
        return [OnlineUser.from_entry(e) for e in self._entries.values()]

    def entry(self, connection_id: str) -> PresenceEntry | None:
        """Presence entry of a connection, or ``None`` if it never joined."""
        return self._entries.get(connection_id)

    def entry_for_user(self, user_id: str) -> PresenceEntry | None:
        """Entry of the user's newest connection.

        Args:
            user_id: The user to look up.

        Returns:
            The entry behind :meth:`resolve_connection`, or ``None`` when
            the user has no live connection.
        """
        connection_id = self.resolve_connection(user_id)
        return self._entries.get(connection_id) if connection_id is not None else None

    def is_online(self, user_id: str) -> bool:
        """Whether ``user_id`` holds at least one live connection here."""
        return user_id in self._by_user

    def online_user_ids(self) -> list[str]:
        return list(self._by_user)

    def _forget(self, connection_id: str) -> PresenceEntry | None:
        entry = self._entries.pop(connection_id, None)
        if entry is None:
            return None
        connections = self._by_user.get(entry.user_id, [])
        if connection_id in connections:
            connections.remove(connection_id)
        if not connections:
            self._by_user.pop(entry.user_id, None)
        return entry

    async def _persist_departure(self, user_id: str) -> None:
        remaining = self.resolve_connection(user_id)
        await self._persist(user_id, is_online=remaining is not None, connection_id=remaining)

    async def _persist(
        self,
        user_id: str,
        *,
        is_online: bool,
        connection_id: str | None,
        name: str | None = None,
        email: str | None = None,
        avatar_url: str | None = None,
    ) -> None:
        try:
            await self._store.record_presence(
                user_id,
                is_online=is_online,
                connection_id=connection_id,
                seen_at=datetime.now(UTC),
                name=name,
                email=email,
                avatar_url=avatar_url,
            )
        except PersistenceError:
            logger.exception("Failed to record presence for user %s", user_id)

    async def _broadcast(self) -> list[OnlineUser]:
        roster = self.roster()
        await self._hub.broadcast(ONLINE_USERS_EVENT, [u.to_wire() for u in roster])
        return roster
