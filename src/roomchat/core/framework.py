"""ChatKit orchestrator."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from roomchat.config import ChatConfig
from roomchat.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from roomchat.core.history import MessagePage, PageRequest, Pagination
from roomchat.core.locks import InMemoryLockManager, RoomLockManager
from roomchat.core.presence import PresenceRegistry
from roomchat.core.rooms import RoomService
from roomchat.core.router import DeliveryReport, ScopeRouter
from roomchat.core.session import ChatSession
from roomchat.identity.base import IdentityResolver
from roomchat.identity.payload import PayloadIdentityResolver
from roomchat.models.enums import MemberRole, MessageScope
from roomchat.models.message import Message
from roomchat.models.room import ChatRoom
from roomchat.models.user import User
from roomchat.models.wire import MessageOut, SendMessageRequest
from roomchat.realtime.base import RealtimeBackend
from roomchat.realtime.memory import InMemoryRealtime
from roomchat.store.base import ChatStore
from roomchat.store.memory import InMemoryStore
from roomchat.transport.hub import ConnectionHub, SendFn

logger = logging.getLogger("roomchat.framework")


class ChatKit:
    """Central orchestrator tying presence, rooms, routing and storage together."""

    def __init__(
        self,
        store: ChatStore | None = None,
        identity_resolver: IdentityResolver | None = None,
        lock_manager: RoomLockManager | None = None,
        realtime: RealtimeBackend | None = None,
        config: ChatConfig | None = None,
    ) -> None:
        """Initialise the ChatKit orchestrator.

        Args:
            store: Persistent storage backend. Defaults to ``InMemoryStore``.
            identity_resolver: Validates ``join`` claims. Defaults to
                ``PayloadIdentityResolver``, which trusts the payload.
            lock_manager: Per-room locking backend. Defaults to
                ``InMemoryLockManager``. For multi-process deployments,
                supply a distributed implementation.
            realtime: Fan-out backend for room notices and typing signals.
                Defaults to ``InMemoryRealtime``.
            config: Limits and switches. Defaults to ``ChatConfig()``.
        """
        self._config = config or ChatConfig()
        self._store = store or InMemoryStore()
        self._identity_resolver = identity_resolver or PayloadIdentityResolver()
        self._lock_manager = lock_manager or InMemoryLockManager()
        self._realtime = realtime or InMemoryRealtime(self._config.realtime_queue_size)
        self._hub = ConnectionHub(
            self._config.max_consecutive_send_errors, on_drop=self._on_connection_dropped
        )
        self._presence = PresenceRegistry(self._store, self._hub)
        self._rooms = RoomService(self._store, self._lock_manager, self._config)
        self._router = ScopeRouter(
            self._store, self._rooms, self._presence, self._hub, self._config
        )
        self._sessions: dict[str, ChatSession] = {}

    @property
    def config(self) -> ChatConfig:
        return self._config

    @property
    def store(self) -> ChatStore:
        return self._store

    @property
    def hub(self) -> ConnectionHub:
        return self._hub

    @property
    def presence(self) -> PresenceRegistry:
        return self._presence

    @property
    def rooms(self) -> RoomService:
        return self._rooms

    @property
    def router(self) -> ScopeRouter:
        return self._router

    @property
    def realtime(self) -> RealtimeBackend:
        return self._realtime

    # -- Connections -----------------------------------------------------------

    def connect(self, connection_id: str, send_fn: SendFn) -> ChatSession:
        """Register a transport connection and return its session."""
        if connection_id in self._sessions:
            raise ConflictError(f"Connection {connection_id} is already open")
        self._hub.register(connection_id, send_fn)
        session = ChatSession(
            connection_id,
            hub=self._hub,
            presence=self._presence,
            router=self._router,
            rooms=self._rooms,
            realtime=self._realtime,
            identity_resolver=self._identity_resolver,
        )
        self._sessions[connection_id] = session
        logger.debug("Connection %s opened", connection_id)
        return session

    async def disconnect(self, connection_id: str) -> None:
        session = self._sessions.pop(connection_id, None)
        if session is None:
            return
        await session.disconnect()
        logger.debug("Connection %s closed", connection_id)

    def session(self, connection_id: str) -> ChatSession | None:
        return self._sessions.get(connection_id)

    async def _on_connection_dropped(self, connection_id: str) -> None:
        # the hub already forgot the connection; tear down its session and presence
        logger.warning("Disconnecting %s after repeated send failures", connection_id)
        await self.disconnect(connection_id)

    async def send_message(self, request: SendMessageRequest) -> DeliveryReport:
        """Route a message outside any socket session."""
        return await self._router.send(request)

    # -- History ---------------------------------------------------------------

    async def get_global_messages(
        self, page: int | None = None, limit: int | None = None
    ) -> MessagePage:
        request = PageRequest.normalize(page, limit, self._config)
        messages = await self._store.list_messages(
            MessageScope.GLOBAL, offset=request.offset, limit=request.limit
        )
        return await self._page(messages, request)

    async def get_private_messages(
        self,
        user_id: str,
        other_user_id: str,
        page: int | None = None,
        limit: int | None = None,
    ) -> MessagePage:
        """Conversation between two users in both directions."""
        if not user_id or not other_user_id:
            raise ValidationError("Both user IDs are required")
        request = PageRequest.normalize(page, limit, self._config)
        messages = await self._store.list_messages(
            MessageScope.PRIVATE,
            between=(user_id, other_user_id),
            offset=request.offset,
            limit=request.limit,
        )
        return await self._page(messages, request)

    async def get_room_messages(
        self,
        room_id: str,
        user_id: str,
        page: int | None = None,
        limit: int | None = None,
    ) -> MessagePage:
        """Room history; only members may read it."""
        if not user_id:
            raise ValidationError("User ID is required")
        request = PageRequest.normalize(page, limit, self._config)
        room = await self._rooms.get(room_id)
        if not room.is_member(user_id):
            raise AuthorizationError("You are not a member of this chat room")
        messages = await self._store.list_messages(
            MessageScope.ROOM, room_id=room_id, offset=request.offset, limit=request.limit
        )
        return await self._page(messages, request, room)

    async def _page(
        self, newest_first: list[Message], request: PageRequest, room: ChatRoom | None = None
    ) -> MessagePage:
        items = [await self._router.render(m, room) for m in reversed(newest_first)]
        return MessagePage(
            items=items,
            pagination=Pagination(
                page=request.page,
                limit=request.limit,
                has_more=len(newest_first) == request.limit,
            ),
        )

    # -- Message lifecycle -----------------------------------------------------

    async def mark_read(self, message_id: str) -> MessageOut:
        message = await self._get_message(message_id)
        if not message.is_read:
            message = await self._store.update_message(message.mark_read())
        return await self._router.render(message)

    async def edit_message(self, message_id: str, user_id: str, content: str) -> MessageOut:
        """Replace the content of a message. Only its sender may edit it."""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if len(content) > self._config.max_content_length:
            raise ValidationError(
                f"Message content exceeds {self._config.max_content_length} characters"
            )
        message = await self._get_message(message_id)
        if message.sender != user_id:
            raise AuthorizationError("You can only edit your own messages")
        if message.is_deleted:
            raise ValidationError("Deleted messages cannot be edited")
        message = await self._store.update_message(message.edit(content))
        logger.info("Message %s edited by %s", message_id, user_id)
        return await self._router.render(message)

    async def delete_message(self, message_id: str, user_id: str, *, hard: bool = False) -> None:
        """Delete a message. Only its sender may delete it.

        Soft deletion keeps the record flagged as deleted; ``hard`` removes it.
        """
        message = await self._get_message(message_id)
        if message.sender != user_id:
            raise AuthorizationError("You can only delete your own messages")
        if hard:
            await self._store.delete_message(message_id)
        elif not message.is_deleted:
            await self._store.update_message(message.soft_delete())
        logger.info(
            "Message %s deleted by %s", message_id, user_id, extra={"hard": hard}
        )

    async def _get_message(self, message_id: str) -> Message:
        message = await self._store.get_message(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return message

    # -- Rooms -----------------------------------------------------------------

    async def create_room(
        self,
        name: str,
        admin_id: str,
        *,
        description: str | None = None,
        is_private: bool = False,
        max_members: int | None = None,
        avatar_url: str | None = None,
    ) -> ChatRoom:
        return await self._rooms.create(
            name,
            admin_id,
            description=description,
            is_private=is_private,
            max_members=max_members,
            avatar_url=avatar_url,
        )

    async def join_room(self, room_id: str, user_id: str) -> ChatRoom:
        return await self._rooms.join(room_id, user_id)

    async def leave_room(self, room_id: str, user_id: str) -> ChatRoom:
        return await self._rooms.leave(room_id, user_id)

    async def transfer_admin(self, room_id: str, admin_id: str, new_admin_id: str) -> ChatRoom:
        return await self._rooms.transfer_admin(room_id, admin_id, new_admin_id)

    async def set_role(
        self, room_id: str, actor_id: str, user_id: str, role: MemberRole
    ) -> ChatRoom:
        return await self._rooms.set_role(room_id, actor_id, user_id, role)

    async def list_rooms(self, user_id: str | None = None) -> list[ChatRoom]:
        return await self._rooms.list_visible(user_id)

    # -- Users -----------------------------------------------------------------

    async def list_users(self) -> list[User]:
        return await self._store.list_users()

    async def list_online_users(self) -> list[User]:
        """Users flagged online in the store, sorted by name."""
        return await self._store.list_users(online_only=True)

    async def stats(self) -> dict[str, int]:
        """Headline counters. Message counts cover global messages only."""
        today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            "total_messages": await self._store.count_messages(MessageScope.GLOBAL),
            "total_users": await self._store.count_users(),
            "online_users": await self._store.count_users(online_only=True),
            "today_messages": await self._store.count_messages(MessageScope.GLOBAL, since=today),
        }

    async def close(self) -> None:
        """Disconnect every session and release backends."""
        await self._hub.close()
        for connection_id in list(self._sessions):
            await self.disconnect(connection_id)
        await self._realtime.close()
        await self._store.close()
