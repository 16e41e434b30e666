"""Abstract base class for chat storage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from roomchat.models.enums import MessageScope
from roomchat.models.message import Message
from roomchat.models.room import ChatRoom, RoomMember
from roomchat.models.user import User


class ChatStore(ABC):
    """Persistent storage for users, messages and rooms.

    Implement this ABC to plug in any storage backend. The package ships
    with ``InMemoryStore`` for development and testing and ``PostgresStore``
    for production. Backend failures must surface as
    :class:`~roomchat.core.errors.PersistenceError`.
    """

    # User operations

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Get a user by ID, or ``None`` if unknown."""
        ...

    @abstractmethod
    async def save_user(self, user: User) -> User:
        """Insert or replace a user record."""
        ...

    @abstractmethod
    async def record_presence(
        self,
        user_id: str,
        *,
        is_online: bool,
        connection_id: str | None,
        seen_at: datetime,
        name: str | None = None,
        email: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        """Write the online-status fields of a user.

        Profile fields are only used when the user does not exist yet.
        """
        ...

    @abstractmethod
    async def list_users(self, online_only: bool = False) -> list[User]:
        """List users sorted by name."""
        ...

    @abstractmethod
    async def count_users(self, online_only: bool = False) -> int:
        """Count users, optionally only those flagged online."""
        ...

    # Message operations

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Store a new message."""
        ...

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        ...

    @abstractmethod
    async def update_message(self, message: Message) -> Message:
        """Replace the mutable state of an existing message."""
        ...

    @abstractmethod
    async def delete_message(self, message_id: str) -> bool:
        """Physically remove a message. Returns ``True`` if it existed."""
        ...

    @abstractmethod
    async def list_messages(
        self,
        scope: MessageScope,
        *,
        room_id: str | None = None,
        between: tuple[str, str] | None = None,
        offset: int = 0,
        limit: int = 50,
        include_deleted: bool = False,
    ) -> list[Message]:
        """List messages of one scope, newest first.

        ``room_id`` narrows room-scoped queries; ``between`` narrows private
        queries to the conversation of two users in either direction.
        """
        ...

    @abstractmethod
    async def count_messages(
        self, scope: MessageScope | None = None, since: datetime | None = None
    ) -> int:
        """Count non-deleted messages, optionally by scope and creation time."""
        ...

    # Room operations

    @abstractmethod
    async def create_room(self, room: ChatRoom) -> ChatRoom:
        """Persist a new room.

        Raises:
            ConflictError: A room with the same name already exists.
        """
        ...

    @abstractmethod
    async def get_room(self, room_id: str) -> ChatRoom | None:
        """Get a room by ID."""
        ...

    @abstractmethod
    async def get_room_by_name(self, name: str) -> ChatRoom | None:
        """Get a room by its exact name."""
        ...

    @abstractmethod
    async def update_room(self, room: ChatRoom) -> ChatRoom:
        """Replace an existing room."""
        ...

    @abstractmethod
    async def list_rooms(
        self, *, active_only: bool = True, visible_to: str | None = None
    ) -> list[ChatRoom]:
        """List rooms, most recent activity first.

        With ``visible_to`` only public rooms and private rooms that user is
        a member of are returned.
        """
        ...

    async def add_member(self, room_id: str, member: RoomMember) -> ChatRoom | None:
        """Append a member if the room is active, not full and lacks them.

        Returns the updated room, or ``None`` if the guard failed. The default
        implementation reads and writes in two steps; backends should override
        it with an atomic conditional update.
        """
        room = await self.get_room(room_id)
        if room is None or not room.is_active:
            return None
        if not room.add_member(member.user_id, member.role):
            return None
        return await self.update_room(room)

    async def record_room_message(self, room_id: str, at: datetime) -> ChatRoom | None:
        """Increment a room's message counter and bump its activity time.

        The default implementation is read-then-write; backends should
        override it with an atomic increment.
        """
        room = await self.get_room(room_id)
        if room is None:
            return None
        room.message_count += 1
        room.touch(at)
        return await self.update_room(room)

    async def close(self) -> None:
        """Release backend resources. The default does nothing."""
        return None
