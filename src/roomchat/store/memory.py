"""In-memory implementation of ChatStore."""

from __future__ import annotations

from datetime import datetime

from roomchat.core.errors import ConflictError, NotFoundError
from roomchat.models.enums import MessageScope
from roomchat.models.message import Message
from roomchat.models.room import ChatRoom, RoomMember
from roomchat.models.user import User
from roomchat.store.base import ChatStore


def _sort_name(user: User) -> tuple[str, str]:
    return ((user.name or "").lower(), user.id)


class InMemoryStore(ChatStore):
    """Dict-based in-memory store for development and testing.

    None of the methods suspend between reading and writing, so each call
    is atomic under a single event loop.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._messages: dict[str, Message] = {}
        # insertion order doubles as creation order
        self._message_order: list[str] = []
        self._rooms: dict[str, ChatRoom] = {}
        self._room_names: dict[str, str] = {}

    # User operations

    async def get_user(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy() if user is not None else None

    async def save_user(self, user: User) -> User:
        self._users[user.id] = user.model_copy()
        return user

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
        existing = self._users.get(user_id)
        if existing is None:
            existing = User(id=user_id, name=name, email=email, avatar_url=avatar_url)
        user = existing.model_copy(
            update={
                "is_online": is_online,
                "live_connection_id": connection_id,
                "last_seen_at": seen_at,
            }
        )
        self._users[user_id] = user
        return user.model_copy()

    async def list_users(self, online_only: bool = False) -> list[User]:
        users = [u for u in self._users.values() if u.is_online or not online_only]
        return [u.model_copy() for u in sorted(users, key=_sort_name)]

    async def count_users(self, online_only: bool = False) -> int:
        return sum(1 for u in self._users.values() if u.is_online or not online_only)

    # Message operations

    async def add_message(self, message: Message) -> Message:
        self._messages[message.id] = message.model_copy(deep=True)
        self._message_order.append(message.id)
        return message

    async def get_message(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message is not None else None

    async def update_message(self, message: Message) -> Message:
        if message.id not in self._messages:
            raise NotFoundError(f"Message {message.id} not found")
        self._messages[message.id] = message.model_copy(deep=True)
        return message

    async def delete_message(self, message_id: str) -> bool:
        if self._messages.pop(message_id, None) is None:
            return False
        self._message_order.remove(message_id)
        return True

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
        matched: list[Message] = []
        for message_id in reversed(self._message_order):
            m = self._messages[message_id]
            if m.scope != scope or (m.is_deleted and not include_deleted):
                continue
            if room_id is not None and m.room != room_id:
                continue
            if between is not None and {m.sender, m.receiver} != set(between):
                continue
            matched.append(m)
        return [m.model_copy(deep=True) for m in matched[offset : offset + limit]]

    async def count_messages(
        self, scope: MessageScope | None = None, since: datetime | None = None
    ) -> int:
        return sum(
            1
            for m in self._messages.values()
            if not m.is_deleted
            and (scope is None or m.scope == scope)
            and (since is None or m.created_at >= since)
        )

    # Room operations

    async def create_room(self, room: ChatRoom) -> ChatRoom:
        if room.name in self._room_names:
            raise ConflictError(f"A room named {room.name!r} already exists")
        self._rooms[room.id] = room.model_copy(deep=True)
        self._room_names[room.name] = room.id
        return room

    async def get_room(self, room_id: str) -> ChatRoom | None:
        room = self._rooms.get(room_id)
        return room.model_copy(deep=True) if room is not None else None

    async def get_room_by_name(self, name: str) -> ChatRoom | None:
        room_id = self._room_names.get(name)
        return await self.get_room(room_id) if room_id is not None else None

    async def update_room(self, room: ChatRoom) -> ChatRoom:
        current = self._rooms.get(room.id)
        if current is None:
            raise NotFoundError(f"Room {room.id} not found")
        if current.name != room.name:
            if room.name in self._room_names:
                raise ConflictError(f"A room named {room.name!r} already exists")
            del self._room_names[current.name]
            self._room_names[room.name] = room.id
        self._rooms[room.id] = room.model_copy(deep=True)
        return room

    async def list_rooms(
        self, *, active_only: bool = True, visible_to: str | None = None
    ) -> list[ChatRoom]:
        rooms = [
            r
            for r in self._rooms.values()
            if (r.is_active or not active_only)
            and (visible_to is None or not r.is_private or r.is_member(visible_to))
        ]
        rooms.sort(key=lambda r: r.last_activity, reverse=True)
        return [r.model_copy(deep=True) for r in rooms]

    async def add_member(self, room_id: str, member: RoomMember) -> ChatRoom | None:
        room = self._rooms.get(room_id)
        if room is None or not room.is_active:
            return None
        if not room.add_member(member.user_id, member.role):
            return None
        return room.model_copy(deep=True)

    async def record_room_message(self, room_id: str, at: datetime) -> ChatRoom | None:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        room.message_count += 1
        room.touch(at)
        return room.model_copy(deep=True)
