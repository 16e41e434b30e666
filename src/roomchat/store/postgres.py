"""PostgreSQL implementation of ChatStore using asyncpg."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from roomchat.core.errors import ChatError, ConflictError, NotFoundError, PersistenceError
from roomchat.models.enums import MessageScope, MessageStatus
from roomchat.models.message import Message
from roomchat.models.room import ChatRoom, RoomMember
from roomchat.models.user import User
from roomchat.store.base import ChatStore

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT,
    is_online BOOLEAN NOT NULL DEFAULT false,
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_users_online ON users(is_online);

CREATE TABLE IF NOT EXISTS rooms (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    is_active BOOLEAN NOT NULL DEFAULT true,
    is_private BOOLEAN NOT NULL DEFAULT false,
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_rooms_active ON rooms(is_active, is_private);
CREATE INDEX IF NOT EXISTS idx_rooms_members ON rooms USING GIN ((data->'members') jsonb_path_ops);

CREATE TABLE IF NOT EXISTS messages (
    seq BIGSERIAL,
    id TEXT PRIMARY KEY,
    scope TEXT NOT NULL,
    sender TEXT NOT NULL,
    receiver TEXT,
    room_id TEXT REFERENCES rooms(id),
    status TEXT NOT NULL DEFAULT 'active',
    created_at TIMESTAMPTZ NOT NULL,
    data JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_scope ON messages(scope, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender, receiver, created_at DESC);
"""

# Conditional append: the capacity, activity and duplicate guards run in the
# same statement as the write, so concurrent joins cannot overfill a room.
_ADD_MEMBER = """\
UPDATE rooms
SET data = jsonb_set(data, '{members}', (data->'members') || $2::jsonb)
    || jsonb_build_object('last_activity', $3::text, 'updated_at', $3::text)
WHERE id = $1
  AND is_active
  AND jsonb_array_length(data->'members') < (data->>'max_members')::int
  AND NOT EXISTS (
      SELECT 1 FROM jsonb_array_elements(data->'members') AS m WHERE m->>'user_id' = $4
  )
RETURNING data
"""

_RECORD_ROOM_MESSAGE = """\
UPDATE rooms
SET data = data || jsonb_build_object(
    'message_count', (data->>'message_count')::int + 1,
    'last_activity', $2::text,
    'updated_at', $2::text
)
WHERE id = $1
RETURNING data
"""

_RECORD_PRESENCE = """\
INSERT INTO users (id, name, is_online, data) VALUES ($1, $2, $3, $4::jsonb)
ON CONFLICT (id) DO UPDATE SET
    is_online = EXCLUDED.is_online,
    data = users.data || jsonb_build_object(
        'is_online', $3::boolean,
        'live_connection_id', $5::text,
        'last_seen_at', $6::text
    )
RETURNING data
"""


def _dump(model: Any) -> str:
    return str(model.model_dump_json())


def _load(raw: Any) -> Any:
    return json.loads(raw) if isinstance(raw, str) else raw


class PostgresStore(ChatStore):
    """PostgreSQL-backed chat store using asyncpg.

    Documents live in JSONB columns; the columns used for filtering and
    uniqueness are kept alongside them.
    """

    def __init__(
        self,
        dsn: str | None = None,
        pool: Any = None,
    ) -> None:
        try:
            import asyncpg as _asyncpg
        except ImportError as exc:
            raise ImportError(
                "asyncpg is required for PostgresStore. "
                "Install it with: pip install roomchat[postgres]"
            ) from exc
        self._asyncpg = _asyncpg
        self._dsn = dsn
        self._pool = pool
        self._owns_pool = pool is None

    async def init(self, min_size: int = 2, max_size: int = 10) -> None:
        """Create the connection pool (if needed) and ensure schema exists."""
        if self._pool is None:
            try:
                self._pool = await self._asyncpg.create_pool(
                    self._dsn,
                    min_size=min_size,
                    max_size=max_size,
                )
            except (OSError, self._asyncpg.PostgresError) as exc:
                raise PersistenceError(f"Cannot connect to database: {exc}") from exc
        async with self._connection() as conn:
            await conn.execute(_SCHEMA)

    async def close(self) -> None:
        """Release the connection pool if we own it."""
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> PostgresStore:
        await self.init()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        if self._pool is None:
            raise PersistenceError("PostgresStore.init() has not been called")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except ChatError:
            raise
        except (OSError, self._asyncpg.PostgresError, self._asyncpg.InterfaceError) as exc:
            raise PersistenceError(str(exc)) from exc

    # User operations

    async def get_user(self, user_id: str) -> User | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT data FROM users WHERE id = $1", user_id)
        return User.model_validate(_load(row["data"])) if row else None

    async def save_user(self, user: User) -> User:
        async with self._connection() as conn:
            await conn.execute(
                """INSERT INTO users (id, name, is_online, data) VALUES ($1, $2, $3, $4::jsonb)
                ON CONFLICT (id) DO UPDATE
                SET name = EXCLUDED.name, is_online = EXCLUDED.is_online, data = EXCLUDED.data""",
                user.id,
                user.name,
                user.is_online,
                _dump(user),
            )
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
        fresh = User(
            id=user_id,
            name=name,
            email=email,
            avatar_url=avatar_url,
            is_online=is_online,
            live_connection_id=connection_id,
            last_seen_at=seen_at,
        )
        async with self._connection() as conn:
            row = await conn.fetchrow(
                _RECORD_PRESENCE,
                user_id,
                name,
                is_online,
                _dump(fresh),
                connection_id,
                seen_at.isoformat(),
            )
        return User.model_validate(_load(row["data"]))

    async def list_users(self, online_only: bool = False) -> list[User]:
        query = "SELECT data FROM users"
        if online_only:
            query += " WHERE is_online"
        query += " ORDER BY lower(coalesce(name, '')), id"
        async with self._connection() as conn:
            rows = await conn.fetch(query)
        return [User.model_validate(_load(r["data"])) for r in rows]

    async def count_users(self, online_only: bool = False) -> int:
        query = "SELECT count(*) FROM users"
        if online_only:
            query += " WHERE is_online"
        async with self._connection() as conn:
            return int(await conn.fetchval(query))

    # Message operations

    async def add_message(self, message: Message) -> Message:
        async with self._connection() as conn:
            await conn.execute(
                """INSERT INTO messages
                (id, scope, sender, receiver, room_id, status, created_at, data)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb)""",
                message.id,
                message.scope.value,
                message.sender,
                message.receiver,
                message.room,
                message.status.value,
                message.created_at,
                _dump(message),
            )
        return message

    async def get_message(self, message_id: str) -> Message | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT data FROM messages WHERE id = $1", message_id)
        return Message.model_validate(_load(row["data"])) if row else None

    async def update_message(self, message: Message) -> Message:
        async with self._connection() as conn:
            result = await conn.execute(
                "UPDATE messages SET status = $2, data = $3::jsonb WHERE id = $1",
                message.id,
                message.status.value,
                _dump(message),
            )
        if result == "UPDATE 0":
            raise NotFoundError(f"Message {message.id} not found")
        return message

    async def delete_message(self, message_id: str) -> bool:
        async with self._connection() as conn:
            result = await conn.execute("DELETE FROM messages WHERE id = $1", message_id)
        return bool(result == "DELETE 1")

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
        conditions = ["scope = $1"]
        params: list[Any] = [scope.value]
        if not include_deleted:
            params.append(MessageStatus.DELETED.value)
            conditions.append(f"status <> ${len(params)}")
        if room_id is not None:
            params.append(room_id)
            conditions.append(f"room_id = ${len(params)}")
        if between is not None:
            params.extend(between)
            a, b = len(params) - 1, len(params)
            conditions.append(
                f"((sender = ${a} AND receiver = ${b}) OR (sender = ${b} AND receiver = ${a}))"
            )
        params.extend([offset, limit])
        query = (
            "SELECT data FROM messages WHERE "
            + " AND ".join(conditions)
            + f" ORDER BY created_at DESC, seq DESC OFFSET ${len(params) - 1} LIMIT ${len(params)}"
        )
        async with self._connection() as conn:
            rows = await conn.fetch(query, *params)
        return [Message.model_validate(_load(r["data"])) for r in rows]

    async def count_messages(
        self, scope: MessageScope | None = None, since: datetime | None = None
    ) -> int:
        conditions = ["status <> $1"]
        params: list[Any] = [MessageStatus.DELETED.value]
        if scope is not None:
            params.append(scope.value)
            conditions.append(f"scope = ${len(params)}")
        if since is not None:
            params.append(since)
            conditions.append(f"created_at >= ${len(params)}")
        query = "SELECT count(*) FROM messages WHERE " + " AND ".join(conditions)
        async with self._connection() as conn:
            return int(await conn.fetchval(query, *params))

    # Room operations

    async def create_room(self, room: ChatRoom) -> ChatRoom:
        async with self._connection() as conn:
            try:
                await conn.execute(
                    """INSERT INTO rooms (id, name, is_active, is_private, data)
                    VALUES ($1, $2, $3, $4, $5::jsonb)""",
                    room.id,
                    room.name,
                    room.is_active,
                    room.is_private,
                    _dump(room),
                )
            except self._asyncpg.UniqueViolationError as exc:
                raise ConflictError(f"A room named {room.name!r} already exists") from exc
        return room

    async def get_room(self, room_id: str) -> ChatRoom | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT data FROM rooms WHERE id = $1", room_id)
        return ChatRoom.model_validate(_load(row["data"])) if row else None

    async def get_room_by_name(self, name: str) -> ChatRoom | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT data FROM rooms WHERE name = $1", name)
        return ChatRoom.model_validate(_load(row["data"])) if row else None

    async def update_room(self, room: ChatRoom) -> ChatRoom:
        async with self._connection() as conn:
            try:
                result = await conn.execute(
                    """UPDATE rooms SET name = $2, is_active = $3, is_private = $4,
                    data = $5::jsonb WHERE id = $1""",
                    room.id,
                    room.name,
                    room.is_active,
                    room.is_private,
                    _dump(room),
                )
            except self._asyncpg.UniqueViolationError as exc:
                raise ConflictError(f"A room named {room.name!r} already exists") from exc
        if result == "UPDATE 0":
            raise NotFoundError(f"Room {room.id} not found")
        return room

    async def list_rooms(
        self, *, active_only: bool = True, visible_to: str | None = None
    ) -> list[ChatRoom]:
        conditions: list[str] = []
        params: list[Any] = []
        if active_only:
            conditions.append("is_active")
        if visible_to is not None:
            params.append(json.dumps([{"user_id": visible_to}]))
            conditions.append(f"(NOT is_private OR data->'members' @> ${len(params)}::jsonb)")
        query = "SELECT data FROM rooms"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY (data->>'last_activity')::timestamptz DESC"
        async with self._connection() as conn:
            rows = await conn.fetch(query, *params)
        return [ChatRoom.model_validate(_load(r["data"])) for r in rows]

    async def add_member(self, room_id: str, member: RoomMember) -> ChatRoom | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                _ADD_MEMBER,
                room_id,
                "[" + _dump(member) + "]",
                member.joined_at.isoformat(),
                member.user_id,
            )
        return ChatRoom.model_validate(_load(row["data"])) if row else None

    async def record_room_message(self, room_id: str, at: datetime) -> ChatRoom | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(_RECORD_ROOM_MESSAGE, room_id, at.isoformat())
        return ChatRoom.model_validate(_load(row["data"])) if row else None
