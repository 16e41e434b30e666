"""Wire payloads exchanged with clients.

Field names are camelCase on the wire and snake_case in Python. Client
payloads accept either spelling.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from roomchat.models.enums import MessageKind, MessageScope, MessageStatus
from roomchat.models.message import FileInfo, Message
from roomchat.models.room import ChatRoom, RoomMember, RoomSettings
from roomchat.models.user import PresenceEntry, User


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# -- Client to server ----------------------------------------------------------


class JoinPayload(WireModel):
    """``join``: identity claim for a fresh connection."""

    user_id: str | None = None
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = Field(
        default=None, validation_alias=AliasChoices("avatarUrl", "avatar_url", "image")
    )


class SendMessageRequest(WireModel):
    """``sendMessage``: one outbound message intent.

    ``scope`` is optional. Without it the scope is inferred from which of
    ``chat_room_id``/``receiver_id``/``is_global`` are set.
    """

    sender_id: str | None = None
    content: str | None = None
    kind: MessageKind = Field(
        default=MessageKind.TEXT, validation_alias=AliasChoices("kind", "messageType")
    )
    receiver_id: str | None = None
    chat_room_id: str | None = Field(
        default=None, validation_alias=AliasChoices("chatRoomId", "chat_room_id", "roomId")
    )
    is_global: bool = True
    scope: MessageScope | None = None
    file: FileInfo | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_file_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("file") is not None:
            return data
        url = data.get("fileUrl")
        if url is None:
            return data
        data = dict(data)
        data["file"] = {"name": data.get("fileName"), "url": url, "size": data.get("fileSize")}
        return data


class RoomPayload(WireModel):
    """``joinRoom`` / ``leaveRoom``."""

    room_id: str | None = None
    user_id: str | None = None


class TypingPayload(WireModel):
    """``typing`` / ``stopTyping``. Extra fields are relayed untouched."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    user_id: str | None = None
    user_name: str | None = None
    room_id: str | None = None
    chat_type: str | None = None


class ClientFrame(BaseModel):
    """Envelope of every inbound socket frame."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


# -- Server to client ----------------------------------------------------------


class ServerFrame(BaseModel):
    """Envelope of every outbound socket frame."""

    event: str
    data: Any = None


class OnlineUser(WireModel):
    user_id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    connection_id: str
    joined_at: datetime

    @classmethod
    def from_entry(cls, entry: PresenceEntry) -> OnlineUser:
        return cls(
            user_id=entry.user_id,
            name=entry.name,
            email=entry.email,
            avatar_url=entry.avatar_url,
            connection_id=entry.connection_id,
            joined_at=entry.joined_at,
        )


class UserSummary(WireModel):
    id: str = Field(serialization_alias="_id")
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None

    @classmethod
    def from_user(cls, user: User) -> UserSummary:
        return cls(id=user.id, name=user.name, email=user.email, avatar_url=user.avatar_url)


class UserOut(UserSummary):
    is_online: bool = False
    last_seen_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserOut:
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            avatar_url=user.avatar_url,
            is_online=user.is_online,
            last_seen_at=user.last_seen_at,
        )


class RoomSummary(WireModel):
    id: str = Field(serialization_alias="_id")
    name: str


class MessageOut(WireModel):
    """Fully populated message as delivered in ``newMessage`` and history."""

    id: str = Field(serialization_alias="_id")
    sender: UserSummary
    receiver: UserSummary | None = None
    chat_room: RoomSummary | None = None
    content: str
    kind: MessageKind
    file: FileInfo | None = None
    scope: MessageScope
    status: MessageStatus
    is_read: bool
    read_at: datetime | None = None
    is_edited: bool
    edited_at: datetime | None = None
    created_at: datetime

    @classmethod
    def build(
        cls,
        message: Message,
        sender: UserSummary,
        receiver: UserSummary | None = None,
        room: RoomSummary | None = None,
    ) -> MessageOut:
        return cls(
            id=message.id,
            sender=sender,
            receiver=receiver,
            chat_room=room,
            content=message.content,
            kind=message.kind,
            file=message.file,
            scope=message.scope,
            status=message.status,
            is_read=message.is_read,
            read_at=message.read_at,
            is_edited=message.is_edited,
            edited_at=message.edited_at,
            created_at=message.created_at,
        )


class MemberOut(WireModel):
    user_id: str
    role: str
    joined_at: datetime

    @classmethod
    def from_member(cls, member: RoomMember) -> MemberOut:
        return cls(user_id=member.user_id, role=member.role.value, joined_at=member.joined_at)


class RoomOut(WireModel):
    id: str = Field(serialization_alias="_id")
    name: str
    description: str
    admin: str
    members: list[MemberOut]
    member_count: int
    is_private: bool
    is_active: bool
    max_members: int
    message_count: int
    last_activity: datetime
    avatar_url: str | None = None
    settings: RoomSettings
    created_at: datetime

    @classmethod
    def from_room(cls, room: ChatRoom) -> RoomOut:
        return cls(
            id=room.id,
            name=room.name,
            description=room.description,
            admin=room.admin,
            members=[MemberOut.from_member(m) for m in room.members],
            member_count=room.member_count,
            is_private=room.is_private,
            is_active=room.is_active,
            max_members=room.max_members,
            message_count=room.message_count,
            last_activity=room.last_activity,
            avatar_url=room.avatar_url,
            settings=room.settings,
            created_at=room.created_at,
        )


class RoomNotice(WireModel):
    """``userJoinedRoom`` / ``userLeftRoom``."""

    room_id: str
    user_id: str
    message: str


class MessageError(WireModel):
    """``messageError``."""

    error: str
    kind: str
