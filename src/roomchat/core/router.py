"""Scope router: classify, persist and fan out one message."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from roomchat.config import ChatConfig
from roomchat.core.errors import AuthorizationError, PersistenceError, ValidationError
from roomchat.core.presence import PresenceRegistry
from roomchat.core.rooms import RoomService
from roomchat.models.enums import MessageKind, MessageScope
from roomchat.models.message import Message
from roomchat.models.room import ChatRoom
from roomchat.models.wire import MessageOut, RoomSummary, SendMessageRequest, UserSummary
from roomchat.store.base import ChatStore
from roomchat.transport.hub import ConnectionHub

logger = logging.getLogger("roomchat.router")

NEW_MESSAGE_EVENT = "newMessage"

_SHAREABLE_IN_LOCKED_ROOMS = frozenset({MessageKind.TEXT, MessageKind.EMOJI})


@dataclass
class DeliveryReport:
    """What a successful send persisted and where it went."""

    message: Message
    payload: MessageOut
    recipients: list[str] = field(default_factory=list)


def classify_scope(request: SendMessageRequest, *, strict: bool = False) -> MessageScope:
    """Resolve the delivery scope of a send request.

    An explicit ``scope`` must come with exactly the fields it needs. Without
    one, the first matching rule wins: a room id means room scope, then a
    receiver id on a non-global request means private, otherwise global.
    ``strict`` rejects legacy requests carrying both a room and a receiver.
    """
    room_id = request.chat_room_id
    receiver_id = request.receiver_id

    if request.scope is not None:
        if request.scope == MessageScope.GLOBAL and (room_id or receiver_id):
            raise ValidationError("Global messages cannot name a room or receiver")
        if request.scope == MessageScope.PRIVATE and (not receiver_id or room_id):
            raise ValidationError("Private messages need a receiver and no room")
        if request.scope == MessageScope.ROOM and (not room_id or receiver_id):
            raise ValidationError("Room messages need a room and no receiver")
        return request.scope

    if room_id:
        if strict and receiver_id:
            raise ValidationError("Ambiguous message: both chatRoomId and receiverId given")
        return MessageScope.ROOM
    if not request.is_global and receiver_id:
        return MessageScope.PRIVATE
    return MessageScope.GLOBAL


class ScopeRouter:
    """Turns a send request into a stored message delivered to live connections.

    Global messages reach every live connection, the sender's included. Room
    messages reach every member's live connections; offline members are
    skipped, not queued. Private messages reach the receiver's connections
    and are echoed to the sender's.

    Nothing is stored when validation or the room membership check fails,
    and nothing is delivered when storing fails.
    """

    def __init__(
        self,
        store: ChatStore,
        rooms: RoomService,
        presence: PresenceRegistry,
        hub: ConnectionHub,
        config: ChatConfig,
    ) -> None:
        self._store = store
        self._rooms = rooms
        self._presence = presence
        self._hub = hub
        self._config = config

    async def send(self, request: SendMessageRequest) -> DeliveryReport:
        """Validate, persist and deliver one message.

        Raises:
            ValidationError: Missing sender, blank or oversized content, or
                scope fields that do not fit together.
            AuthorizationError: Room message from a non-member, or to a room
                that does not exist.
            PersistenceError: The message could not be stored.
        """
        sender_id = (request.sender_id or "").strip()
        if not sender_id:
            raise ValidationError("senderId is required")
        content = (request.content or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")
        if len(content) > self._config.max_content_length:
            raise ValidationError(
                f"Message content exceeds {self._config.max_content_length} characters"
            )
        if request.file is not None and request.kind == MessageKind.TEXT:
            raise ValidationError("Text messages cannot carry a file")

        scope = classify_scope(request, strict=self._config.strict_scope_inference)
        room: ChatRoom | None = None
        if scope == MessageScope.ROOM:
            room = await self._authorize_room(request.chat_room_id or "", sender_id, request.kind)

        message = Message(
            sender=sender_id,
            scope=scope,
            receiver=request.receiver_id if scope == MessageScope.PRIVATE else None,
            room=room.id if room is not None else None,
            content=content,
            kind=request.kind,
            file=request.file,
        )
        await self._store.add_message(message)

        if room is not None:
            try:
                await self._rooms.record_message(room.id)
            except PersistenceError:
                logger.exception("Failed to update message count of room %s", room.id)

        payload = await self.render(message, room)
        recipients = self._recipients(message, room)
        await self._hub.send_many(recipients, NEW_MESSAGE_EVENT, payload.to_wire())
        logger.debug(
            "Delivered %s message %s to %d connection(s)",
            scope.value,
            message.id,
            len(recipients),
            extra={"message_id": message.id, "scope": scope.value},
        )
        return DeliveryReport(message=message, payload=payload, recipients=recipients)

    async def render(self, message: Message, room: ChatRoom | None = None) -> MessageOut:
        """Populate sender, receiver and room display fields of a message."""
        sender = await self._summarize_user(message.sender)
        receiver = await self._summarize_user(message.receiver) if message.receiver else None
        room_ref: RoomSummary | None = None
        if message.room is not None:
            if room is None or room.id != message.room:
                room = await self._store.get_room(message.room)
            room_ref = RoomSummary(id=message.room, name=room.name if room else "")
        return MessageOut.build(message, sender, receiver, room_ref)

    async def _authorize_room(self, room_id: str, sender_id: str, kind: MessageKind) -> ChatRoom:
        room = await self._store.get_room(room_id)
        if room is None or not room.is_member(sender_id):
            logger.warning("Rejected room message from %s to room %s", sender_id, room_id)
            raise AuthorizationError("You are not a member of this chat room")
        if not room.settings.allow_file_sharing and kind not in _SHAREABLE_IN_LOCKED_ROOMS:
            raise ValidationError("File sharing is disabled in this room")
        return room

    def _recipients(self, message: Message, room: ChatRoom | None) -> list[str]:
        if message.scope == MessageScope.GLOBAL:
            return self._hub.connection_ids
        if message.scope == MessageScope.ROOM:
            assert room is not None
            return [
                connection_id
                for member in room.members
                for connection_id in self._presence.resolve_connections(member.user_id)
            ]
        assert message.receiver is not None
        targets = self._presence.resolve_connections(message.receiver)
        targets += self._presence.resolve_connections(message.sender)
        return list(dict.fromkeys(targets))

    async def _summarize_user(self, user_id: str) -> UserSummary:
        entry = self._presence.entry_for_user(user_id)
        if entry is not None:
            return UserSummary(
                id=user_id, name=entry.name, email=entry.email, avatar_url=entry.avatar_url
            )
        try:
            user = await self._store.get_user(user_id)
        except PersistenceError:
            logger.exception("Failed to load user %s for display", user_id)
            user = None
        return UserSummary.from_user(user) if user is not None else UserSummary(id=user_id)
