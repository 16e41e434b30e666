"""Per-connection chat session protocol."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import pydantic

from roomchat.core.errors import AuthorizationError, ChatError, PersistenceError, ValidationError
from roomchat.core.presence import PresenceRegistry
from roomchat.core.rooms import RoomService
from roomchat.core.router import ScopeRouter
from roomchat.identity.base import IdentityResolver
from roomchat.models.enums import SessionState
from roomchat.models.wire import (
    JoinPayload,
    MessageError,
    RoomNotice,
    RoomPayload,
    SendMessageRequest,
    TypingPayload,
)
from roomchat.realtime.base import EphemeralEvent, EphemeralEventType, RealtimeBackend
from roomchat.transport.hub import ConnectionHub

logger = logging.getLogger("roomchat.session")

MESSAGE_ERROR_EVENT = "messageError"
PROTOCOL_ERROR_EVENT = "error"

_Handler = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class ChatSession:
    """State machine driving one client connection.

    ``connected`` → ``join`` → ``joined`` ⇄ ``in_room`` → ``disconnected``.
    The session is ``in_room`` while subscribed to at least one room's
    fan-out channel. ``disconnected`` is terminal and later events are
    dropped.

    Events of one connection are handled one at a time in arrival order.
    Failures of the client's own actions are reported to that client only;
    nothing here raises into the transport loop.
    """

    def __init__(
        self,
        connection_id: str,
        *,
        hub: ConnectionHub,
        presence: PresenceRegistry,
        router: ScopeRouter,
        rooms: RoomService,
        realtime: RealtimeBackend,
        identity_resolver: IdentityResolver,
    ) -> None:
        self.connection_id = connection_id
        self.user_id: str | None = None
        self._hub = hub
        self._presence = presence
        self._router = router
        self._rooms = rooms
        self._realtime = realtime
        self._identity_resolver = identity_resolver
        self._joined = False
        self._closed = False
        # room id -> subscription id
        self._subscriptions: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._handlers: dict[str, _Handler] = {
            "join": self.join,
            "sendMessage": self.send_message,
            "joinRoom": self.join_room,
            "leaveRoom": self.leave_room,
            "typing": self.typing,
            "stopTyping": self.stop_typing,
        }

    @property
    def state(self) -> SessionState:
        if self._closed:
            return SessionState.DISCONNECTED
        if not self._joined:
            return SessionState.CONNECTED
        return SessionState.IN_ROOM if self._subscriptions else SessionState.JOINED

    @property
    def rooms(self) -> list[str]:
        """Rooms whose fan-out this connection is subscribed to."""
        return list(self._subscriptions)

    async def dispatch(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Handle one client event after any earlier ones have finished."""
        async with self._lock:
            if self._closed:
                logger.debug("Dropping %s on closed connection %s", event, self.connection_id)
                return
            handler = self._handlers.get(event)
            if handler is None:
                logger.warning("Unknown event %r on connection %s", event, self.connection_id)
                await self._hub.send(
                    self.connection_id,
                    PROTOCOL_ERROR_EVENT,
                    {"error": f"Unknown event: {event}", "kind": ValidationError.kind},
                )
                return
            await handler(data or {})

    async def join(self, data: dict[str, Any]) -> None:
        try:
            claim = JoinPayload.model_validate(data)
        except pydantic.ValidationError:
            logger.warning("Ignoring malformed join on connection %s", self.connection_id)
            return
        result = await self._identity_resolver.resolve(claim)
        if not result.is_identified:
            logger.warning(
                "Ignoring join on connection %s: %s",
                self.connection_id,
                result.reason or result.status.value,
            )
            return
        identity = result.identity
        assert identity is not None
        if self.user_id is not None and self.user_id != identity.id:
            await self._drop_subscriptions()
        await self._presence.register(
            self.connection_id,
            identity.id,
            identity.name,
            identity.avatar_url,
            email=identity.email,
        )
        self.user_id = identity.id
        self._joined = True

    async def send_message(self, data: dict[str, Any]) -> None:
        try:
            if not self._joined:
                raise AuthorizationError("Join the chat before sending messages")
            try:
                request = SendMessageRequest.model_validate(data)
            except pydantic.ValidationError as exc:
                raise ValidationError(_first_error(exc)) from exc
            if request.sender_id and request.sender_id != self.user_id:
                raise AuthorizationError("senderId does not match this connection")
            await self._router.send(request)
        except PersistenceError:
            logger.exception("Failed to send message on connection %s", self.connection_id)
            await self._report(
                MessageError(error="Failed to send message", kind=PersistenceError.kind)
            )
        except ChatError as exc:
            logger.info(
                "Rejected message on connection %s: %s", self.connection_id, exc.message
            )
            await self._report(MessageError(error=exc.message, kind=exc.kind))

    async def join_room(self, data: dict[str, Any]) -> None:
        payload = self._room_payload(data, "joinRoom")
        if payload is None:
            return
        room_id = payload.room_id or ""
        if room_id in self._subscriptions:
            return
        try:
            member = await self._rooms.is_member(room_id, self.user_id or "")
        except PersistenceError:
            logger.exception("Membership lookup failed for room %s", room_id)
            return
        if not member:
            logger.info(
                "User %s is not a member of room %s; joinRoom ignored", self.user_id, room_id
            )
            return
        subscription = await self._realtime.subscribe_to_room(room_id, self._relay)
        self._subscriptions[room_id] = subscription
        await self._notify_room(
            room_id, EphemeralEventType.USER_JOINED_ROOM, "User joined the room"
        )

    async def leave_room(self, data: dict[str, Any]) -> None:
        payload = self._room_payload(data, "leaveRoom")
        if payload is None:
            return
        room_id = payload.room_id or ""
        subscription_id = self._subscriptions.pop(room_id, None)
        if subscription_id is None:
            logger.debug("Connection %s was not in room %s", self.connection_id, room_id)
            return
        await self._realtime.unsubscribe(subscription_id)
        await self._notify_room(room_id, EphemeralEventType.USER_LEFT_ROOM, "User left the room")

    async def typing(self, data: dict[str, Any]) -> None:
        await self._signal_typing(data, EphemeralEventType.TYPING_START)

    async def stop_typing(self, data: dict[str, Any]) -> None:
        await self._signal_typing(data, EphemeralEventType.TYPING_STOP)

    async def disconnect(self) -> None:
        """Tear the session down. Safe to call more than once.

        Does not wait for an in-flight event: a send already under way still
        completes and persists, its delivery to this connection is skipped.
        """
        if self._closed:
            return
        self._closed = True
        self._hub.unregister(self.connection_id)
        await self._drop_subscriptions()
        await self._presence.deregister(self.connection_id)

    async def _signal_typing(self, data: dict[str, Any], kind: EphemeralEventType) -> None:
        if not self._joined:
            return
        try:
            payload = TypingPayload.model_validate(data)
        except pydantic.ValidationError:
            logger.debug("Ignoring malformed typing signal on %s", self.connection_id)
            return
        if payload.chat_type == "room" and payload.room_id:
            if payload.room_id not in self._subscriptions:
                logger.debug("Typing for unjoined room %s ignored", payload.room_id)
                return
            await self._realtime.publish_to_room(
                payload.room_id,
                EphemeralEvent(
                    room_id=payload.room_id,
                    type=kind,
                    user_id=self.user_id,
                    origin_connection_id=self.connection_id,
                    payload=data,
                ),
            )
        else:
            await self._hub.broadcast(kind.value, data, exclude=self.connection_id)

    def _room_payload(self, data: dict[str, Any], event: str) -> RoomPayload | None:
        if not self._joined:
            logger.info("%s before join on connection %s ignored", event, self.connection_id)
            return None
        try:
            payload = RoomPayload.model_validate(data)
        except pydantic.ValidationError:
            logger.warning("Malformed %s on connection %s", event, self.connection_id)
            return None
        if not payload.room_id:
            logger.warning("%s without roomId on connection %s", event, self.connection_id)
            return None
        if payload.user_id and payload.user_id != self.user_id:
            logger.warning(
                "%s for another user on connection %s ignored", event, self.connection_id
            )
            return None
        return payload

    async def _notify_room(self, room_id: str, kind: EphemeralEventType, text: str) -> None:
        notice = RoomNotice(room_id=room_id, user_id=self.user_id or "", message=text)
        await self._realtime.publish_to_room(
            room_id,
            EphemeralEvent(
                room_id=room_id,
                type=kind,
                user_id=self.user_id,
                origin_connection_id=self.connection_id,
                payload=notice.to_wire(),
            ),
        )

    async def _relay(self, event: EphemeralEvent) -> None:
        if event.origin_connection_id == self.connection_id:
            return
        await self._hub.send(self.connection_id, event.type.value, event.payload)

    async def _drop_subscriptions(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, {}
        for subscription_id in subscriptions.values():
            await self._realtime.unsubscribe(subscription_id)

    async def _report(self, error: MessageError) -> None:
        await self._hub.send(self.connection_id, MESSAGE_ERROR_EVENT, error.to_wire())


def _first_error(exc: pydantic.ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid message payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else str(first.get("msg"))
