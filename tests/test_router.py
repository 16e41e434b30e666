"""Tests for scope classification and message routing."""

from __future__ import annotations

import random

import pytest

from roomchat.config import ChatConfig
from roomchat.core.errors import AuthorizationError, PersistenceError, ValidationError
from roomchat.core.locks import InMemoryLockManager
from roomchat.core.presence import PresenceRegistry
from roomchat.core.rooms import RoomService
from roomchat.core.router import NEW_MESSAGE_EVENT, ScopeRouter, classify_scope
from roomchat.models.enums import MessageKind, MessageScope
from roomchat.models.message import Message
from roomchat.models.room import RoomSettings
from roomchat.models.wire import SendMessageRequest
from roomchat.store.memory import InMemoryStore
from roomchat.transport.hub import ConnectionHub
from tests.conftest import Outbox


class BrokenMessageStore(InMemoryStore):
    async def add_message(self, message: Message) -> Message:
        raise PersistenceError("disk full")


def _request(**kwargs: object) -> SendMessageRequest:
    return SendMessageRequest.model_validate({"senderId": "alice", "content": "hi", **kwargs})


def _make_router(
    store: InMemoryStore, outbox: Outbox, config: ChatConfig | None = None
) -> tuple[ScopeRouter, PresenceRegistry, RoomService]:
    config = config or ChatConfig()
    hub = ConnectionHub()
    for c in ("c-alice", "c-bob", "c-carol"):
        hub.register(c, outbox.send)
    presence = PresenceRegistry(store, hub)
    rooms = RoomService(store, InMemoryLockManager(), config)
    return ScopeRouter(store, rooms, presence, hub, config), presence, rooms


@pytest.fixture
async def wired(store: InMemoryStore, outbox: Outbox):
    router, presence, rooms = _make_router(store, outbox)
    await presence.register("c-alice", "alice", "Alice")
    await presence.register("c-bob", "bob", "Bob")
    await presence.register("c-carol", "carol", "Carol")
    outbox.clear()
    return router, presence, rooms


class TestClassifyScope:
    def test_room_wins(self) -> None:
        req = _request(chatRoomId="r1", receiverId="bob", isGlobal=False)
        assert classify_scope(req) == MessageScope.ROOM

    def test_private_needs_not_global(self) -> None:
        assert classify_scope(_request(receiverId="bob", isGlobal=False)) == MessageScope.PRIVATE
        assert classify_scope(_request(receiverId="bob")) == MessageScope.GLOBAL

    def test_default_global(self) -> None:
        assert classify_scope(_request()) == MessageScope.GLOBAL

    def test_strict_rejects_room_and_receiver(self) -> None:
        req = _request(chatRoomId="r1", receiverId="bob")
        with pytest.raises(ValidationError):
            classify_scope(req, strict=True)

    @pytest.mark.parametrize(
        "fields",
        [
            {"scope": "global", "receiverId": "bob"},
            {"scope": "private"},
            {"scope": "private", "receiverId": "bob", "chatRoomId": "r1"},
            {"scope": "room"},
            {"scope": "room", "chatRoomId": "r1", "receiverId": "bob"},
        ],
    )
    def test_explicit_scope_validated(self, fields: dict[str, str]) -> None:
        with pytest.raises(ValidationError):
            classify_scope(_request(**fields))

    def test_explicit_scope_accepted(self) -> None:
        req = _request(scope="private", receiverId="bob")
        assert classify_scope(req) == MessageScope.PRIVATE

    @pytest.mark.parametrize("seed", range(20))
    def test_classified_message_satisfies_scope_fields(self, seed: int) -> None:
        rng = random.Random(seed)
        fields: dict[str, object] = {"isGlobal": rng.choice([True, False])}
        if rng.random() < 0.5:
            fields["receiverId"] = f"user-{rng.randint(0, 9)}"
        if rng.random() < 0.5:
            fields["chatRoomId"] = f"room-{rng.randint(0, 9)}"
        req = _request(**fields)

        scope = classify_scope(req)
        message = Message(
            sender="alice",
            scope=scope,
            receiver=req.receiver_id if scope == MessageScope.PRIVATE else None,
            room=req.chat_room_id if scope == MessageScope.ROOM else None,
            content="x",
        )
        assert (message.receiver is not None) == (scope == MessageScope.PRIVATE)
        assert (message.room is not None) == (scope == MessageScope.ROOM)


class TestValidation:
    @pytest.mark.parametrize(
        "fields",
        [
            {"senderId": ""},
            {"content": ""},
            {"content": "   "},
            {"content": "x" * 2001},
            {"fileUrl": "https://cdn/x.bin"},
        ],
    )
    async def test_rejected_before_persist(
        self, wired, store: InMemoryStore, outbox: Outbox, fields: dict[str, str]
    ) -> None:
        router, _, _ = wired
        with pytest.raises(ValidationError):
            await router.send(_request(**fields))
        assert await store.count_messages() == 0
        assert outbox.frames == {}

    async def test_content_trimmed(self, wired) -> None:
        router, _, _ = wired
        report = await router.send(_request(content="  hello  "))
        assert report.message.content == "hello"

    async def test_max_length_accepted(self, wired) -> None:
        router, _, _ = wired
        report = await router.send(_request(content="x" * 2000))
        assert len(report.message.content) == 2000


class TestGlobal:
    async def test_reaches_every_connection(
        self, wired, store: InMemoryStore, outbox: Outbox
    ) -> None:
        router, _, _ = wired
        report = await router.send(_request(content="hello all"))

        assert sorted(report.recipients) == ["c-alice", "c-bob", "c-carol"]
        for c in ("c-alice", "c-bob", "c-carol"):
            (payload,) = outbox.data(c, NEW_MESSAGE_EVENT)
            assert payload["content"] == "hello all"
            assert payload["sender"]["name"] == "Alice"
            assert payload["scope"] == "global"
        assert await store.count_messages(MessageScope.GLOBAL) == 1


class TestPrivate:
    async def test_receiver_and_sender_echo(self, wired, outbox: Outbox) -> None:
        router, _, _ = wired
        await router.send(_request(receiverId="bob", isGlobal=False, content="psst"))

        assert outbox.data("c-bob", NEW_MESSAGE_EVENT)[0]["content"] == "psst"
        assert outbox.data("c-alice", NEW_MESSAGE_EVENT)[0]["receiver"]["_id"] == "bob"
        assert outbox.events("c-carol", NEW_MESSAGE_EVENT) == []

    async def test_offline_receiver_still_persisted(
        self, wired, store: InMemoryStore, outbox: Outbox
    ) -> None:
        router, _, _ = wired
        report = await router.send(_request(receiverId="zed", isGlobal=False))

        assert report.recipients == ["c-alice"]
        stored = await store.get_message(report.message.id)
        assert stored is not None and stored.receiver == "zed"


class TestRoom:
    async def test_members_only(self, wired, outbox: Outbox) -> None:
        router, _, rooms = wired
        room = await rooms.create("general", "alice")
        await rooms.join(room.id, "bob")

        report = await router.send(_request(chatRoomId=room.id, content="team"))

        assert sorted(report.recipients) == ["c-alice", "c-bob"]
        payload = outbox.data("c-bob", NEW_MESSAGE_EVENT)[0]
        assert payload["chatRoom"] == {"_id": room.id, "name": "general"}
        assert outbox.events("c-carol") == []
        assert (await rooms.get(room.id)).message_count == 1

    async def test_non_member_never_persisted(
        self, wired, store: InMemoryStore, outbox: Outbox
    ) -> None:
        router, _, rooms = wired
        room = await rooms.create("general", "bob")

        with pytest.raises(AuthorizationError):
            await router.send(_request(chatRoomId=room.id))
        assert await store.count_messages() == 0
        assert outbox.frames == {}
        assert (await rooms.get(room.id)).message_count == 0

    async def test_missing_room(self, wired) -> None:
        router, _, _ = wired
        with pytest.raises(AuthorizationError):
            await router.send(_request(chatRoomId="missing"))

    async def test_file_sharing_disabled(self, wired, store: InMemoryStore) -> None:
        router, _, rooms = wired
        room = await rooms.create("locked", "alice")
        room.settings = RoomSettings(allow_file_sharing=False)
        await store.update_room(room)

        with pytest.raises(ValidationError):
            await router.send(
                _request(chatRoomId=room.id, kind="image", fileUrl="https://cdn/x.png")
            )
        report = await router.send(_request(chatRoomId=room.id, kind="emoji", content=":)"))
        assert report.message.kind == MessageKind.EMOJI

    async def test_offline_member_skipped(self, store: InMemoryStore, outbox: Outbox) -> None:
        router, presence, rooms = _make_router(store, outbox)
        await presence.register("c-alice", "alice")
        room = await rooms.create("general", "alice")
        await rooms.join(room.id, "bob")

        report = await router.send(_request(chatRoomId=room.id))
        assert report.recipients == ["c-alice"]


class TestPersistenceFailure:
    async def test_no_fanout(self, outbox: Outbox) -> None:
        router, presence, _ = _make_router(BrokenMessageStore(), outbox)
        await presence.register("c-alice", "alice")
        outbox.clear()

        with pytest.raises(PersistenceError):
            await router.send(_request())
        assert outbox.frames == {}


class TestStrictConfig:
    async def test_ambiguous_rejected(self, store: InMemoryStore, outbox: Outbox) -> None:
        router, _, rooms = _make_router(store, outbox, ChatConfig(strict_scope_inference=True))
        room = await rooms.create("general", "alice")
        with pytest.raises(ValidationError):
            await router.send(_request(chatRoomId=room.id, receiverId="bob"))
        assert await store.count_messages() == 0
