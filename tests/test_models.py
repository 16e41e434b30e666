"""Tests for data models and wire payloads."""

from __future__ import annotations

import pydantic
import pytest

from roomchat.models.enums import MemberRole, MessageKind, MessageScope, MessageStatus
from roomchat.models.message import FileInfo, Message
from roomchat.models.room import ChatRoom, RoomMember
from roomchat.models.user import PresenceEntry
from roomchat.models.wire import (
    JoinPayload,
    MessageOut,
    OnlineUser,
    SendMessageRequest,
    TypingPayload,
    UserSummary,
)


def _room(**kwargs: object) -> ChatRoom:
    params: dict[str, object] = {
        "name": "general",
        "admin": "alice",
        "members": [RoomMember(user_id="alice", role=MemberRole.ADMIN)],
    }
    params.update(kwargs)
    return ChatRoom(**params)  # type: ignore[arg-type]


class TestMessage:
    def test_global_defaults(self) -> None:
        m = Message(sender="alice", scope=MessageScope.GLOBAL, content="hi")
        assert m.id
        assert m.kind == MessageKind.TEXT
        assert m.status == MessageStatus.ACTIVE
        assert m.is_read is False
        assert m.created_at.tzinfo is not None

    @pytest.mark.parametrize(
        ("scope", "receiver", "room"),
        [
            (MessageScope.GLOBAL, "bob", None),
            (MessageScope.GLOBAL, None, "r1"),
            (MessageScope.PRIVATE, None, None),
            (MessageScope.PRIVATE, "bob", "r1"),
            (MessageScope.ROOM, None, None),
            (MessageScope.ROOM, "bob", "r1"),
        ],
    )
    def test_scope_fields_enforced(
        self, scope: MessageScope, receiver: str | None, room: str | None
    ) -> None:
        with pytest.raises(pydantic.ValidationError):
            Message(sender="alice", scope=scope, receiver=receiver, room=room, content="x")

    def test_empty_content_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Message(sender="alice", scope=MessageScope.GLOBAL, content="")

    def test_file_only_on_non_text(self) -> None:
        f = FileInfo(name="a.png", url="https://cdn/a.png", size=10)
        with pytest.raises(pydantic.ValidationError):
            Message(sender="a", scope=MessageScope.GLOBAL, content="x", file=f)
        m = Message(
            sender="a", scope=MessageScope.GLOBAL, content="x", kind=MessageKind.IMAGE, file=f
        )
        assert m.file == f

    def test_scope_is_immutable(self) -> None:
        m = Message(sender="a", scope=MessageScope.GLOBAL, content="x")
        with pytest.raises(pydantic.ValidationError):
            m.scope = MessageScope.ROOM  # type: ignore[misc]

    def test_edit_then_delete(self) -> None:
        m = Message(sender="a", scope=MessageScope.GLOBAL, content="x")
        edited = m.edit("y")
        assert edited.content == "y"
        assert edited.status == MessageStatus.EDITED
        assert edited.is_edited
        assert not m.is_edited

        deleted = edited.soft_delete()
        assert deleted.is_deleted
        assert deleted.deleted_at is not None
        assert deleted.is_edited

    def test_deleted_cannot_be_edited(self) -> None:
        m = Message(sender="a", scope=MessageScope.GLOBAL, content="x").soft_delete()
        with pytest.raises(ValueError):
            m.edit("again")

    def test_mark_read_keeps_first_timestamp(self) -> None:
        m = Message(sender="a", scope=MessageScope.PRIVATE, receiver="b", content="x")
        once = m.mark_read()
        twice = once.mark_read()
        assert once.is_read
        assert twice.read_at == once.read_at


class TestChatRoom:
    def test_membership_index(self) -> None:
        room = _room()
        assert room.is_member("alice")
        assert not room.is_member("bob")
        assert room.add_member("bob")
        assert room.is_member("bob")
        assert not room.add_member("bob")
        assert room.member_count == 2

    def test_capacity(self) -> None:
        room = _room(max_members=2)
        assert room.add_member("bob")
        assert room.is_full
        assert not room.add_member("carol")

    def test_remove_last_member_deactivates(self) -> None:
        room = _room()
        assert room.remove_member("alice")
        assert room.members == []
        assert not room.is_active
        assert not room.remove_member("alice")

    def test_name_trimmed_and_bounded(self) -> None:
        assert _room(name="  lobby  ").name == "lobby"
        with pytest.raises(pydantic.ValidationError):
            _room(name="x" * 51)
        with pytest.raises(pydantic.ValidationError):
            _room(description="d" * 201)

    @pytest.mark.parametrize("capacity", [1, 501])
    def test_capacity_bounds(self, capacity: int) -> None:
        with pytest.raises(pydantic.ValidationError):
            _room(max_members=capacity)

    def test_duplicate_members_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            _room(members=[RoomMember(user_id="a"), RoomMember(user_id="a")])

    def test_roles(self) -> None:
        room = _room()
        room.add_member("bob")
        assert room.can_moderate("alice")
        assert not room.can_moderate("bob")
        assert room.set_role("bob", MemberRole.MODERATOR)
        assert room.can_moderate("bob")
        assert not room.set_role("zed", MemberRole.MODERATOR)

    def test_deep_copy_keeps_index(self) -> None:
        room = _room()
        copy = room.model_copy(deep=True)
        copy.add_member("bob")
        assert copy.is_member("bob")
        assert not room.is_member("bob")

    def test_round_trip_rebuilds_index(self) -> None:
        room = _room()
        room.add_member("bob")
        restored = ChatRoom.model_validate_json(room.model_dump_json())
        assert restored.is_member("bob")


class TestWirePayloads:
    def test_send_request_accepts_legacy_names(self) -> None:
        req = SendMessageRequest.model_validate(
            {
                "senderId": "a",
                "content": "hi",
                "messageType": "image",
                "chatRoomId": "r1",
                "fileUrl": "https://cdn/x.png",
                "fileName": "x.png",
                "fileSize": 12,
            }
        )
        assert req.kind == MessageKind.IMAGE
        assert req.chat_room_id == "r1"
        assert req.file == FileInfo(name="x.png", url="https://cdn/x.png", size=12)
        assert req.is_global is True

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            SendMessageRequest.model_validate({"senderId": "a", "content": "x", "kind": "gif"})

    def test_join_avatar_aliases(self) -> None:
        assert JoinPayload.model_validate({"userId": "a", "image": "u"}).avatar_url == "u"
        assert JoinPayload.model_validate({"userId": "a", "avatarUrl": "v"}).avatar_url == "v"

    def test_typing_keeps_extra_fields(self) -> None:
        payload = TypingPayload.model_validate({"userId": "a", "chatType": "global", "x": 1})
        assert payload.chat_type == "global"
        assert payload.model_extra == {"x": 1}

    def test_message_out_wire_names(self) -> None:
        m = Message(sender="a", scope=MessageScope.PRIVATE, receiver="b", content="hi")
        out = MessageOut.build(m, UserSummary(id="a", name="A"), UserSummary(id="b"))
        wire = out.to_wire()
        assert wire["_id"] == m.id
        assert wire["sender"] == {"_id": "a", "name": "A", "email": None, "avatarUrl": None}
        assert wire["receiver"]["_id"] == "b"
        assert wire["chatRoom"] is None
        assert wire["isRead"] is False
        assert wire["isEdited"] is False
        assert "createdAt" in wire

    def test_online_user_from_entry(self) -> None:
        entry = PresenceEntry(connection_id="c1", user_id="a", name="A")
        wire = OnlineUser.from_entry(entry).to_wire()
        assert wire["userId"] == "a"
        assert wire["connectionId"] == "c1"
