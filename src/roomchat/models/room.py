"""Chat room model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr, field_validator, model_validator

from roomchat.models.enums import MemberRole

# Hard limits on ChatRoom.max_members; ChatConfig may only narrow them.
MIN_ROOM_CAPACITY = 2
MAX_ROOM_CAPACITY = 500


class RoomMember(BaseModel):
    """A user's membership in a room."""

    user_id: str
    role: MemberRole = MemberRole.MEMBER
    joined_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RoomSettings(BaseModel):
    """Per-room feature switches."""

    allow_file_sharing: bool = True
    allow_member_invites: bool = True
    mute_notifications: bool = False


class ChatRoom(BaseModel):
    """A named, membership-bounded group channel.

    ``members`` keeps join order for display; a private index of member ids
    backs the membership predicates. Mutate membership only through
    :meth:`add_member`, :meth:`remove_member` and :meth:`set_role` so the two
    stay in step. Stores hand out deep copies.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(min_length=1, max_length=50)
    description: str = Field(default="", max_length=200)
    admin: str
    members: list[RoomMember] = Field(default_factory=list)
    is_private: bool = False
    is_active: bool = True
    max_members: int = Field(default=100, ge=MIN_ROOM_CAPACITY, le=MAX_ROOM_CAPACITY)
    message_count: int = Field(default=0, ge=0)
    last_activity: datetime = Field(default_factory=lambda: datetime.now(UTC))
    avatar_url: str | None = None
    settings: RoomSettings = Field(default_factory=RoomSettings)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    _member_ids: set[str] = PrivateAttr(default_factory=set)

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def _check_members(self) -> ChatRoom:
        ids = [m.user_id for m in self.members]
        if len(ids) != len(set(ids)):
            raise ValueError("member user ids must be unique")
        if len(ids) > self.max_members:
            raise ValueError("room has more members than max_members")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._member_ids = {m.user_id for m in self.members}

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.max_members

    def is_member(self, user_id: str) -> bool:
        return user_id in self._member_ids

    def is_admin(self, user_id: str) -> bool:
        return self.admin == user_id

    def member(self, user_id: str) -> RoomMember | None:
        if user_id not in self._member_ids:
            return None
        return next(m for m in self.members if m.user_id == user_id)

    def can_moderate(self, user_id: str) -> bool:
        if self.is_admin(user_id):
            return True
        member = self.member(user_id)
        return member is not None and member.role in (MemberRole.MODERATOR, MemberRole.ADMIN)

    def touch(self, at: datetime | None = None) -> None:
        now = at or datetime.now(UTC)
        self.last_activity = now
        self.updated_at = now

    def add_member(self, user_id: str, role: MemberRole = MemberRole.MEMBER) -> bool:
        """Append a member. Returns ``False`` if already present or full."""
        if user_id in self._member_ids or self.is_full:
            return False
        self.members.append(RoomMember(user_id=user_id, role=role))
        self._member_ids.add(user_id)
        self.touch()
        return True

    def remove_member(self, user_id: str) -> bool:
        """Remove a member. Deactivates the room once it is empty."""
        if user_id not in self._member_ids:
            return False
        self.members = [m for m in self.members if m.user_id != user_id]
        self._member_ids.discard(user_id)
        if not self.members:
            self.is_active = False
        self.touch()
        return True

    def set_role(self, user_id: str, role: MemberRole) -> bool:
        member = self.member(user_id)
        if member is None:
            return False
        member.role = role
        self.updated_at = datetime.now(UTC)
        return True
