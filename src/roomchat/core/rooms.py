"""Room lifecycle and membership."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from roomchat.config import ChatConfig
from roomchat.core.errors import (
    AdminLeaveError,
    AuthorizationError,
    CapacityError,
    ConflictError,
    InactiveError,
    NotFoundError,
    NotMemberError,
    ValidationError,
)
from roomchat.core.locks import RoomLockManager
from roomchat.models.enums import MemberRole
from roomchat.models.room import ChatRoom, RoomMember
from roomchat.store.base import ChatStore

logger = logging.getLogger("roomchat.rooms")


class RoomService:
    """Creates rooms and mutates their membership.

    Every membership change runs under the room's lock, so the
    read-check-write sequence is never interleaved with another change to
    the same room. ``ChatStore.add_member`` repeats the capacity guard inside
    the write itself for stores shared between processes.
    """

    def __init__(
        self, store: ChatStore, lock_manager: RoomLockManager, config: ChatConfig
    ) -> None:
        self._store = store
        self._locks = lock_manager
        self._config = config

    async def create(
        self,
        name: str,
        admin_id: str,
        *,
        description: str | None = None,
        is_private: bool = False,
        max_members: int | None = None,
        avatar_url: str | None = None,
    ) -> ChatRoom:
        """Create a room with ``admin_id`` as its only member.

        Raises:
            ValidationError: Missing name or admin, or out-of-range capacity.
            ConflictError: The (trimmed, case-sensitive) name is taken.
        """
        name = (name or "").strip()
        if not name or not (admin_id or "").strip():
            raise ValidationError("Room name and admin ID are required")
        if len(name) > 50:
            raise ValidationError("Room name must be at most 50 characters")
        description = (description or "").strip()
        if len(description) > 200:
            raise ValidationError("Room description must be at most 200 characters")
        capacity = self._config.default_max_members if max_members is None else max_members
        if not self._config.min_room_members <= capacity <= self._config.max_room_members:
            raise ValidationError(
                f"maxMembers must be between {self._config.min_room_members} "
                f"and {self._config.max_room_members}"
            )

        if await self._store.get_room_by_name(name) is not None:
            raise ConflictError("A room with this name already exists")
        room = ChatRoom(
            name=name,
            description=description,
            admin=admin_id,
            members=[RoomMember(user_id=admin_id, role=MemberRole.ADMIN)],
            is_private=is_private,
            max_members=capacity,
            avatar_url=avatar_url,
        )
        # the store enforces uniqueness too, for creates racing past the lookup
        room = await self._store.create_room(room)
        logger.info("Room %s (%s) created by %s", room.name, room.id, admin_id)
        return room

    async def get(self, room_id: str) -> ChatRoom:
        """Get a room by ID. Raises NotFoundError if missing."""
        room = await self._store.get_room(room_id)
        if room is None:
            raise NotFoundError("Chat room not found")
        return room

    async def join(self, room_id: str, user_id: str) -> ChatRoom:
        """Add ``user_id`` as a plain member.

        Raises:
            NotFoundError: No such room.
            InactiveError: The room was deactivated.
            ConflictError: Already a member.
            CapacityError: The room is full.
        """
        if not user_id:
            raise ValidationError("User ID is required")
        async with self._locks.locked(room_id):
            room = await self.get(room_id)
            if not room.is_active:
                raise InactiveError("This chat room is no longer active")
            if room.is_member(user_id):
                raise ConflictError("User is already a member of this room")
            if room.is_full:
                raise CapacityError("Chat room is full")
            updated = await self._store.add_member(room_id, RoomMember(user_id=user_id))
            if updated is None:
                # lost a race against another process sharing the store
                raise CapacityError("Chat room is full")
        logger.info("User %s joined room %s", user_id, room_id)
        return updated

    async def leave(self, room_id: str, user_id: str) -> ChatRoom:
        """Remove ``user_id``; the room is deactivated once it is empty.

        Raises:
            NotFoundError: No such room.
            NotMemberError: The user is not a member.
            AdminLeaveError: The admin tried to leave while others remain.
        """
        if not user_id:
            raise ValidationError("User ID is required")
        async with self._locks.locked(room_id):
            room = await self.get(room_id)
            if not room.is_member(user_id):
                raise NotMemberError("User is not a member of this room")
            if room.is_admin(user_id) and room.member_count > 1:
                raise AdminLeaveError(
                    "Admin cannot leave room with other members. Transfer admin rights first."
                )
            room.remove_member(user_id)
            room = await self._store.update_room(room)
        if not room.is_active:
            logger.info("Room %s deactivated after its last member left", room_id)
        else:
            logger.info("User %s left room %s", user_id, room_id)
        return room

    async def transfer_admin(self, room_id: str, admin_id: str, new_admin_id: str) -> ChatRoom:
        """Hand the admin role to another member; the old admin becomes a moderator."""
        async with self._locks.locked(room_id):
            room = await self.get(room_id)
            if not room.is_admin(admin_id):
                raise AuthorizationError("Only the room admin can transfer admin rights")
            if not room.is_member(new_admin_id):
                raise NotMemberError("New admin must be a member of this room")
            if new_admin_id == admin_id:
                return room
            room.set_role(admin_id, MemberRole.MODERATOR)
            room.set_role(new_admin_id, MemberRole.ADMIN)
            room.admin = new_admin_id
            room = await self._store.update_room(room)
        logger.info("Room %s admin transferred from %s to %s", room_id, admin_id, new_admin_id)
        return room

    async def set_role(
        self, room_id: str, actor_id: str, user_id: str, role: MemberRole
    ) -> ChatRoom:
        """Promote or demote a member between moderator and member."""
        if role == MemberRole.ADMIN:
            raise ValidationError("Use transfer_admin to assign the admin role")
        async with self._locks.locked(room_id):
            room = await self.get(room_id)
            if not room.is_admin(actor_id):
                raise AuthorizationError("Only the room admin can change member roles")
            if room.is_admin(user_id):
                raise ValidationError("The admin's role cannot be changed")
            if not room.set_role(user_id, role):
                raise NotMemberError("User is not a member of this room")
            return await self._store.update_room(room)

    async def record_message(self, room_id: str) -> ChatRoom | None:
        """Count one more message in the room and bump its activity time."""
        return await self._store.record_room_message(room_id, datetime.now(UTC))

    async def list_visible(self, user_id: str | None = None) -> list[ChatRoom]:
        """Active rooms that are public or have ``user_id`` as a member."""
        rooms = await self._store.list_rooms(active_only=True, visible_to=user_id)
        if user_id is None:
            rooms = [r for r in rooms if not r.is_private]
        return rooms

    async def is_member(self, room_id: str, user_id: str) -> bool:
        room = await self._store.get_room(room_id)
        return room is not None and room.is_member(user_id)

    async def is_admin(self, room_id: str, user_id: str) -> bool:
        room = await self._store.get_room(room_id)
        return room is not None and room.is_admin(user_id)

    async def can_moderate(self, room_id: str, user_id: str) -> bool:
        room = await self._store.get_room(room_id)
        return room is not None and room.can_moderate(user_id)
