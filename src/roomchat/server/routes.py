"""REST routes under ``/api/chat``."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query, Request

from roomchat.core.framework import ChatKit
from roomchat.core.history import MessagePage
from roomchat.models.enums import MemberRole
from roomchat.models.wire import RoomOut, UserOut, WireModel

router = APIRouter(prefix="/api/chat")


class CreateRoomBody(WireModel):
    name: str = ""
    admin_id: str = ""
    description: str | None = None
    is_private: bool = False
    max_members: int | None = None
    avatar_url: str | None = None


class UserBody(WireModel):
    user_id: str = ""


class EditMessageBody(WireModel):
    user_id: str = ""
    content: str = ""


class DeleteMessageBody(WireModel):
    user_id: str = ""
    hard: bool = False


class TransferAdminBody(WireModel):
    user_id: str = ""
    new_admin_id: str = ""


class SetRoleBody(WireModel):
    user_id: str = ""
    role: MemberRole


def _kit(request: Request) -> ChatKit:
    return request.app.state.kit


def _ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    return {"success": True, "data": data, **extra}


def _page(page: MessagePage) -> dict[str, Any]:
    wire = page.to_wire()
    return _ok(wire["items"], pagination=wire["pagination"])


# -- Messages ------------------------------------------------------------------


@router.get("/messages")
async def global_messages(
    request: Request, page: int = 1, limit: int | None = None
) -> dict[str, Any]:
    return _page(await _kit(request).get_global_messages(page, limit))


@router.get("/messages/private/{user_id}")
async def private_messages(
    request: Request,
    user_id: str,
    current_user_id: str = Query(default="", alias="currentUserId"),
    page: int = 1,
    limit: int | None = None,
) -> dict[str, Any]:
    kit = _kit(request)
    return _page(await kit.get_private_messages(current_user_id, user_id, page, limit))


@router.put("/messages/{message_id}/read")
async def mark_read(request: Request, message_id: str) -> dict[str, Any]:
    message = await _kit(request).mark_read(message_id)
    return _ok(message.to_wire())


@router.patch("/messages/{message_id}")
async def edit_message(
    request: Request, message_id: str, body: EditMessageBody
) -> dict[str, Any]:
    message = await _kit(request).edit_message(message_id, body.user_id, body.content)
    return _ok(message.to_wire())


@router.delete("/messages/{message_id}")
async def delete_message(
    request: Request, message_id: str, body: DeleteMessageBody = Body(...)
) -> dict[str, Any]:
    await _kit(request).delete_message(message_id, body.user_id, hard=body.hard)
    return {"success": True, "message": "Message deleted successfully"}


# -- Users ---------------------------------------------------------------------


@router.get("/online-users")
async def online_users(request: Request) -> dict[str, Any]:
    users = await _kit(request).list_online_users()
    return _ok([UserOut.from_user(u).to_wire() for u in users])


@router.get("/users")
async def users(request: Request) -> dict[str, Any]:
    users = await _kit(request).list_users()
    return _ok([UserOut.from_user(u).to_wire() for u in users])


@router.get("/stats")
async def stats(request: Request) -> dict[str, Any]:
    counters = await _kit(request).stats()
    return _ok(
        {
            "totalMessages": counters["total_messages"],
            "totalUsers": counters["total_users"],
            "onlineUsers": counters["online_users"],
            "todayMessages": counters["today_messages"],
        }
    )


# -- Rooms ---------------------------------------------------------------------


@router.get("/rooms")
async def list_rooms(
    request: Request, user_id: str | None = Query(default=None, alias="userId")
) -> dict[str, Any]:
    rooms = await _kit(request).list_rooms(user_id or None)
    return _ok([RoomOut.from_room(r).to_wire() for r in rooms])


@router.post("/rooms", status_code=201)
async def create_room(request: Request, body: CreateRoomBody) -> dict[str, Any]:
    room = await _kit(request).create_room(
        body.name,
        body.admin_id,
        description=body.description,
        is_private=body.is_private,
        max_members=body.max_members,
        avatar_url=body.avatar_url,
    )
    return _ok(RoomOut.from_room(room).to_wire())


@router.post("/rooms/{room_id}/join")
async def join_room(request: Request, room_id: str, body: UserBody) -> dict[str, Any]:
    room = await _kit(request).join_room(room_id, body.user_id)
    return _ok(RoomOut.from_room(room).to_wire(), message="Successfully joined the room")


@router.post("/rooms/{room_id}/leave")
async def leave_room(request: Request, room_id: str, body: UserBody) -> dict[str, Any]:
    room = await _kit(request).leave_room(room_id, body.user_id)
    return _ok(RoomOut.from_room(room).to_wire(), message="Successfully left the room")


@router.post("/rooms/{room_id}/transfer-admin")
async def transfer_admin(
    request: Request, room_id: str, body: TransferAdminBody
) -> dict[str, Any]:
    room = await _kit(request).transfer_admin(room_id, body.user_id, body.new_admin_id)
    return _ok(RoomOut.from_room(room).to_wire())


@router.put("/rooms/{room_id}/members/{member_id}/role")
async def set_role(
    request: Request, room_id: str, member_id: str, body: SetRoleBody
) -> dict[str, Any]:
    room = await _kit(request).set_role(room_id, body.user_id, member_id, body.role)
    return _ok(RoomOut.from_room(room).to_wire())


@router.get("/rooms/{room_id}/messages")
async def room_messages(
    request: Request,
    room_id: str,
    user_id: str = Query(default="", alias="userId"),
    page: int = 1,
    limit: int | None = None,
) -> dict[str, Any]:
    return _page(await _kit(request).get_room_messages(room_id, user_id, page, limit))
