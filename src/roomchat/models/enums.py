"""All string enums for roomchat."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class MessageScope(StrEnum):
    GLOBAL = "global"
    PRIVATE = "private"
    ROOM = "room"


@unique
class MessageKind(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    AUDIO = "audio"
    VIDEO = "video"
    EMOJI = "emoji"


@unique
class MessageStatus(StrEnum):
    ACTIVE = "active"
    EDITED = "edited"
    DELETED = "deleted"


@unique
class MemberRole(StrEnum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"


@unique
class SessionState(StrEnum):
    CONNECTED = "connected"
    JOINED = "joined"
    IN_ROOM = "in_room"
    DISCONNECTED = "disconnected"


@unique
class IdentificationStatus(StrEnum):
    IDENTIFIED = "identified"
    UNKNOWN = "unknown"
    REJECTED = "rejected"
