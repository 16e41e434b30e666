"""roomchat - async real-time chat with presence, rooms and scoped delivery."""

from roomchat._version import __version__
from roomchat.config import ChatConfig
from roomchat.core.errors import (
    AdminLeaveError,
    AuthorizationError,
    CapacityError,
    ChatError,
    ConflictError,
    InactiveError,
    NotFoundError,
    NotMemberError,
    PersistenceError,
    ValidationError,
)
from roomchat.core.framework import ChatKit
from roomchat.core.history import MessagePage, PageRequest, Pagination
from roomchat.core.locks import InMemoryLockManager, RoomLockManager
from roomchat.core.presence import PresenceRegistry
from roomchat.core.rooms import RoomService
from roomchat.core.router import DeliveryReport, ScopeRouter, classify_scope
from roomchat.core.session import ChatSession
from roomchat.identity.base import IdentityResolver
from roomchat.identity.mock import MockIdentityResolver
from roomchat.identity.payload import PayloadIdentityResolver
from roomchat.models.enums import (
    IdentificationStatus,
    MemberRole,
    MessageKind,
    MessageScope,
    MessageStatus,
    SessionState,
)
from roomchat.models.identity import Identity, IdentityResult
from roomchat.models.message import FileInfo, Message
from roomchat.models.room import ChatRoom, RoomMember, RoomSettings
from roomchat.models.user import PresenceEntry, User
from roomchat.models.wire import (
    ClientFrame,
    JoinPayload,
    MessageOut,
    OnlineUser,
    RoomOut,
    SendMessageRequest,
    ServerFrame,
)
from roomchat.realtime import EphemeralEvent, EphemeralEventType, InMemoryRealtime, RealtimeBackend
from roomchat.store.base import ChatStore
from roomchat.store.memory import InMemoryStore
from roomchat.transport.hub import ConnectionHub, SendFn

__all__ = [
    "AdminLeaveError",
    "AuthorizationError",
    "CapacityError",
    "ChatConfig",
    "ChatError",
    "ChatKit",
    "ChatRoom",
    "ChatSession",
    "ChatStore",
    "ClientFrame",
    "ConflictError",
    "ConnectionHub",
    "DeliveryReport",
    "EphemeralEvent",
    "EphemeralEventType",
    "FileInfo",
    "IdentificationStatus",
    "Identity",
    "IdentityResolver",
    "IdentityResult",
    "InMemoryLockManager",
    "InMemoryRealtime",
    "InMemoryStore",
    "InactiveError",
    "JoinPayload",
    "MemberRole",
    "Message",
    "MessageKind",
    "MessageOut",
    "MessagePage",
    "MessageScope",
    "MessageStatus",
    "MockIdentityResolver",
    "NotFoundError",
    "NotMemberError",
    "OnlineUser",
    "PageRequest",
    "Pagination",
    "PayloadIdentityResolver",
    "PersistenceError",
    "PresenceEntry",
    "PresenceRegistry",
    "RealtimeBackend",
    "RoomLockManager",
    "RoomMember",
    "RoomOut",
    "RoomService",
    "RoomSettings",
    "ScopeRouter",
    "SendFn",
    "SendMessageRequest",
    "ServerFrame",
    "SessionState",
    "User",
    "ValidationError",
    "__version__",
    "classify_scope",
]
