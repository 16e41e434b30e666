"""Exception hierarchy for roomchat.

Every error carries a stable ``kind`` string. The session protocol and the
HTTP layer put it on the wire so clients can tell failures apart without
parsing messages.
"""

from __future__ import annotations

from typing import ClassVar


class ChatError(Exception):
    """Base exception for all roomchat errors."""

    kind: ClassVar[str] = "ChatError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "kind": self.kind}


class ValidationError(ChatError):
    """Malformed or missing required input."""

    kind = "ValidationError"


class AuthorizationError(ChatError):
    """Caller may not perform the action (not a room member, not the owner)."""

    kind = "AuthorizationError"


class NotFoundError(ChatError):
    """Referenced room, message or user does not exist."""

    kind = "NotFoundError"


class ConflictError(ChatError):
    """Duplicate room name or already-a-member."""

    kind = "ConflictError"


class CapacityError(ChatError):
    """Room is full."""

    kind = "CapacityError"


class InactiveError(ChatError):
    """Room has been deactivated."""

    kind = "InactiveError"


class NotMemberError(ChatError):
    """User is not a member of the room."""

    kind = "NotMemberError"


class AdminLeaveError(ChatError):
    """Admin tried to leave a room that still has other members."""

    kind = "AdminLeaveError"


class PersistenceError(ChatError):
    """Durable store is unavailable or rejected the write."""

    kind = "PersistenceError"
