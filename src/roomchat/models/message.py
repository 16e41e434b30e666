"""Message model."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from roomchat.models.enums import MessageKind, MessageScope, MessageStatus


class FileInfo(BaseModel):
    """Opaque reference to an uploaded blob."""

    name: str | None = None
    url: str
    size: int | None = Field(default=None, ge=0)


class Message(BaseModel):
    """A persisted chat message.

    ``receiver`` and ``room`` are tied to ``scope``: a global message has
    neither, a private message has only ``receiver`` and a room message has
    only ``room``. Construction fails for any other combination.
    """

    id: str = Field(default_factory=lambda: uuid4().hex, frozen=True)
    sender: str = Field(min_length=1, frozen=True)
    scope: MessageScope = Field(frozen=True)
    receiver: str | None = None
    room: str | None = None
    content: str = Field(min_length=1)
    kind: MessageKind = MessageKind.TEXT
    file: FileInfo | None = None
    status: MessageStatus = MessageStatus.ACTIVE
    is_read: bool = False
    read_at: datetime | None = None
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)

    @model_validator(mode="after")
    def _check_scope_fields(self) -> Message:
        if self.scope == MessageScope.GLOBAL:
            if self.receiver is not None or self.room is not None:
                raise ValueError("global messages carry neither receiver nor room")
        elif self.scope == MessageScope.PRIVATE:
            if self.receiver is None or self.room is not None:
                raise ValueError("private messages carry a receiver and no room")
        elif self.room is None or self.receiver is not None:
            raise ValueError("room messages carry a room and no receiver")
        if self.file is not None and self.kind == MessageKind.TEXT:
            raise ValueError("text messages cannot carry file metadata")
        return self

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None

    @property
    def is_deleted(self) -> bool:
        return self.status == MessageStatus.DELETED

    def mark_read(self, at: datetime | None = None) -> Message:
        """Return a copy flagged as read. Reading twice keeps the first timestamp."""
        if self.is_read:
            return self.model_copy()
        return self.model_copy(update={"is_read": True, "read_at": at or datetime.now(UTC)})

    def edit(self, content: str, at: datetime | None = None) -> Message:
        """Return a copy with new content. Deleted messages cannot be edited."""
        if self.is_deleted:
            raise ValueError("deleted messages cannot be edited")
        return self.model_copy(
            update={
                "content": content,
                "status": MessageStatus.EDITED,
                "edited_at": at or datetime.now(UTC),
            }
        )

    def soft_delete(self, at: datetime | None = None) -> Message:
        """Return a copy in the terminal deleted state."""
        if self.is_deleted:
            return self.model_copy()
        return self.model_copy(
            update={"status": MessageStatus.DELETED, "deleted_at": at or datetime.now(UTC)}
        )
