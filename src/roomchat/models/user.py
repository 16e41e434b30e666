"""User and presence models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class User(BaseModel):
    """A chat user.

    Profile fields belong to the identity provider. Only ``is_online``,
    ``last_seen_at`` and ``live_connection_id`` are written by this package.
    """

    id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    is_online: bool = False
    last_seen_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    live_connection_id: str | None = None


class PresenceEntry(BaseModel):
    """One live connection in the presence registry. Never persisted."""

    connection_id: str
    user_id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    joined_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
