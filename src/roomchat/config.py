"""Runtime configuration."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, model_validator

from roomchat.models.room import MAX_ROOM_CAPACITY, MIN_ROOM_CAPACITY

_ENV_PREFIX = "ROOMCHAT_"


class ChatConfig(BaseModel):
    """Tunable limits and switches for a :class:`~roomchat.ChatKit` instance.

    Attributes:
        max_content_length: Upper bound on message content after trimming.
        default_max_members: Capacity assigned to rooms created without one.
        min_room_members: Smallest ``max_members`` a room may be created with.
            Both room bounds must lie within the model limits of 2..500.
        max_room_members: Largest ``max_members`` a room may be created with.
        default_page_size: History page size when the caller gives none.
        max_page_size: Largest history page a caller may request.
        strict_scope_inference: Reject legacy send payloads that carry both a
            room id and a receiver id instead of treating them as room-scoped.
        max_consecutive_send_errors: Failed sends tolerated on a connection
            before the hub drops it.
        realtime_queue_size: Per-subscription queue bound of the in-memory
            realtime backend.
        database_url: DSN for :class:`~roomchat.store.postgres.PostgresStore`.
            ``None`` selects the in-memory store.
        cors_origins: Origins allowed by the HTTP server.
    """

    max_content_length: int = Field(default=2000, ge=1)
    default_max_members: int = Field(default=100, ge=MIN_ROOM_CAPACITY, le=MAX_ROOM_CAPACITY)
    min_room_members: int = Field(
        default=MIN_ROOM_CAPACITY, ge=MIN_ROOM_CAPACITY, le=MAX_ROOM_CAPACITY
    )
    max_room_members: int = Field(
        default=MAX_ROOM_CAPACITY, ge=MIN_ROOM_CAPACITY, le=MAX_ROOM_CAPACITY
    )
    default_page_size: int = Field(default=50, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    strict_scope_inference: bool = False
    max_consecutive_send_errors: int = Field(default=3, ge=1)
    realtime_queue_size: int = Field(default=100, ge=1)
    database_url: str | None = None
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:5174",
        ]
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> ChatConfig:
        if self.min_room_members > self.max_room_members:
            raise ValueError("min_room_members must not exceed max_room_members")
        if not self.min_room_members <= self.default_max_members <= self.max_room_members:
            raise ValueError("default_max_members must lie within the room member bounds")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ChatConfig:
        """Build a config from ``ROOMCHAT_*`` environment variables.

        ``ROOMCHAT_CORS_ORIGINS`` is a comma-separated list. Unset variables
        keep their defaults.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = env.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            if name == "cors_origins":
                values[name] = [o.strip() for o in raw.split(",") if o.strip()]
            else:
                values[name] = raw
        return cls.model_validate(values)
