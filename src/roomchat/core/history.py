"""Paged history results."""

from __future__ import annotations

from pydantic import BaseModel

from roomchat.config import ChatConfig
from roomchat.core.errors import ValidationError
from roomchat.models.wire import MessageOut, WireModel


class PageRequest(BaseModel):
    """A normalised page of a newest-first query."""

    page: int = 1
    limit: int = 50

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def normalize(
        cls, page: int | None, limit: int | None, config: ChatConfig
    ) -> PageRequest:
        """Fill in defaults and reject out-of-range values."""
        page = 1 if page is None else page
        limit = config.default_page_size if limit is None else limit
        if page < 1:
            raise ValidationError("page must be at least 1")
        if not 1 <= limit <= config.max_page_size:
            raise ValidationError(f"limit must be between 1 and {config.max_page_size}")
        return cls(page=page, limit=limit)


class Pagination(WireModel):
    page: int
    limit: int
    has_more: bool


class MessagePage(WireModel):
    """One page of history, oldest message first."""

    items: list[MessageOut]
    pagination: Pagination
