"""Identity resolution models."""

from __future__ import annotations

from pydantic import BaseModel

from roomchat.models.enums import IdentificationStatus


class Identity(BaseModel):
    """A resolved user identity supplied by the identity provider."""

    id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


class IdentityResult(BaseModel):
    """Outcome of resolving a ``join`` claim."""

    status: IdentificationStatus
    identity: Identity | None = None
    reason: str | None = None

    @property
    def is_identified(self) -> bool:
        return self.status == IdentificationStatus.IDENTIFIED and self.identity is not None

    @classmethod
    def identified(cls, identity: Identity) -> IdentityResult:
        return cls(status=IdentificationStatus.IDENTIFIED, identity=identity)

    @classmethod
    def reject(cls, reason: str = "Unknown user") -> IdentityResult:
        return cls(status=IdentificationStatus.REJECTED, reason=reason)
