"""Resolver that trusts the join payload."""

from __future__ import annotations

from roomchat.identity.base import IdentityResolver
from roomchat.models.identity import Identity, IdentityResult
from roomchat.models.wire import JoinPayload


class PayloadIdentityResolver(IdentityResolver):
    """Accepts any non-blank user id and takes display fields from the claim.

    Suitable when an upstream gateway has already authenticated the socket.
    """

    async def resolve(self, claim: JoinPayload) -> IdentityResult:
        user_id = (claim.user_id or "").strip()
        if not user_id:
            return IdentityResult.reject("userId is required")
        return IdentityResult.identified(
            Identity(
                id=user_id,
                name=claim.name,
                email=claim.email,
                avatar_url=claim.avatar_url,
            )
        )
