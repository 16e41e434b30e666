"""Mock identity resolver for testing."""

from __future__ import annotations

from roomchat.identity.base import IdentityResolver
from roomchat.models.enums import IdentificationStatus
from roomchat.models.identity import Identity, IdentityResult
from roomchat.models.wire import JoinPayload


class MockIdentityResolver(IdentityResolver):
    """Resolves identity from a pre-configured mapping.

    - **Identified**: ``user_id`` found in ``mapping``; the stored identity
      wins over the display fields of the claim.
    - **Otherwise**: status controlled by ``unknown_status``.
    """

    def __init__(
        self,
        mapping: dict[str, Identity] | None = None,
        unknown_status: IdentificationStatus = IdentificationStatus.REJECTED,
    ) -> None:
        self._mapping = mapping or {}
        self._unknown_status = unknown_status
        self.calls: list[JoinPayload] = []

    async def resolve(self, claim: JoinPayload) -> IdentityResult:
        self.calls.append(claim)
        identity = self._mapping.get(claim.user_id or "")
        if identity is not None:
            return IdentityResult.identified(identity)
        return IdentityResult(status=self._unknown_status, reason="not in mapping")
