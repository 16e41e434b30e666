"""Abstract base class for identity resolution."""

from __future__ import annotations

from abc import ABC, abstractmethod

from roomchat.models.identity import IdentityResult
from roomchat.models.wire import JoinPayload


class IdentityResolver(ABC):
    """Turns a connection's ``join`` claim into a stable user identity.

    Authentication happens elsewhere; a resolver only decides whether the
    claimed user id is acceptable and supplies the display fields.
    """

    @abstractmethod
    async def resolve(self, claim: JoinPayload) -> IdentityResult:
        """Resolve a join claim.

        Returns:
            An identified result carrying the identity, or a rejected or
            unknown result. Anything but identified leaves the connection
            unjoined.
        """
        ...
