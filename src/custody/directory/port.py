"""Actor directory port — resolves a wallet to its role and activity status.

User registration and credential checks live outside the custody domain; this
port is the only view the domain has of who an actor is.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from custody.shared.roles import ActorRole


@dataclass(frozen=True)
class ActorRecord:
    """Directory entry for one wallet."""

    wallet: str
    role: ActorRole | None
    active: bool
    name: str | None = None
    organization: str | None = None


class ActorDirectory(ABC):
    """Abstract interface for actor directory adapters."""

    @abstractmethod
    def resolve(self, wallet: str) -> ActorRecord | None:
        """Look up a wallet.

        Returns:
            The ActorRecord, or None when the wallet is unknown.

        Raises:
            RetryableError: the directory could not be reached.
        """
        ...
