"""In-memory actor directory for development and tests."""

from custody.directory.port import ActorDirectory, ActorRecord
from custody.errors import StoreUnavailable
from custody.shared.roles import ActorRole, parse_role


class FakeActorDirectory(ActorDirectory):
    """Directory backed by a dict, with switchable availability."""

    def __init__(self) -> None:
        self._actors: dict[str, ActorRecord] = {}
        self.available = True
        self.lookups: list[str] = []

    def register(
        self,
        wallet: str,
        role: ActorRole | str,
        active: bool = True,
        name: str | None = None,
        organization: str | None = None,
    ) -> ActorRecord:
        record = ActorRecord(
            wallet=wallet.lower(),
            role=parse_role(role),
            active=active,
            name=name,
            organization=organization,
        )
        self._actors[record.wallet] = record
        return record

    def deactivate(self, wallet: str) -> None:
        record = self._actors[wallet.lower()]
        self._actors[record.wallet] = ActorRecord(
            wallet=record.wallet,
            role=record.role,
            active=False,
            name=record.name,
            organization=record.organization,
        )

    def configure(self, available: bool = True) -> None:
        """Simulate the directory going down (or coming back)."""
        self.available = available

    def clear(self) -> None:
        self._actors.clear()
        self.lookups.clear()

    def resolve(self, wallet: str) -> ActorRecord | None:
        self.lookups.append(wallet)
        if not self.available:
            raise StoreUnavailable("Actor directory unavailable")
        return self._actors.get((wallet or "").lower())
