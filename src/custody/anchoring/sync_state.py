"""SyncState aggregate — the anchor reconciler's persisted cursor."""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from custody.domain import custody

DEFAULT_SYNC_ID = "shipment-registry"


class SyncStatus(Enum):
    IDLE = "IDLE"
    SYNCING = "SYNCING"
    ERROR = "ERROR"
    STOPPED = "STOPPED"


@custody.aggregate
class SyncState:
    sync_id = Identifier(identifier=True)
    last_synced_block = Integer(default=0, min_value=0)
    events_processed = Integer(default=0, min_value=0)
    status = String(choices=SyncStatus, default=SyncStatus.IDLE.value)
    last_error = Text()
    last_sync_at = DateTime()
    updated_at = DateTime()

    def start(self) -> None:
        self.status = SyncStatus.SYNCING.value
        self.updated_at = datetime.now(UTC)

    def advance(self, block: int, processed: int) -> None:
        """Move the cursor. The cursor never moves backwards."""
        now = datetime.now(UTC)
        self.last_synced_block = max(self.last_synced_block or 0, block)
        self.events_processed = (self.events_processed or 0) + processed
        self.status = SyncStatus.IDLE.value
        self.last_error = None
        self.last_sync_at = now
        self.updated_at = now

    def fail(self, error: str) -> None:
        self.status = SyncStatus.ERROR.value
        self.last_error = error
        self.updated_at = datetime.now(UTC)

    def stop(self) -> None:
        self.status = SyncStatus.STOPPED.value
        self.updated_at = datetime.now(UTC)

    def resume(self) -> None:
        self.status = SyncStatus.IDLE.value
        self.updated_at = datetime.now(UTC)


def load_sync_state(sync_id: str = DEFAULT_SYNC_ID) -> SyncState:
    """Return the persisted state, creating a fresh cursor at block 0 on first use."""
    repo = current_domain.repository_for(SyncState)
    try:
        return repo.get(sync_id)
    except ObjectNotFoundError:
        state = SyncState(sync_id=sync_id, updated_at=datetime.now(UTC))
        repo.add(state)
        return repo.get(sync_id)
