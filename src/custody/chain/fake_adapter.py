"""Fake chain — an in-memory append-only ledger for development and tests."""

from datetime import UTC, datetime
from hashlib import sha256

from custody.chain.port import ChainLedger, ChainRecord
from custody.errors import ChainUnavailable


class FakeChain(ChainLedger):
    def __init__(self) -> None:
        self._records: list[ChainRecord] = []
        self._height = 0
        self.available = True

    def configure(self, available: bool = True) -> None:
        """Simulate the node becoming unreachable."""
        self.available = available

    def _check(self) -> None:
        if not self.available:
            raise ChainUnavailable("Chain node unreachable")

    def lock_shipment(
        self,
        shipment_id: str,
        supplier_wallet: str,
        batch_id: str,
        number_of_containers: int,
        quantity_per_container: int,
    ) -> ChainRecord:
        """Mine a block containing a shipment lock and return the event."""
        self._height += 1
        record = ChainRecord(
            shipment_id=shipment_id,
            supplier_wallet=supplier_wallet.lower(),
            batch_id=batch_id,
            number_of_containers=number_of_containers,
            quantity_per_container=quantity_per_container,
            tx_ref="0x" + sha256(f"{shipment_id}:{self._height}".encode()).hexdigest(),
            block_ref=self._height,
            anchored_at=datetime.now(UTC),
        )
        self._records.append(record)
        return record

    def mine_empty_block(self) -> int:
        self._height += 1
        return self._height

    def latest_block(self) -> int:
        self._check()
        return self._height

    def locked_between(self, from_block: int, to_block: int) -> list[ChainRecord]:
        self._check()
        return [r for r in self._records if from_block <= r.block_ref <= to_block]

    def get_shipment(self, shipment_id: str) -> ChainRecord | None:
        self._check()
        return next((r for r in self._records if r.shipment_id == shipment_id), None)
