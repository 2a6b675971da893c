"""Blockchain ledger port — read side of the shipment registry contract.

The custody domain never writes to the chain. Suppliers lock shipments
on-chain; adapters expose those lock events and an existence/detail lookup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ChainRecord:
    """A shipment lock as recorded on-chain."""

    shipment_id: str
    supplier_wallet: str
    batch_id: str
    number_of_containers: int
    quantity_per_container: int
    tx_ref: str
    block_ref: int
    anchored_at: datetime


class ChainLedger(ABC):
    """Abstract interface for chain adapters.

    All methods raise ``ChainUnavailable`` when the node cannot be reached.
    """

    @abstractmethod
    def latest_block(self) -> int:
        """Return the current block height."""
        ...

    @abstractmethod
    def locked_between(self, from_block: int, to_block: int) -> list[ChainRecord]:
        """Return shipment lock events in ``[from_block, to_block]``, in block order."""
        ...

    @abstractmethod
    def get_shipment(self, shipment_id: str) -> ChainRecord | None:
        """Return the on-chain record for a shipment, or None if it was never locked."""
        ...
