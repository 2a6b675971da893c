"""Document store port — binary attachments keyed by shipment.

The custody domain keeps only the returned references, never file content.
"""

from abc import ABC, abstractmethod


class DocumentStore(ABC):
    @abstractmethod
    def put(self, shipment_id: str, filename: str, content: bytes, content_type: str | None = None) -> str:
        """Store an attachment and return an opaque reference to it."""
        ...

    @abstractmethod
    def remove(self, shipment_id: str, reference: str) -> None:
        """Delete a previously stored attachment. Unknown references are ignored."""
        ...
