"""In-memory document store."""

from uuid import uuid4

from custody.documents.port import DocumentStore
from custody.errors import StoreUnavailable


class FakeDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self.files: dict[str, dict] = {}
        self.available = True

    def configure(self, available: bool = True) -> None:
        self.available = available

    def put(self, shipment_id: str, filename: str, content: bytes, content_type: str | None = None) -> str:
        if not self.available:
            raise StoreUnavailable("Document store unavailable")
        reference = f"mem://{shipment_id}/{uuid4().hex[:12]}/{filename}"
        self.files[reference] = {
            "shipment_id": shipment_id,
            "filename": filename,
            "content": content,
            "content_type": content_type,
        }
        return reference

    def remove(self, shipment_id: str, reference: str) -> None:
        if not self.available:
            raise StoreUnavailable("Document store unavailable")
        stored = self.files.get(reference)
        if stored and stored["shipment_id"] == shipment_id:
            del self.files[reference]
