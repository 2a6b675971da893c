"""Document store factory. Uses FakeDocumentStore unless DOCUMENT_STORE_ADAPTER says otherwise."""

import os

from custody.documents.port import DocumentStore

_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    global _store
    if _store is None:
        adapter = os.environ.get("DOCUMENT_STORE_ADAPTER", "fake")
        if adapter == "fake":
            from custody.documents.fake_adapter import FakeDocumentStore

            _store = FakeDocumentStore()
        else:
            raise ValueError(f"Unknown document store adapter: {adapter}")
    return _store


def set_document_store(store: DocumentStore) -> None:
    global _store
    _store = store


def reset_document_store() -> None:
    global _store
    _store = None
