"""In-process document store."""

import copy

from history_lingo.storage.document_store import DocumentStore


class MemoryDocumentStore(DocumentStore):
    """Keeps documents in a dict; commits swap in a fully-applied copy."""

    def __init__(self, documents: dict[str, dict] | None = None):
        super().__init__()
        self._docs: dict[str, dict] = copy.deepcopy(documents) if documents else {}

    def _load(self) -> dict[str, dict]:
        return self._docs

    def _save(self, docs: dict[str, dict]) -> None:
        self._docs = docs

    def dump(self) -> dict[str, dict]:
        """Snapshot of every stored document, keyed by path."""
        return copy.deepcopy(self._docs)
