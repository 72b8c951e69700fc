"""Chunked atomic commits for population-wide sweeps."""

from collections.abc import Callable, Iterable
from typing import Any

import structlog

from history_lingo.storage.document_store import (
    MAX_BATCH_WRITES,
    Document,
    DocumentStore,
    Transaction,
)

logger = structlog.get_logger()

# Returns the field updates for one document, or None to skip it.
UpdateFn = Callable[[Document], dict[str, Any] | None]


async def commit_in_chunks(
    store: DocumentStore,
    documents: Iterable[Document],
    update_fn: UpdateFn,
    chunk_size: int = MAX_BATCH_WRITES - 1,
) -> tuple[int, int]:
    """Apply ``update_fn`` to each document, ``chunk_size`` documents per transaction.

    The selecting query may be stale by the time a chunk commits, so each
    transaction re-reads its documents and ``update_fn`` sees their current
    data; it must return None for documents that no longer qualify. Deleted
    documents are skipped. Each chunk is atomic on its own. If a commit
    fails, earlier chunks stay applied and the error propagates; re-running
    the selecting query picks up only the documents that still qualify.

    Returns:
        (documents updated, chunks committed)
    """
    if not 0 < chunk_size <= MAX_BATCH_WRITES:
        raise ValueError(f"chunk_size must be in 1..{MAX_BATCH_WRITES}")

    async def commit_chunk(chunk: list[Document]) -> int:
        async def apply(tx: Transaction) -> int:
            written = 0
            for doc in chunk:
                data = tx.get(doc.path)
                if data is None:
                    continue
                changes = update_fn(Document(id=doc.id, path=doc.path, data=data))
                if changes is None:
                    continue
                tx.update(doc.path, changes)
                written += 1
            return written

        return await store.run_transaction(apply)

    updated = 0
    chunks = 0
    chunk: list[Document] = []
    for doc in documents:
        chunk.append(doc)
        if len(chunk) == chunk_size:
            written = await commit_chunk(chunk)
            if written:
                updated += written
                chunks += 1
                logger.debug("chunk_committed", chunk=chunks, writes=written)
            chunk = []

    if chunk:
        written = await commit_chunk(chunk)
        if written:
            updated += written
            chunks += 1
    return updated, chunks
