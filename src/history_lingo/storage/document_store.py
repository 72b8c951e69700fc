"""Document store contract: collections of JSON documents with atomic writes.

Paths alternate collection and document ids (``users/{uid}/progress/{topicId}``).
Every commit applies all of its writes or none of them. Numeric fields are
changed with :class:`Increment` so concurrent writers never lose updates.
"""

import asyncio
import copy
import operator
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, TypeVar

import structlog

from history_lingo.errors import BatchLimitError, DocumentNotFoundError, StorageError

logger = structlog.get_logger()

MAX_BATCH_WRITES = 500

T = TypeVar("T")


@dataclass(frozen=True)
class Increment:
    """Server-side numeric increment; a missing field counts as 0."""

    amount: int | float


@dataclass(frozen=True)
class Document:
    id: str
    path: str
    data: dict[str, Any]


@dataclass(frozen=True)
class Write:
    kind: str  # "set", "update" or "delete"
    path: str
    data: dict[str, Any] | None = None
    merge: bool = False


Filter = tuple[str, str, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _check_document_path(path: str) -> str:
    parts = path.strip("/").split("/")
    if len(parts) % 2 != 0 or not all(parts):
        raise StorageError(f"Not a document path: {path!r}")
    return "/".join(parts)


def _check_collection_path(path: str) -> str:
    parts = path.strip("/").split("/")
    if len(parts) % 2 != 1 or not all(parts):
        raise StorageError(f"Not a collection path: {path!r}")
    return "/".join(parts)


def _encode(value: Any) -> Any:
    """Convert a value to its JSON-compatible stored form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_encode(v) for v in value]
    return value


def _resolve(current: Any, value: Any) -> Any:
    if isinstance(value, Increment):
        base = current if isinstance(current, int | float) and not isinstance(current, bool) else 0
        return base + value.amount
    return _encode(value)


def apply_writes(docs: dict[str, dict], writes: Iterable[Write]) -> dict[str, dict]:
    """Return a new document map with ``writes`` applied in order.

    ``docs`` is never modified, so a failing write leaves the caller's state
    untouched.
    """
    result = dict(docs)
    for write in writes:
        if write.kind == "delete":
            result.pop(write.path, None)
            continue
        current = result.get(write.path)
        if write.kind == "update" and current is None:
            raise DocumentNotFoundError(write.path)
        if write.kind == "set" and not write.merge:
            updated: dict[str, Any] = {}
        else:
            updated = copy.deepcopy(current) if current is not None else {}
        for key, value in (write.data or {}).items():
            updated[key] = _resolve(updated.get(key), value)
        result[write.path] = updated
    return result


def _matches(data: dict, filters: Iterable[Filter]) -> bool:
    for field, op, expected in filters:
        if field not in data:
            return False
        try:
            if not _OPERATORS[op](data[field], _encode(expected)):
                return False
        except TypeError:
            return False
    return True


class Transaction:
    """Reads see the state at transaction start; writes commit together."""

    def __init__(self, docs: dict[str, dict]):
        self._docs = docs
        self.writes: list[Write] = []

    def get(self, path: str) -> dict | None:
        data = self._docs.get(_check_document_path(path))
        return copy.deepcopy(data) if data is not None else None

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self.writes.append(Write("set", _check_document_path(path), data, merge))

    def update(self, path: str, data: dict[str, Any]) -> None:
        self.writes.append(Write("update", _check_document_path(path), data))

    def delete(self, path: str) -> None:
        self.writes.append(Write("delete", _check_document_path(path)))


class WriteBatch:
    """Queued writes committed atomically; at most ``limit`` per commit."""

    def __init__(self, store: "DocumentStore", limit: int = MAX_BATCH_WRITES):
        self._store = store
        self._limit = min(limit, MAX_BATCH_WRITES)
        self._writes: list[Write] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._writes)

    def _add(self, write: Write) -> "WriteBatch":
        if self._committed:
            raise StorageError("Batch already committed")
        if len(self._writes) >= self._limit:
            raise BatchLimitError(f"Batch limit of {self._limit} writes exceeded")
        self._writes.append(write)
        return self

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> "WriteBatch":
        return self._add(Write("set", _check_document_path(path), data, merge))

    def update(self, path: str, data: dict[str, Any]) -> "WriteBatch":
        return self._add(Write("update", _check_document_path(path), data))

    def delete(self, path: str) -> "WriteBatch":
        return self._add(Write("delete", _check_document_path(path)))

    async def commit(self) -> None:
        if self._committed:
            raise StorageError("Batch already committed")
        if self._writes:
            await self._store.commit(self._writes)
        self._committed = True


class DocumentStore(ABC):
    """Base store; subclasses provide loading and saving of the document map.

    Subclasses whose loading, saving or locking blocks set ``blocking_io``;
    those calls then run in a worker thread instead of on the event loop.
    """

    blocking_io = False

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def _io(self, fn: Callable[..., T], *args: Any) -> T:
        if self.blocking_io:
            return await asyncio.to_thread(fn, *args)
        return fn(*args)

    @abstractmethod
    def _load(self) -> dict[str, dict]:
        """Return the current document map (path -> data)."""

    @abstractmethod
    def _save(self, docs: dict[str, dict]) -> None:
        """Durably replace the document map."""

    @contextmanager
    def _file_lock(self, exclusive: bool) -> Iterator[None]:
        yield

    @asynccontextmanager
    async def _locked(self, exclusive: bool = False) -> AsyncIterator[dict[str, dict]]:
        async with self._lock:
            file_lock = self._file_lock(exclusive)
            await self._io(file_lock.__enter__)
            try:
                yield await self._io(self._load)
            finally:
                await self._io(file_lock.__exit__, None, None, None)

    # Reads

    async def get(self, path: str) -> dict | None:
        path = _check_document_path(path)
        async with self._locked() as docs:
            data = docs.get(path)
            return copy.deepcopy(data) if data is not None else None

    async def exists(self, path: str) -> bool:
        return await self.get(path) is not None

    async def query(
        self,
        collection: str,
        *,
        where: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        """Select direct children of ``collection``.

        Documents lacking a filtered or ordered field are excluded.
        """
        collection = _check_collection_path(collection)
        filters = list(where)
        for _, op, _ in filters:
            if op not in _OPERATORS:
                raise StorageError(f"Unsupported operator: {op}")
        if order_by is not None:
            filters.append((order_by, "!=", None))

        async with self._locked() as docs:
            found = [
                Document(id=path.rsplit("/", 1)[1], path=path, data=copy.deepcopy(data))
                for path, data in docs.items()
                if path.rsplit("/", 1)[0] == collection and _matches(data, filters)
            ]

        found.sort(key=lambda d: d.id)
        if order_by is not None:
            try:
                found.sort(key=lambda d: d.data[order_by], reverse=descending)
            except TypeError as e:
                raise StorageError(f"Cannot order by mixed-type field {order_by}") from e
        if limit is not None:
            found = found[:limit]
        return found

    async def list_documents(self, collection: str) -> list[Document]:
        return await self.query(collection)

    # Writes

    def batch(self, limit: int = MAX_BATCH_WRITES) -> WriteBatch:
        return WriteBatch(self, limit)

    async def commit(self, writes: list[Write]) -> None:
        """Apply ``writes`` atomically."""
        if len(writes) > MAX_BATCH_WRITES:
            raise BatchLimitError(f"{len(writes)} writes exceed the limit of {MAX_BATCH_WRITES}")
        async with self._locked(exclusive=True) as docs:
            await self._io(self._save, apply_writes(docs, writes))
        logger.debug("documents_committed", writes=len(writes))

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` with exclusive access and commit its writes atomically.

        If ``fn`` raises, nothing is written.
        """
        async with self._locked(exclusive=True) as docs:
            tx = Transaction(docs)
            result = await fn(tx)
            if tx.writes:
                if len(tx.writes) > MAX_BATCH_WRITES:
                    raise BatchLimitError(f"Transaction exceeds {MAX_BATCH_WRITES} writes")
                await self._io(self._save, apply_writes(docs, tx.writes))
            return result

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        await self.batch().set(path, data, merge).commit()

    async def update(self, path: str, data: dict[str, Any]) -> None:
        await self.batch().update(path, data).commit()

    async def delete(self, path: str) -> None:
        await self.batch().delete(path).commit()

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        doc_id = uuid.uuid4().hex[:20]
        await self.set(f"{_check_collection_path(collection)}/{doc_id}", data)
        return doc_id
