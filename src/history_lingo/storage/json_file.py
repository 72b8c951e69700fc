"""Document store persisted as one JSON file (fcntl.flock + atomic write)."""

import fcntl
import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from history_lingo.errors import StorageError
from history_lingo.storage.document_store import DocumentStore


class JsonFileDocumentStore(DocumentStore):
    """Stores the whole database in ``path``.

    Every commit rewrites the file through a temporary file and ``os.replace``,
    so a crash leaves either the old or the new database on disk. A sibling
    ``.lock`` file serializes writers across processes. File locking and
    whole-file reads and rewrites run in worker threads.
    """

    blocking_io = True

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock_path = self.path.parent / (self.path.name + ".lock")

    @contextmanager
    def _file_lock(self, exclusive: bool) -> Iterator[None]:
        with open(self._lock_path, "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        return data.get("documents", {})

    def _save(self, docs: dict[str, dict]) -> None:
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.path.parent, delete=False, suffix=".json", encoding="utf-8"
            ) as tmp:
                json.dump({"documents": docs}, tmp, indent=2)
            os.replace(tmp.name, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e
