"""Compendium storage backends.

Two backends are supported:
- LevelStore: a LevelDB directory (opened with plyvel) holding one entry per
  document, embedded documents included, under hierarchical keys
- NedbStore: the legacy NeDB datafile, an append-only newline-delimited JSON
  log holding whole documents with their embedded collections inline
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

import plyvel

from compendium_cli.config import FILE_MODE
from compendium_cli.errors import LockConflictError, StoreError, StoreNotFoundError
from compendium_cli.persistence.json_io import encode_value

logger = logging.getLogger(__name__)

KEY_ENCODING = "utf-8"
KEY_ERRORS = "surrogateescape"


def _plyvel_message(exc: Exception) -> str:
    message = exc.args[0] if exc.args else str(exc)
    if isinstance(message, bytes):
        message = message.decode("utf-8", "replace")
    return str(message)


def _is_lock_error(message: str) -> bool:
    """LevelDB reports a held LOCK file as "IO error: lock <path>/LOCK: <reason>"."""
    return "LOCK:" in message


# -----------------------------------------------------------------------------
# LevelDB
# -----------------------------------------------------------------------------

class LevelStore:
    """LevelDB compendium opened for the duration of one pack or unpack.

    Keys are exposed as strings, values as raw bytes. Use `open` rather than
    the constructor so lock conflicts are detected before any access.
    """

    def __init__(self, db: plyvel.DB, path: Path) -> None:
        self._db = db
        self.path = path

    @classmethod
    def open(cls, path: Path, *, pack: str, create: bool = False) -> LevelStore:
        """Open a LevelDB store.

        Args:
            path: Database directory
            pack: Pack name, used in error messages
            create: Create the database when missing

        Returns:
            The opened store

        Raises:
            StoreNotFoundError: If the database is missing and create is False
            LockConflictError: If another process (or handle) holds the database
            StoreError: If LevelDB fails for any other reason
        """
        if not create and not path.is_dir():
            raise StoreNotFoundError(str(path))
        if create:
            path.parent.mkdir(parents=True, exist_ok=True)
        try:
            db = plyvel.DB(str(path), create_if_missing=create)
        except plyvel.IOError as exc:
            message = _plyvel_message(exc)
            if _is_lock_error(message):
                raise LockConflictError(pack, str(path)) from exc
            raise StoreError(str(path), message) from exc
        except plyvel.Error as exc:
            raise StoreError(str(path), _plyvel_message(exc)) from exc
        return cls(db, path)

    def __enter__(self) -> LevelStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def items(self) -> Iterator[tuple[str, bytes]]:
        """Iterate every entry in key order."""
        for raw_key, raw_value in self._db:
            yield raw_key.decode(KEY_ENCODING, KEY_ERRORS), raw_value

    def write(self, puts: Mapping[str, bytes], deletes: Iterable[str] = ()) -> None:
        """Apply all puts and deletes in one atomic batch."""
        with self._db.write_batch(transaction=True) as batch:
            for key, value in puts.items():
                batch.put(key.encode(KEY_ENCODING, KEY_ERRORS), value)
            for key in deletes:
                batch.delete(key.encode(KEY_ENCODING, KEY_ERRORS))

    def compact(self) -> None:
        self._db.compact_range()

    def close(self) -> None:
        if not self._db.closed:
            self._db.close()


# -----------------------------------------------------------------------------
# NeDB
# -----------------------------------------------------------------------------

class NedbStore:
    """In-memory view of a NeDB datafile.

    Loading replays the log: later lines replace earlier lines with the same
    `_id`, `{"$$deleted": true}` lines remove documents and index
    definitions are ignored. `compact` rewrites the file with one line per
    live document.
    """

    def __init__(self, path: Path, documents: dict[str, dict[str, Any]] | None = None) -> None:
        self.path = path
        self._documents: dict[str, dict[str, Any]] = documents if documents is not None else {}

    @classmethod
    def load(cls, path: Path, *, log: logging.Logger = logger) -> NedbStore:
        """Load a datafile; a missing file is an empty store.

        Raises:
            StoreError: If the file exists but cannot be read
        """
        if not path.exists():
            return cls(path)
        try:
            raw = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StoreError(str(path), str(exc)) from exc

        documents: dict[str, dict[str, Any]] = {}
        for line_number, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                document = json.loads(line)
            except json.JSONDecodeError as exc:
                log.warning("Skipping corrupt line %d of %s: %s", line_number, path, exc)
                continue
            if not isinstance(document, dict) or "$$indexCreated" in document:
                continue
            document_id = document.get("_id")
            if not isinstance(document_id, str):
                log.warning("Skipping line %d of %s: no _id", line_number, path)
                continue
            if document.get("$$deleted") is True:
                documents.pop(document_id, None)
                continue
            documents[document_id] = document
        return cls(path, documents)

    def find_all(self) -> list[dict[str, Any]]:
        return list(self._documents.values())

    def find_one(self, document_id: str) -> dict[str, Any] | None:
        return self._documents.get(document_id)

    def ids(self) -> list[str]:
        return list(self._documents)

    def upsert(self, document: dict[str, Any]) -> None:
        self._documents[document["_id"]] = document

    def remove(self, document_id: str) -> None:
        self._documents.pop(document_id, None)

    def compact(self) -> None:
        """Rewrite the datafile atomically with one line per document."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f"{self.path.name}~")
        lines = [encode_value(document) + b"\n" for document in self._documents.values()]
        temp_path.write_bytes(b"".join(lines))
        os.chmod(temp_path, FILE_MODE)
        temp_path.replace(self.path)
