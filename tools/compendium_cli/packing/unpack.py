"""Unpack a compendium into a tree of source files.

Each top-level document becomes one JSON file with its embedded documents
rebuilt inline. Files are placed in directories derived from the pack's
folders, compared against the existing tree, and stale files are removed,
so running the same unpack twice changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from compendium_cli.config import FOLDER_FILENAME, FOLDERS_COLLECTION
from compendium_cli.errors import (
    InvalidJsonError,
    MalformedKeyError,
    MissingReferenceError,
    StoreNotFoundError,
    UnknownCollectionError,
)
from compendium_cli.models.keys import StorageKey, decode_key
from compendium_cli.models.package import ChangeStats, CompendiumData, PackageData, PackOptions
from compendium_cli.models.types import embedded_types, get_document_type, require_type_for_collection
from compendium_cli.packing.clean import clean_pack_entry
from compendium_cli.packing.folders import FolderTree, legacy_subfolder, slugify
from compendium_cli.persistence.json_io import decode_value, serialize_document, write_document_file
from compendium_cli.persistence.sources import load_sources
from compendium_cli.persistence.stores import LevelStore, NedbStore

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Output Tree
# -----------------------------------------------------------------------------

@dataclass
class SourceTreeWriter:
    """Writes documents into a source tree and diffs against its snapshot.

    Attributes:
        output_dir: Root of the pack's source tree
        existing: Snapshot of the tree taken before the run (path -> text);
            entries are consumed as documents are written
        options: Run options (dry_run, quiet)
        log: Log sink
        stats: Counters for this run
    """
    output_dir: Path
    existing: dict[Path, str]
    options: PackOptions
    log: logging.Logger = logger
    stats: ChangeStats = field(default_factory=ChangeStats)
    _written: set[Path] = field(default_factory=set, repr=False)

    def _report(self, action: str, relative: str) -> None:
        if not self.options.quiet:
            self.log.info("%s %s", action, relative)

    def write(self, subfolder: Path, filename: str, document: dict[str, Any]) -> None:
        """Write one document unless the file already holds the same bytes."""
        path = self.output_dir / subfolder / filename
        relative = (subfolder / filename).as_posix()
        if path in self._written:
            self.log.warning("%s is produced by more than one document, keeping the first", relative)
            return
        self._written.add(path)

        output = serialize_document(document)
        previous = self.existing.pop(path, None)
        if output == previous:
            self.log.debug("Unchanged %s", relative)
            return

        if not self.options.dry_run:
            try:
                write_document_file(path, output)
            except OSError as exc:
                self.log.error("Could not write %s: %s", path, exc)
                return

        if previous is None:
            self._report("Created", relative)
            self.stats.created += 1
        else:
            self._report("Updated", relative)
            self.stats.updated += 1

    def remove_stale(self) -> None:
        """Delete every snapshot file no document was written to."""
        for path in list(self.existing):
            relative = path.relative_to(self.output_dir).as_posix()
            if not self.options.dry_run:
                try:
                    path.unlink()
                except OSError as exc:
                    self.log.error("Could not remove %s: %s", path, exc)
                    continue
                self._prune_empty_dirs(path.parent)
            self._report("Removed", relative)
            self.stats.removed += 1
        self.existing.clear()

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self.output_dir and self.output_dir in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent


def document_filename(document: dict[str, Any], document_id: str) -> str:
    """File name of a non-folder document: "<slug>-<id>.json", or "<id>.json" without a name."""
    name = document.get("name")
    slug = slugify(name, strict=True) if isinstance(name, str) else ""
    return f"{slug}-{document_id}.json" if slug else f"{document_id}.json"


def _display_name(document: dict[str, Any], fallback: str) -> str:
    name = document.get("name") or document.get("label")
    return name if isinstance(name, str) else fallback


# -----------------------------------------------------------------------------
# Reconstruction
# -----------------------------------------------------------------------------

@dataclass
class EntryIndex:
    """Flat store entries indexed by decoded key.

    Attributes:
        documents: Stored value of every entry
        children: Parent key -> embedded collection -> stored child ids
        roots: Keys of top-level documents, in store order
    """
    documents: dict[StorageKey, dict[str, Any]] = field(default_factory=dict)
    children: dict[StorageKey, dict[str, list[str]]] = field(default_factory=dict)
    roots: list[StorageKey] = field(default_factory=list)

    @classmethod
    def build(cls, entries: Iterable[tuple[str, bytes]], log: logging.Logger = logger) -> EntryIndex:
        """Decode every entry; undecodable keys and values are logged and skipped."""
        index = cls()
        for raw_key, raw_value in entries:
            try:
                key = decode_key(raw_key)
                value = decode_value(raw_value, raw_key)
            except (MalformedKeyError, InvalidJsonError) as exc:
                log.warning("%s", exc)
                continue
            if not isinstance(value, dict):
                log.warning("Entry %s is not a document, skipping", raw_key)
                continue
            value.pop("_key", None)
            index.documents[key] = value
            if key.is_root:
                index.roots.append(key)
            else:
                index.children.setdefault(key.parent, {}).setdefault(key.collection, []).append(key.document_id)
        return index

    def folders(self) -> list[dict[str, Any]]:
        return [self.documents[key] for key in self.roots if key.root_collection == FOLDERS_COLLECTION]

    def lookup(self, key: StorageKey, parent_name: str) -> dict[str, Any]:
        """Stored value of an embedded document.

        Raises:
            MissingReferenceError: If nothing is stored under the key
        """
        try:
            return self.documents[key]
        except KeyError:
            raise MissingReferenceError(key.collection, key.document_id, parent_name) from None


def rebuild_document(
    document: dict[str, Any],
    key: StorageKey,
    type_name: str,
    index: EntryIndex,
    log: logging.Logger = logger,
) -> dict[str, Any]:
    """Replace embedded ids with their reconstructed documents, recursively.

    Args:
        document: Stored value of the document (mutated in place)
        key: Key the document is stored under
        type_name: Type of the document
        index: All entries of the store
        log: Sink for warnings

    Returns:
        The same document

    Behavior:
        - Ids without a stored entry are dropped with a warning
        - Entries that are already objects are kept inline
        - Stored children the parent does not list are appended after the
          listed ones, in store order; the list is created when missing
        - Stored children under undeclared collections are reported and
          left out
    """
    parent_name = _display_name(document, key.document_id)
    declared = embedded_types(type_name)
    stored = index.children.get(key, {})

    for collection in stored:
        if collection not in declared:
            log.warning("%s", UnknownCollectionError(collection, key.encode()))

    for collection, child_type in declared.items():
        value = document.get(collection)
        stored_ids = stored.get(collection, [])

        if isinstance(value, str):
            child = _rebuild_child(value, collection, child_type, key, parent_name, index, log)
            if child is None:
                del document[collection]
            else:
                document[collection] = child
            for extra in stored_ids:
                if extra != value:
                    log.warning(
                        'Entry %s does not fit the single %s of "%s", skipping',
                        key.child(collection, extra), collection, parent_name,
                    )
            continue

        if value is None:
            if not stored_ids:
                continue
            value = []
        elif not isinstance(value, list):
            if stored_ids:
                log.warning(
                    'Field %s of "%s" is not a list, stored entries %s are skipped',
                    collection, parent_name, ", ".join(stored_ids),
                )
            continue

        referenced = {
            entry if isinstance(entry, str) else entry.get("_id")
            for entry in value
            if isinstance(entry, (str, dict))
        }
        listed = value + [child_id for child_id in stored_ids if child_id not in referenced]

        rebuilt = []
        for entry in listed:
            child = _rebuild_child(entry, collection, child_type, key, parent_name, index, log)
            if child is not None:
                rebuilt.append(child)
        document[collection] = rebuilt
    return document


def _rebuild_child(
    entry: Any,
    collection: str,
    child_type: str,
    key: StorageKey,
    parent_name: str,
    index: EntryIndex,
    log: logging.Logger,
) -> Any | None:
    if not isinstance(entry, str):
        return entry
    child_key = key.child(collection, entry)
    try:
        child = index.lookup(child_key, parent_name)
    except MissingReferenceError as exc:
        log.warning("%s", exc)
        return None
    return rebuild_document(child, child_key, child_type, index, log)


# -----------------------------------------------------------------------------
# Engines
# -----------------------------------------------------------------------------

def _log_summary(log: logging.Logger, package: PackageData, compendium: CompendiumData, stats: ChangeStats) -> None:
    log.info(
        "Unpacked %s.%s: %d created, %d updated, %d removed",
        package.id, compendium.name, stats.created, stats.updated, stats.removed,
    )


def _prepare_output(output_dir: Path, options: PackOptions, log: logging.Logger) -> dict[Path, str]:
    if not options.dry_run:
        output_dir.mkdir(parents=True, exist_ok=True)
    return load_sources(output_dir, log=log)


def unpack_level(
    package: PackageData,
    compendium: CompendiumData,
    options: PackOptions,
    *,
    log: logging.Logger = logger,
) -> ChangeStats:
    """Unpack a LevelDB compendium into individual source files.

    Args:
        package: Package the compendium belongs to
        compendium: Compendium to unpack
        options: Run options
        log: Log sink

    Returns:
        Created/updated/removed file counts

    Raises:
        UnknownDocumentTypeError: If the pack's type is not registered
        StoreNotFoundError: If the database does not exist
        LockConflictError: If the database is in use; nothing is written
        FolderCycleError: If the pack's folders loop; nothing is written
    """
    get_document_type(compendium.type)
    store_path = package.level_path(compendium)
    with LevelStore.open(store_path, pack=compendium.name) as store:
        entries = list(store.items())

    index = EntryIndex.build(entries, log)
    folders = FolderTree.from_documents(index.folders())
    folders.validate()

    output_dir = package.source_dir(compendium)
    writer = SourceTreeWriter(output_dir, _prepare_output(output_dir, options, log), options, log)
    if not options.quiet:
        log.info('Unpacking "%s" from %s into %s', compendium.label, store_path, output_dir)

    for key in index.roots:
        document = index.documents[key]
        try:
            type_name = require_type_for_collection(key.root_collection)
        except UnknownCollectionError as exc:
            log.warning("%s", exc)
        else:
            rebuild_document(document, key, type_name, index, log)
        clean_pack_entry(document, clear_source_id=True, clear_sorting=True)

        if key.root_collection == FOLDERS_COLLECTION:
            filename = FOLDER_FILENAME
            subfolder = folders.resolve(document, is_folder=True)
        else:
            filename = document_filename(document, key.document_id)
            if options.legacy_folders:
                subfolder = legacy_subfolder(document, compendium)
            else:
                subfolder = folders.resolve(document)
        writer.write(subfolder, filename, document)

    writer.remove_stale()
    _log_summary(log, package, compendium, writer.stats)
    return writer.stats


def unpack_nedb(
    package: PackageData,
    compendium: CompendiumData,
    options: PackOptions,
    *,
    log: logging.Logger = logger,
) -> ChangeStats:
    """Unpack a NeDB compendium into individual source files.

    NeDB documents already hold their embedded collections inline, and NeDB
    packs carry no folder documents, so files are placed with legacy folder
    naming.

    Raises:
        StoreNotFoundError: If the datafile does not exist
        StoreError: If the datafile cannot be read
    """
    store_path = package.nedb_path(compendium)
    if not store_path.is_file():
        raise StoreNotFoundError(str(store_path))
    store = NedbStore.load(store_path, log=log)

    output_dir = package.source_dir(compendium)
    writer = SourceTreeWriter(output_dir, _prepare_output(output_dir, options, log), options, log)
    if not options.quiet:
        log.info('Unpacking "%s" from %s into %s', compendium.label, store_path, output_dir)

    for document in store.find_all():
        document.pop("_key", None)
        clean_pack_entry(document, clear_source_id=True, clear_sorting=True)
        filename = document_filename(document, document["_id"])
        writer.write(legacy_subfolder(document, compendium), filename, document)

    writer.remove_stale()
    _log_summary(log, package, compendium, writer.stats)
    return writer.stats
