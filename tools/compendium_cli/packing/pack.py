"""Pack a tree of source files into a compendium.

The inverse of unpacking: every source file is keyed, its embedded
documents are flattened into entries of their own, and the result is
diffed against the store. Inserted and updated entries are written and
entries no source file produced are deleted, all in one batch.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterator, Mapping

from compendium_cli.config import FOLDER_FILENAME, FOLDERS_COLLECTION
from compendium_cli.errors import InvalidJsonError, MalformedKeyError
from compendium_cli.models.keys import decode_key
from compendium_cli.models.package import ChangeStats, CompendiumData, PackageData, PackOptions
from compendium_cli.models.types import embedded_types, generate_keys, get_document_type
from compendium_cli.packing.clean import clean_pack_entry
from compendium_cli.persistence.json_io import decode_value, encode_value
from compendium_cli.persistence.sources import load_sources
from compendium_cli.persistence.stores import LevelStore, NedbStore

logger = logging.getLogger(__name__)

FOLDER_TYPE = "Folder"


def _describe(document: Any, fallback: str) -> str:
    """Log label of an entry: "<id> - <name>", or just the id."""
    if not isinstance(document, dict):
        return fallback
    document_id = document.get("_id", fallback)
    name = document.get("name") or document.get("label")
    return f"{document_id} - {name}" if name else str(document_id)


def _log_summary(log: logging.Logger, package: PackageData, compendium: CompendiumData, stats: ChangeStats) -> None:
    log.info(
        "Packed %s.%s: %d inserted, %d updated, %d removed",
        package.id, compendium.name, stats.created, stats.updated, stats.removed,
    )


# -----------------------------------------------------------------------------
# Flattening
# -----------------------------------------------------------------------------

def flatten_document(
    document: dict[str, Any],
    type_name: str,
    log: logging.Logger = logger,
) -> Iterator[tuple[str, dict[str, Any]]]:
    """Split a keyed document into one entry per (embedded) document.

    The document must have been through generate_keys. Each yielded entry
    has its `_key` removed and its embedded collections replaced by ids.

    Args:
        document: Keyed document (mutated in place)
        type_name: Type of the document
        log: Sink for warnings

    Yields:
        (key, entry) pairs, parents before their children

    Behavior:
        - Folders are leaves: nothing below them is flattened
        - Embedded entries without a generated key stay inline
    """
    key = document.pop("_key")
    children: list[tuple[dict[str, Any], str]] = []

    if decode_key(key).root_collection != FOLDERS_COLLECTION:
        for collection, child_type in embedded_types(type_name).items():
            value = document.get(collection)
            if isinstance(value, list):
                flattened = []
                for child in value:
                    if isinstance(child, dict) and "_key" in child:
                        children.append((child, child_type))
                        flattened.append(child["_id"])
                    else:
                        if isinstance(child, dict):
                            log.warning(
                                "Embedded %s entry without a usable _id in %s is kept inline",
                                collection, key,
                            )
                        flattened.append(child)
                document[collection] = flattened
            elif isinstance(value, dict) and "_key" in value:
                children.append((value, child_type))
                document[collection] = value["_id"]

    yield key, document
    for child, child_type in children:
        yield from flatten_document(child, child_type, log)


def flatten_sources(
    sources: Mapping[Path, Any],
    compendium: CompendiumData,
    log: logging.Logger = logger,
) -> dict[str, dict[str, Any]]:
    """Key and flatten every loaded source file.

    Args:
        sources: Parsed source tree (path -> document)
        compendium: Compendium being packed; its type keys non-folder files
        log: Sink for warnings

    Returns:
        Mapping of storage keys to entries, ready to be stored

    Behavior:
        - `_folder.json` files are keyed as folders
        - Files without a usable `_id` are skipped with a warning
        - When two files produce the same key, the last one wins
    """
    entries: dict[str, dict[str, Any]] = {}
    origins: dict[str, Path] = {}
    for path, document in sources.items():
        if not isinstance(document, dict):
            log.warning("%s does not contain a document, skipping", path)
            continue
        type_name = FOLDER_TYPE if path.name == FOLDER_FILENAME else compendium.type
        document.pop("_key", None)
        clean_pack_entry(document)
        try:
            generate_keys(document, type_name)
        except MalformedKeyError as exc:
            log.warning("Skipping %s: %s", path, exc)
            continue
        for key, entry in flatten_document(document, type_name, log):
            if key in entries:
                log.warning("Duplicate entry %s in %s and %s, keeping the latter", key, origins[key], path)
            entries[key] = entry
            origins[key] = path
    return entries


# -----------------------------------------------------------------------------
# Engines
# -----------------------------------------------------------------------------

def _same_value(previous: bytes, encoded: bytes, key: str) -> bool:
    if previous == encoded:
        return True
    try:
        return encode_value(decode_value(previous, key)) == encoded
    except InvalidJsonError:
        return False


def pack_level(
    package: PackageData,
    compendium: CompendiumData,
    options: PackOptions,
    *,
    log: logging.Logger = logger,
) -> ChangeStats:
    """Pack source files into a LevelDB compendium.

    Args:
        package: Package the compendium belongs to
        compendium: Compendium to pack
        options: Run options
        log: Log sink

    Returns:
        Inserted (as `created`)/updated/removed entry counts

    Raises:
        UnknownDocumentTypeError: If the pack's type is not registered
        LockConflictError: If the database is in use; nothing is written
        StoreError: If LevelDB fails

    Note:
        In dry-run mode a missing database is treated as empty and is not
        created.
    """
    get_document_type(compendium.type)
    store_path = package.level_path(compendium)
    source_dir = package.source_dir(compendium)

    store: LevelStore | None = None
    if not options.dry_run or store_path.is_dir():
        store = LevelStore.open(store_path, pack=compendium.name, create=not options.dry_run)
    try:
        sources = load_sources(source_dir, parse=True, log=log)
        if not options.quiet:
            log.info('Packing "%s" from %s into %s', compendium.label, source_dir, store_path)

        entries = flatten_sources(sources, compendium, log)
        existing = dict(store.items()) if store is not None else {}

        stats = ChangeStats()
        puts: dict[str, bytes] = {}
        for key, entry in entries.items():
            encoded = encode_value(entry)
            previous = existing.get(key)
            if previous is None:
                action = "Inserted"
                stats.created += 1
            elif _same_value(previous, encoded, key):
                log.debug("Unchanged %s", _describe(entry, key))
                continue
            else:
                action = "Updated"
                stats.updated += 1
            if not options.quiet:
                log.info("%s %s", action, _describe(entry, key))
            puts[key] = encoded

        deletes = [key for key in existing if key not in entries]
        for key in deletes:
            try:
                previous_document = decode_value(existing[key], key)
            except InvalidJsonError:
                previous_document = None
            if not options.quiet:
                log.info("Removed %s", _describe(previous_document, key))
            stats.removed += 1

        if store is not None and not options.dry_run:
            store.write(puts, deletes)
            store.compact()
    finally:
        if store is not None:
            store.close()

    _log_summary(log, package, compendium, stats)
    return stats


def pack_nedb(
    package: PackageData,
    compendium: CompendiumData,
    options: PackOptions,
    *,
    log: logging.Logger = logger,
) -> ChangeStats:
    """Pack source files into a NeDB compendium.

    Documents are stored whole, embedded collections inline. The datafile is
    compacted after the run so it holds exactly one line per document.

    Raises:
        StoreError: If the existing datafile cannot be read
    """
    store_path = package.nedb_path(compendium)
    source_dir = package.source_dir(compendium)
    store = NedbStore.load(store_path, log=log)
    sources = load_sources(source_dir, parse=True, log=log)
    if not options.quiet:
        log.info('Packing "%s" from %s into %s', compendium.label, source_dir, store_path)

    documents: dict[str, dict[str, Any]] = {}
    origins: dict[str, Path] = {}
    for path, document in sources.items():
        if not isinstance(document, dict) or not isinstance(document.get("_id"), str):
            log.warning("%s does not contain a document with an _id, skipping", path)
            continue
        document.pop("_key", None)
        clean_pack_entry(document)
        document_id = document["_id"]
        if document_id in documents:
            log.warning(
                "Duplicate document %s in %s and %s, keeping the latter",
                document_id, origins[document_id], path,
            )
        documents[document_id] = document
        origins[document_id] = path

    stats = ChangeStats()
    for document_id, document in documents.items():
        existing = store.find_one(document_id)
        if existing is None:
            action = "Inserted"
            stats.created += 1
        elif encode_value(existing) == encode_value(document):
            log.debug("Unchanged %s", _describe(document, document_id))
            continue
        else:
            action = "Updated"
            stats.updated += 1
        if not options.quiet:
            log.info("%s %s", action, _describe(document, document_id))
        store.upsert(document)

    for document_id in store.ids():
        if document_id in documents:
            continue
        if not options.quiet:
            log.info("Removed %s", _describe(store.find_one(document_id), document_id))
        store.remove(document_id)
        stats.removed += 1

    if not options.dry_run:
        store.compact()

    _log_summary(log, package, compendium, stats)
    return stats
