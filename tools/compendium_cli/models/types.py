"""Document type registry.

This module centralizes the document types a compendium can hold, the
collection each one is stored under, and the collections it embeds. Adding
a document type requires updating only DOCUMENT_TYPES.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final, Mapping

from compendium_cli.errors import (
    MalformedKeyError,
    UnknownCollectionError,
    UnknownDocumentTypeError,
)
from compendium_cli.models.keys import StorageKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DocumentType:
    """Static description of one document type.

    Attributes:
        name: Type name (e.g., "Actor")
        collection: Collection the type is stored under (e.g., "actors")
        embedded: Embedded collection name -> type of the documents it holds
    """
    name: str
    collection: str
    embedded: Mapping[str, str] = field(default_factory=dict)


def _types(*entries: DocumentType) -> Mapping[str, DocumentType]:
    return MappingProxyType({entry.name: entry for entry in entries})


DOCUMENT_TYPES: Final[Mapping[str, DocumentType]] = _types(
    DocumentType("ActiveEffect", "effects"),
    DocumentType("Actor", "actors", {"effects": "ActiveEffect", "items": "Item"}),
    DocumentType("ActorDelta", "delta", {"effects": "ActiveEffect", "items": "Item"}),
    DocumentType("Adventure", "adventures"),
    DocumentType("AmbientLight", "lights"),
    DocumentType("AmbientSound", "sounds"),
    DocumentType("Cards", "cards", {"cards": "Card"}),
    DocumentType("Card", "cards"),
    DocumentType("Combat", "combats", {"combatants": "Combatant"}),
    DocumentType("Combatant", "combatants"),
    DocumentType("Drawing", "drawings"),
    DocumentType("Folder", "folders"),
    DocumentType("Item", "items", {"effects": "ActiveEffect"}),
    DocumentType("JournalEntry", "journal", {"pages": "JournalEntryPage"}),
    DocumentType("JournalEntryPage", "pages"),
    DocumentType("Macro", "macros"),
    DocumentType("MeasuredTemplate", "templates"),
    DocumentType("Note", "notes"),
    DocumentType("Playlist", "playlists", {"sounds": "PlaylistSound"}),
    DocumentType("PlaylistSound", "sounds"),
    DocumentType("RollTable", "tables", {"results": "TableResult"}),
    DocumentType("Scene", "scenes", {
        "drawings": "Drawing",
        "lights": "AmbientLight",
        "notes": "Note",
        "sounds": "AmbientSound",
        "templates": "MeasuredTemplate",
        "tiles": "Tile",
        "tokens": "Token",
        "walls": "Wall",
    }),
    DocumentType("TableResult", "results"),
    DocumentType("Tile", "tiles"),
    DocumentType("Token", "tokens", {"delta": "ActorDelta"}),
    DocumentType("User", "users"),
    DocumentType("Wall", "walls"),
)
"""Built-in document types. Cards embed Card; Playlist and Scene both embed a
"sounds" collection but of different types, which is why embedded collections
map to an explicit child type."""


def _reverse_lookup(types: Mapping[str, DocumentType]) -> Mapping[str, str]:
    """Map each collection to the first type registered under it.

    Collections shared by several types ("cards", "sounds") resolve to the
    type that can appear at the root of a compendium; embedded lookups go
    through the parent's explicit mapping and never hit the ambiguity.
    """
    lookup: dict[str, str] = {}
    for document_type in types.values():
        lookup.setdefault(document_type.collection, document_type.name)
    return MappingProxyType(lookup)


_TYPE_BY_COLLECTION: Final[Mapping[str, str]] = _reverse_lookup(DOCUMENT_TYPES)


# -----------------------------------------------------------------------------
# Lookups
# -----------------------------------------------------------------------------

def get_document_type(type_name: str) -> DocumentType:
    """Get the descriptor for a type.

    Raises:
        UnknownDocumentTypeError: If the type is not registered
    """
    try:
        return DOCUMENT_TYPES[type_name]
    except KeyError:
        raise UnknownDocumentTypeError(type_name) from None


def collections_for_type(type_name: str) -> tuple[str, ...]:
    """Names of the collections a type can embed (empty if none or unknown)."""
    document_type = DOCUMENT_TYPES.get(type_name)
    if document_type is None:
        return ()
    return tuple(document_type.embedded)


def embedded_types(type_name: str) -> Mapping[str, str]:
    """Embedded collection -> child type for a type (empty if none or unknown)."""
    document_type = DOCUMENT_TYPES.get(type_name)
    if document_type is None:
        return MappingProxyType({})
    return document_type.embedded


def type_for_collection(collection: str, parent_type: str | None = None) -> str | None:
    """Determine what type belongs in the specified collection.

    Args:
        collection: Collection name
        parent_type: Type of the embedding document; when given, only its
            declared collections resolve

    Returns:
        The type name, or None if the collection is unknown
    """
    if parent_type is not None:
        return embedded_types(parent_type).get(collection)
    return _TYPE_BY_COLLECTION.get(collection)


def require_type_for_collection(collection: str, parent_type: str | None = None) -> str:
    """Like type_for_collection, but unknown collections raise.

    Raises:
        UnknownCollectionError: If no type is declared for the collection
    """
    type_name = type_for_collection(collection, parent_type)
    if type_name is None:
        raise UnknownCollectionError(collection, parent_type)
    return type_name


# -----------------------------------------------------------------------------
# Key Generation
# -----------------------------------------------------------------------------

def generate_keys(document: dict[str, Any], type_name: str) -> str:
    """Store a `_key` on a document and every embedded document.

    Args:
        document: Document to process (mutated in place)
        type_name: Type of the document

    Returns:
        The key generated for the document itself

    Raises:
        UnknownDocumentTypeError: If type_name is not registered
        MalformedKeyError: If the document's `_id` cannot be encoded

    Note:
        Embedded entries that are not objects or carry no string `_id` are
        left without a key; they stay inline when the document is flattened.
    """
    document_type = get_document_type(type_name)
    document_id = document.get("_id")
    if not isinstance(document_id, str):
        raise MalformedKeyError(f"!{document_type.collection}!", f"document has no string _id: {document_id!r}")
    key = StorageKey((document_type.collection,), (document_id,))
    document["_key"] = key.encode()
    _generate_embedded_keys(document, document_type, key)
    return document["_key"]


def _generate_embedded_keys(document: dict[str, Any], document_type: DocumentType, key: StorageKey) -> None:
    for collection, child_type in document_type.embedded.items():
        children = document.get(collection)
        if isinstance(children, dict):
            children = [children]
        if not isinstance(children, list):
            continue
        child_descriptor = DOCUMENT_TYPES.get(child_type)
        if child_descriptor is None:
            logger.warning("%s", UnknownCollectionError(collection, document_type.name))
            continue
        for child in children:
            if not isinstance(child, dict):
                continue
            child.pop("_key", None)
            if not isinstance(child.get("_id"), str):
                continue
            child_key = key.child(collection, child["_id"])
            try:
                child["_key"] = child_key.encode()
            except MalformedKeyError as exc:
                logger.warning("%s", exc)
                continue
            _generate_embedded_keys(child, child_descriptor, child_key)
