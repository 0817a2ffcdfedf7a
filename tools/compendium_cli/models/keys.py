"""Hierarchical storage keys.

A document stored in a LevelDB compendium is addressed by a key of the form
``!<collection>.<collection>...!<id>.<id>...``. The collection segment lists
the collection of every document from the root ancestor down to the document
itself, and the id segment lists their ids in the same order:

    !actors!A1                    root actor
    !actors.items!A1.I1           item embedded in that actor
    !actors.items.effects!A1.I1.E1  effect embedded in that item
"""

from __future__ import annotations

from dataclasses import dataclass

from compendium_cli.errors import MalformedKeyError

KEY_MARKER = "!"
SEGMENT_SEPARATOR = "."


@dataclass(frozen=True, slots=True)
class StorageKey:
    """Decoded storage key.

    Invariants:
        - collections and ids have the same, non-zero length
        - no segment is empty or contains a separator
    """
    collections: tuple[str, ...]
    ids: tuple[str, ...]

    @property
    def root_collection(self) -> str:
        """Collection of the top-level ancestor."""
        return self.collections[0]

    @property
    def embedded_collections(self) -> tuple[str, ...]:
        """Collections below the root, one per embedding level."""
        return self.collections[1:]

    @property
    def collection(self) -> str:
        """Collection holding the addressed document."""
        return self.collections[-1]

    @property
    def document_id(self) -> str:
        return self.ids[-1]

    @property
    def depth(self) -> int:
        return len(self.ids)

    @property
    def is_root(self) -> bool:
        return len(self.ids) == 1

    @property
    def parent(self) -> StorageKey | None:
        """Key of the containing document, or None for a root."""
        if self.is_root:
            return None
        return StorageKey(self.collections[:-1], self.ids[:-1])

    def child(self, collection: str, document_id: str) -> StorageKey:
        """Key of an embedded document one level below this one."""
        return StorageKey(self.collections + (collection,), self.ids + (document_id,))

    def encode(self) -> str:
        return encode_key(self.collections, self.ids)

    def __str__(self) -> str:
        return self.encode()


def _check_segments(key: str, segments: tuple[str, ...], label: str) -> None:
    for segment in segments:
        if not segment:
            raise MalformedKeyError(key, f"empty {label} segment")
        if SEGMENT_SEPARATOR in segment or KEY_MARKER in segment:
            raise MalformedKeyError(key, f"{label} segment '{segment}' contains a separator")


def decode_key(key: str) -> StorageKey:
    """Decode a storage key into its collection and id paths.

    Args:
        key: Raw key such as "!actors.items!A1.I1"

    Returns:
        StorageKey with one collection per id

    Raises:
        MalformedKeyError: If the key does not start with "!", does not have
            exactly two segments, or the segment counts disagree

    Example:
        >>> decode_key("!actors.effects!A1.E1")
        StorageKey(collections=('actors', 'effects'), ids=('A1', 'E1'))
    """
    if not isinstance(key, str) or not key.startswith(KEY_MARKER):
        raise MalformedKeyError(str(key), f"must start with '{KEY_MARKER}'")

    parts = key[1:].split(KEY_MARKER)
    if len(parts) != 2:
        raise MalformedKeyError(key, "expected a collection segment and an id segment")

    collections = tuple(parts[0].split(SEGMENT_SEPARATOR))
    ids = tuple(parts[1].split(SEGMENT_SEPARATOR))
    _check_segments(key, collections, "collection")
    _check_segments(key, ids, "id")

    if len(collections) != len(ids):
        raise MalformedKeyError(
            key,
            f"{len(collections) - 1} embedded collection(s) for {len(ids)} id(s)",
        )
    return StorageKey(collections, ids)


def encode_key(collections: tuple[str, ...] | list[str], ids: tuple[str, ...] | list[str]) -> str:
    """Encode collection and id paths into a storage key.

    Args:
        collections: Collection names from the root ancestor down
        ids: Document ids in the same order

    Returns:
        The encoded key; ``decode_key(encode_key(c, i))`` yields ``(c, i)``

    Raises:
        MalformedKeyError: If the paths are empty, differ in length, or a
            segment is empty or contains a separator
    """
    collections = tuple(collections)
    ids = tuple(ids)
    key = f"{KEY_MARKER}{SEGMENT_SEPARATOR.join(collections)}{KEY_MARKER}{SEGMENT_SEPARATOR.join(ids)}"
    if not ids or len(collections) != len(ids):
        raise MalformedKeyError(key, "collection and id paths must have the same non-zero length")
    _check_segments(key, collections, "collection")
    _check_segments(key, ids, "id")
    return key
