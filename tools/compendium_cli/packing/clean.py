"""Entry sanitization.

Removes unwanted flags, permissions and other volatile data from entries
before they are written to source files or stored in a compendium, so the
same content always produces the same bytes regardless of who edited it.
"""

from __future__ import annotations

from typing import Any, Final

from compendium_cli.config import (
    INVISIBLE_CHARACTERS,
    OWNERSHIP_INHERIT,
    OWNERSHIP_NONE,
    SYSTEM_USER_ID,
    TRANSIENT_FLAGS,
)

EMBEDDED_CLEANING: Final[tuple[tuple[str, int], ...]] = (
    ("effects", OWNERSHIP_NONE),
    ("items", OWNERSHIP_NONE),
    ("pages", OWNERSHIP_INHERIT),
)
"""Embedded collections cleaned recursively, with their default ownership."""

_INVISIBLE_TABLE: Final[dict[int, None]] = {ord(char): None for char in INVISIBLE_CHARACTERS}


def clean_string(value: str) -> str:
    """Remove invisible whitespace characters."""
    return value.translate(_INVISIBLE_TABLE)


def clean_pack_entry(
    data: dict[str, Any],
    *,
    clear_source_id: bool = False,
    clear_sorting: bool = False,
    ownership: int = OWNERSHIP_NONE,
) -> dict[str, Any]:
    """Normalize a document in place.

    Args:
        data: Document to clean
        clear_source_id: Delete the `core.sourceId` flag
        clear_sorting: Reset `sort` to zero
        ownership: Default ownership level to reset ownership maps to

    Returns:
        The same document, for chaining

    Invariants:
        - Idempotent: cleaning a cleaned document changes nothing
        - Embedded effects, items and pages are cleaned with their own
          ownership defaults (sorting and source ids are left alone)
    """
    if isinstance(data.get("ownership"), dict):
        data["ownership"] = {"default": ownership}

    stats = data.get("_stats")
    if isinstance(stats, dict) and stats.get("lastModifiedBy"):
        stats["lastModifiedBy"] = SYSTEM_USER_ID

    flags = data.get("flags")
    if not isinstance(flags, dict):
        flags = data["flags"] = {}
    if clear_source_id and isinstance(flags.get("core"), dict):
        flags["core"].pop("sourceId", None)
    for namespace in TRANSIENT_FLAGS:
        flags.pop(namespace, None)
    for namespace in [key for key, contents in flags.items() if contents is None or contents == {}]:
        del flags[namespace]

    system = data.get("system")
    description = system.get("description") if isinstance(system, dict) else None
    if isinstance(description, dict) and isinstance(description.get("value"), str):
        description["value"] = clean_string(description["value"])
    for field in ("label", "name"):
        if isinstance(data.get(field), str):
            data[field] = clean_string(data[field])

    if clear_sorting:
        data["sort"] = 0

    for collection, default_ownership in EMBEDDED_CLEANING:
        children = data.get(collection)
        if not isinstance(children, list):
            continue
        for child in children:
            if isinstance(child, dict):
                clean_pack_entry(child, ownership=default_ownership)
    return data
