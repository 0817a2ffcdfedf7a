"""Folder resolution for unpacked documents.

Documents are written under a directory hierarchy rebuilt from the pack's
folder documents: every folder becomes a directory named after its slug,
nested under its parent folder. Legacy folder naming instead groups
documents by their type when a pack carries no folder documents.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Iterable, Mapping

from compendium_cli.errors import FolderCycleError
from compendium_cli.models.package import CompendiumData

LEGACY_GROUPED_TYPES: Final[frozenset[str]] = frozenset({"Actor", "Item"})
"""Pack types whose documents are grouped by their `type` field in legacy mode."""


def slugify(text: str, *, strict: bool = False) -> str:
    """Generate a file-system-safe slug.

    Args:
        text: Display name to convert
        strict: Also drop underscores, leaving only [a-z0-9-]

    Returns:
        Lowercase slug, possibly empty

    Examples:
        >>> slugify("Potion of Healing (Greater)")
        'potion-of-healing-greater'
        >>> slugify("Épée_Longue", strict=True)
        'epeelongue'
    """
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    allowed = r"[^a-z0-9\s-]" if strict else r"[^a-z0-9\s_-]"
    text = re.sub(allowed, "", text)
    text = re.sub(r"[\s-]+", "-", text)
    return text.strip("-")


@dataclass(frozen=True, slots=True)
class FolderNode:
    """One folder document reduced to what path resolution needs."""
    id: str
    slug: str
    parent: str | None


class FolderTree:
    """Directory paths of a pack's folders.

    Invariants:
        - A folder whose parent is not part of the pack sits at the root
        - Ancestry walks terminate; a loop raises FolderCycleError
    """

    def __init__(self, folders: Mapping[str, FolderNode]) -> None:
        self._folders = dict(folders)
        self._paths: dict[str, Path] = {}

    @classmethod
    def from_documents(cls, documents: Iterable[dict[str, Any]]) -> FolderTree:
        folders: dict[str, FolderNode] = {}
        for document in documents:
            folder_id = document.get("_id")
            if not isinstance(folder_id, str):
                continue
            name = document.get("name")
            slug = slugify(name) if isinstance(name, str) else ""
            parent = document.get("folder")
            folders[folder_id] = FolderNode(
                id=folder_id,
                slug=slug or folder_id,
                parent=parent if isinstance(parent, str) and parent else None,
            )
        return cls(folders)

    def path_for(self, folder_id: str) -> Path:
        """Relative directory of a folder, root-to-leaf.

        Raises:
            KeyError: If the folder is unknown
            FolderCycleError: If the folder's ancestry loops
        """
        if folder_id in self._paths:
            return self._paths[folder_id]

        chain = [self._folders[folder_id]]
        seen = {folder_id}
        while chain[-1].parent in self._folders and chain[-1].parent not in self._paths:
            parent = chain[-1].parent
            if parent in seen:
                raise FolderCycleError([node.id for node in chain] + [parent])
            seen.add(parent)
            chain.append(self._folders[parent])

        base = self._paths.get(chain[-1].parent, Path())
        for node in reversed(chain):
            base = base / node.slug
            self._paths[node.id] = base
        return self._paths[folder_id]

    def validate(self) -> None:
        """Resolve every folder up front so cycles surface before any write.

        Raises:
            FolderCycleError: If any folder's ancestry loops
        """
        for folder_id in self._folders:
            self.path_for(folder_id)

    def resolve(self, document: dict[str, Any], *, is_folder: bool = False) -> Path:
        """Directory a document is written to, relative to the pack's source dir.

        A folder document lives in its own directory; any other document lives
        in its parent folder's directory, or at the root when it has no
        folder or the folder is not part of the pack.
        """
        document_id = document.get("_id")
        if is_folder and document_id in self._folders:
            return self.path_for(document_id)
        folder_id = document.get("folder")
        if isinstance(folder_id, str) and folder_id in self._folders:
            return self.path_for(folder_id)
        return Path()


def legacy_subfolder(document: dict[str, Any], compendium: CompendiumData) -> Path:
    """Sub-folder used by legacy folder naming.

    Actor and item packs are grouped by the slug of each document's `type`
    (e.g. "weapon", "npc"); every other pack is written flat.
    """
    if compendium.type not in LEGACY_GROUPED_TYPES:
        return Path()
    document_type = document.get("type")
    if not isinstance(document_type, str):
        return Path()
    return Path(slugify(document_type))
