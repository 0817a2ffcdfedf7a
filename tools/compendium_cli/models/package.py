"""Package and compendium descriptors.

A package (system, module or world) is identified by its manifest and
declares a list of compendium packs. Each pack names a storage path, a
document type and a label; the engines receive one package and one pack
per call, together with the run options.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from compendium_cli.config import LEVEL_SUFFIX, SOURCE_DIRECTORY


@dataclass(frozen=True, slots=True)
class CompendiumData:
    """One compendium pack declared by a package manifest.

    Attributes:
        name: Pack name, also the name of its source directory
        label: Human-readable label
        path: Storage path relative to the package directory
        type: Document type held by the pack (e.g., "Item")
    """
    name: str
    label: str
    path: str
    type: str

    @classmethod
    def from_manifest(cls, raw: dict[str, Any]) -> CompendiumData:
        name = str(raw.get("name", ""))
        return cls(
            name=name,
            label=str(raw.get("label") or name),
            path=str(raw.get("path") or f"packs/{name}"),
            type=str(raw.get("type", "")),
        )


@dataclass(frozen=True, slots=True)
class PackageData:
    """A discovered package.

    Attributes:
        id: Package id from the manifest
        type: Manifest kind ("system", "module" or "world")
        directory: Package root directory
        manifest: Parsed manifest contents
    """
    id: str
    type: str
    directory: Path
    manifest: dict[str, Any] = field(repr=False)

    @property
    def packs(self) -> list[CompendiumData]:
        packs = self.manifest.get("packs") or []
        return [CompendiumData.from_manifest(pack) for pack in packs if isinstance(pack, dict)]

    def source_dir(self, compendium: CompendiumData) -> Path:
        """Directory holding the unpacked source files of a pack."""
        return self.directory / SOURCE_DIRECTORY / compendium.name

    def level_path(self, compendium: CompendiumData) -> Path:
        """LevelDB directory of a pack (a legacy ".db" suffix is dropped)."""
        path = compendium.path
        if path.lower().endswith(LEVEL_SUFFIX):
            path = path[: -len(LEVEL_SUFFIX)]
        return self.directory / path

    def nedb_path(self, compendium: CompendiumData) -> Path:
        """NeDB datafile of a pack."""
        return self.directory / compendium.path


@dataclass(frozen=True, slots=True)
class PackOptions:
    """Options shared by every pack and unpack of a run.

    Attributes:
        dry_run: Compute and report changes without writing anything
        quiet: Suppress per-entry log lines
        verbose: Log unchanged entries and other debug detail
        legacy_folders: Derive sub-folders from document types instead of folders
        nedb: Use the NeDB backend instead of LevelDB
    """
    dry_run: bool = False
    quiet: bool = False
    verbose: bool = False
    legacy_folders: bool = False
    nedb: bool = False


@dataclass
class ChangeStats:
    """Counters accumulated by one pack or unpack run.

    For packs, `created` counts inserted entries.
    """
    created: int = 0
    updated: int = 0
    removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.removed)
