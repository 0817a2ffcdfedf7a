"""Configuration constants for compendium packing and unpacking.

This module centralizes the layout conventions and normalization values used
across the CLI. Changing where sources live or how entries are sanitized
requires updating only this file.
"""

from __future__ import annotations

from typing import Final

# -----------------------------------------------------------------------------
# Source Tree Layout
# -----------------------------------------------------------------------------

SOURCE_DIRECTORY: Final[str] = "packs/_source"
"""Directory (relative to the package root) holding unpacked source trees."""

SOURCE_EXTENSION: Final[str] = ".json"
"""Only files with this extension are part of a source tree."""

FOLDER_FILENAME: Final[str] = "_folder.json"
"""Sentinel file name used for folder documents."""

FILE_MODE: Final[int] = 0o664
"""Permission bits applied to written document files (rw-rw-r--)."""

JSON_INDENT: Final[int] = 2
"""Indentation of document files."""


# -----------------------------------------------------------------------------
# Package Discovery
# -----------------------------------------------------------------------------

MANIFEST_NAMES: Final[tuple[str, ...]] = ("system", "module", "world")
"""Manifest file stems, in the order they are probed."""


# -----------------------------------------------------------------------------
# Entry Normalization
# -----------------------------------------------------------------------------

SYSTEM_USER_ID: Final[str] = "compendium000cli"
"""Identity written to `_stats.lastModifiedBy` so diffs stay machine independent."""

INVISIBLE_CHARACTERS: Final[str] = "\u2060"
"""Zero-width characters stripped from names, labels and descriptions."""

TRANSIENT_FLAGS: Final[tuple[str, ...]] = ("importSource", "exportSource")
"""Flag namespaces that never belong in a compendium."""

OWNERSHIP_NONE: Final[int] = 0
OWNERSHIP_INHERIT: Final[int] = -1
"""Default ownership levels applied by the sanitizer."""


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------

FOLDERS_COLLECTION: Final[str] = "folders"
"""Root collection of folder documents; folders are leaves in the key tree."""

LEVEL_SUFFIX: Final[str] = ".db"
"""Legacy suffix stripped from a pack path to locate its LevelDB directory."""
