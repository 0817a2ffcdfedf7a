"""Pack and unpack engines.

This module exports:
- Entry sanitization
- Folder resolution and slugs
- Unpack engines (store -> source files)
- Pack engines (source files -> store)
"""

from compendium_cli.packing.clean import clean_pack_entry, clean_string
from compendium_cli.packing.folders import FolderTree, legacy_subfolder, slugify
from compendium_cli.packing.pack import flatten_document, flatten_sources, pack_level, pack_nedb
from compendium_cli.packing.unpack import (
    EntryIndex,
    SourceTreeWriter,
    document_filename,
    rebuild_document,
    unpack_level,
    unpack_nedb,
)

__all__ = [
    # Cleaning
    "clean_pack_entry",
    "clean_string",
    # Folders
    "FolderTree",
    "legacy_subfolder",
    "slugify",
    # Unpack
    "EntryIndex",
    "SourceTreeWriter",
    "document_filename",
    "rebuild_document",
    "unpack_level",
    "unpack_nedb",
    # Pack
    "flatten_document",
    "flatten_sources",
    "pack_level",
    "pack_nedb",
]
