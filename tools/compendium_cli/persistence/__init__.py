"""Persistence layer for compendium packs.

This module exports file I/O and storage components:
- JSON document/value serialization and atomic writes
- Source tree loading
- LevelDB and NeDB storage backends
- Package discovery
"""

from compendium_cli.persistence.json_io import (
    decode_value,
    encode_value,
    parse_document,
    parse_manifest,
    serialize_document,
    write_document_file,
)
from compendium_cli.persistence.packages import detect_packages
from compendium_cli.persistence.sources import load_sources
from compendium_cli.persistence.stores import LevelStore, NedbStore

__all__ = [
    # JSON I/O
    "decode_value",
    "encode_value",
    "parse_document",
    "parse_manifest",
    "serialize_document",
    "write_document_file",
    # Sources
    "load_sources",
    # Stores
    "LevelStore",
    "NedbStore",
    # Packages
    "detect_packages",
]
