"""Domain models for compendium packs.

This module exports:
- Storage keys and their codec
- The document type registry
- Package/compendium descriptors, run options and change statistics
"""

from compendium_cli.models.keys import StorageKey, decode_key, encode_key
from compendium_cli.models.package import ChangeStats, CompendiumData, PackageData, PackOptions
from compendium_cli.models.types import (
    DOCUMENT_TYPES,
    DocumentType,
    collections_for_type,
    embedded_types,
    generate_keys,
    get_document_type,
    require_type_for_collection,
    type_for_collection,
)

__all__ = [
    # Keys
    "StorageKey",
    "decode_key",
    "encode_key",
    # Types
    "DOCUMENT_TYPES",
    "DocumentType",
    "collections_for_type",
    "embedded_types",
    "generate_keys",
    "get_document_type",
    "require_type_for_collection",
    "type_for_collection",
    # Packages
    "ChangeStats",
    "CompendiumData",
    "PackageData",
    "PackOptions",
]
