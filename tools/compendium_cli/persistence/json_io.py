"""JSON and JSON5 I/O with atomic writes.

This module handles every JSON representation the CLI touches:
- Document files: 2-space indented JSON with a trailing newline
- Store values: compact JSON, the same form used for change detection
- Package manifests: parsed as JSON5 so hand-edited comments are accepted
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import json5

from compendium_cli.config import FILE_MODE, JSON_INDENT
from compendium_cli.errors import InvalidJsonError, ManifestError


def serialize_document(document: Any) -> str:
    """Render a document exactly as it is written to its source file."""
    return json.dumps(document, indent=JSON_INDENT, ensure_ascii=False) + "\n"


def parse_document(raw: str, path: str) -> Any:
    """Parse the text of a document file.

    Raises:
        InvalidJsonError: If the text is not valid JSON
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidJsonError(path, str(exc)) from exc


def write_document_file(path: Path, serialized: str) -> None:
    """Write a serialized document atomically.

    Uses a write-then-rename pattern to ensure file integrity:
    1. Write to a temporary file (path.tmp)
    2. Apply FILE_MODE
    3. Rename temp file to target path

    Args:
        path: Target file path
        serialized: Output of serialize_document

    Invariants:
        - Parent directories are created if they don't exist
        - The original file is not corrupted if the write fails partway
        - Line endings are always "\\n", whatever the platform
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(f"{path.suffix}.tmp")
    temp_path.write_text(serialized, encoding="utf-8", newline="\n")
    os.chmod(temp_path, FILE_MODE)
    temp_path.replace(path)


# -----------------------------------------------------------------------------
# Store Values
# -----------------------------------------------------------------------------

def encode_value(value: Any) -> bytes:
    """Encode a store value as compact UTF-8 JSON."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode_value(raw: bytes, key: str) -> Any:
    """Decode a stored value.

    Raises:
        InvalidJsonError: If the value is not UTF-8 JSON
    """
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidJsonError(key, str(exc)) from exc


# -----------------------------------------------------------------------------
# Manifests
# -----------------------------------------------------------------------------

def parse_manifest(path: Path) -> dict[str, Any]:
    """Parse a package manifest.

    Args:
        path: Manifest file (system.json, module.json or world.json)

    Returns:
        Parsed manifest object

    Raises:
        ManifestError: If the file cannot be read, is not JSON5, or is not an object
        FileNotFoundError: If the file doesn't exist
    """
    raw = path.read_text(encoding="utf-8")
    try:
        manifest = json5.loads(raw)
    except ValueError as exc:
        raise ManifestError(str(path), str(exc)) from exc
    if not isinstance(manifest, dict):
        raise ManifestError(str(path), "root must be an object")
    return manifest
