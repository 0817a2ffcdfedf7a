"""Source tree loading.

Loads every JSON file of an unpacked compendium into a snapshot keyed by
file path. Snapshots are rebuilt on every run and only used for diffing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from compendium_cli.config import SOURCE_EXTENSION
from compendium_cli.errors import InvalidJsonError
from compendium_cli.persistence.json_io import parse_document

logger = logging.getLogger(__name__)


def load_sources(
    path: Path,
    *,
    parse: bool = False,
    log: logging.Logger = logger,
) -> dict[Path, Any]:
    """Load all JSON files within a directory and its sub-directories.

    Args:
        path: Directory to search
        parse: Parse each file as JSON instead of returning its text
        log: Sink for per-file errors

    Returns:
        Mapping of file paths (rooted at `path`) to raw text or parsed JSON,
        in sorted traversal order

    Behavior:
        - A missing directory yields an empty mapping
        - Unreadable directories or files, and files that fail to parse, are
          logged and skipped without aborting their siblings
    """
    files: dict[Path, Any] = {}
    if not path.is_dir():
        return files
    _load_sources(path, files, parse, log)
    return files


def _load_sources(path: Path, files: dict[Path, Any], parse: bool, log: logging.Logger) -> None:
    try:
        entries = sorted(path.iterdir())
    except OSError as exc:
        log.error("Could not read directory %s: %s", path, exc)
        return

    for entry in entries:
        if entry.is_dir():
            _load_sources(entry, files, parse, log)
            continue
        if entry.suffix != SOURCE_EXTENSION or not entry.is_file():
            continue
        try:
            raw = entry.read_bytes().decode("utf-8")
            files[entry] = parse_document(raw, str(entry)) if parse else raw
        except (OSError, UnicodeDecodeError) as exc:
            log.error("Could not read %s: %s", entry, exc)
        except InvalidJsonError as exc:
            log.error("%s", exc)
