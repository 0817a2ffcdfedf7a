"""Package discovery.

This module locates package manifests (system.json, module.json or
world.json) and turns them into PackageData descriptors.
"""

from __future__ import annotations

import logging
from pathlib import Path

from compendium_cli.config import MANIFEST_NAMES
from compendium_cli.errors import ManifestError
from compendium_cli.models.package import PackageData
from compendium_cli.persistence.json_io import parse_manifest

logger = logging.getLogger(__name__)


def _read_package(directory: Path) -> PackageData | None:
    """Read the first manifest found in a directory.

    Returns:
        PackageData, or None if the directory holds no manifest

    Raises:
        ManifestError: If a manifest exists but is invalid or has no id
    """
    for manifest_type in MANIFEST_NAMES:
        manifest_path = directory / f"{manifest_type}.json"
        if not manifest_path.is_file():
            continue
        manifest = parse_manifest(manifest_path)
        package_id = manifest.get("id") or manifest.get("name")
        if not isinstance(package_id, str) or not package_id:
            raise ManifestError(str(manifest_path), "missing package id")
        return PackageData(id=package_id, type=manifest_type, directory=directory, manifest=manifest)
    return None


def detect_packages(
    directory: Path,
    *,
    prefix: str | None = None,
    log: logging.Logger = logger,
) -> dict[str, PackageData]:
    """Scan for package manifests.

    Args:
        directory: Directory to scan
        prefix: When given, scan each immediate sub-directory whose name
            starts with the prefix instead of the directory itself
        log: Sink for discovery problems

    Returns:
        Mapping of package ids to packages, in discovery order

    Note:
        Invalid manifests are logged and skipped so the remaining packages
        can still be processed.
    """
    if prefix:
        candidates = sorted(
            path for path in directory.iterdir()
            if path.is_dir() and path.name.startswith(prefix)
        )
    else:
        candidates = [directory]

    packages: dict[str, PackageData] = {}
    for candidate in candidates:
        try:
            package = _read_package(candidate)
        except (ManifestError, OSError) as exc:
            log.error("%s", exc)
            continue
        if package is not None:
            packages[package.id] = package

    if not packages:
        log.error("No packages detected")
    return packages
