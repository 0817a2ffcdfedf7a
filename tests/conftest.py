from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import plyvel
import pytest

from compendium_cli.models import PackageData


def write_level(path: Path, entries: dict[str, Any]) -> None:
    """Create a LevelDB store holding the given entries as compact JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    db = plyvel.DB(str(path), create_if_missing=True)
    try:
        for key, value in entries.items():
            db.put(key.encode("utf-8"), json.dumps(value, separators=(",", ":")).encode("utf-8"))
    finally:
        db.close()


def read_level(path: Path) -> dict[str, Any]:
    db = plyvel.DB(str(path))
    try:
        return {key.decode("utf-8"): json.loads(value) for key, value in db}
    finally:
        db.close()


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def make_package(directory: Path, packs: list[dict[str, Any]], package_id: str = "test-module") -> PackageData:
    manifest = {"id": package_id, "title": "Test Module", "packs": packs}
    write_json(directory / "module.json", manifest)
    return PackageData(id=package_id, type="module", directory=directory, manifest=manifest)


@pytest.fixture
def actor_package(tmp_path: Path) -> PackageData:
    return make_package(
        tmp_path,
        [{"name": "monsters", "label": "Monsters", "path": "packs/monsters", "type": "Actor"}],
    )


@pytest.fixture
def item_package(tmp_path: Path) -> PackageData:
    return make_package(
        tmp_path,
        [{"name": "items", "label": "Items", "path": "packs/items.db", "type": "Item"}],
    )


@pytest.fixture(autouse=True)
def _capture_package_logs(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="compendium_cli")
