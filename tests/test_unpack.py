from __future__ import annotations

import json
import logging
from pathlib import Path

import plyvel
import pytest
from conftest import make_package, read_level, write_level

from compendium_cli.errors import FolderCycleError, LockConflictError, StoreNotFoundError, UnknownDocumentTypeError
from compendium_cli.models import PackageData, PackOptions
from compendium_cli.packing import pack_level, unpack_level


def _store_path(package: PackageData) -> Path:
    return package.level_path(package.packs[0])


def _source_dir(package: PackageData) -> Path:
    return package.source_dir(package.packs[0])


def _hero_entries() -> dict:
    return {
        "!actors!A1": {"_id": "A1", "name": "Hero", "type": "npc", "effects": ["E1"], "items": [], "sort": 5},
        "!actors.effects!A1.E1": {"_id": "E1", "name": "Bless"},
    }


def test_unpack_rebuilds_embedded_documents(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), _hero_entries())

    stats = unpack_level(actor_package, actor_package.packs[0], PackOptions())

    path = _source_dir(actor_package) / "hero-A1.json"
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["effects"] == [{"_id": "E1", "name": "Bless", "flags": {}}]
    assert document["items"] == []
    assert document["sort"] == 0
    assert "_key" not in document
    assert path.read_text(encoding="utf-8").endswith("}\n")
    assert (stats.created, stats.updated, stats.removed) == (1, 0, 0)


def test_unpack_twice_changes_nothing(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), _hero_entries())
    unpack_level(actor_package, actor_package.packs[0], PackOptions())
    before = (_source_dir(actor_package) / "hero-A1.json").read_bytes()

    stats = unpack_level(actor_package, actor_package.packs[0], PackOptions())

    assert not stats.changed
    assert (_source_dir(actor_package) / "hero-A1.json").read_bytes() == before


def test_unpack_updates_and_removes_files(actor_package: PackageData, caplog: pytest.LogCaptureFixture) -> None:
    write_level(_store_path(actor_package), _hero_entries())
    source_dir = _source_dir(actor_package)
    (source_dir / "old").mkdir(parents=True)
    (source_dir / "old" / "stale-S1.json").write_text('{"_id": "S1"}\n', encoding="utf-8")
    (source_dir / "hero-A1.json").write_text('{"_id": "A1"}\n', encoding="utf-8")

    stats = unpack_level(actor_package, actor_package.packs[0], PackOptions())

    assert (stats.created, stats.updated, stats.removed) == (0, 1, 1)
    assert not (source_dir / "old").exists()
    messages = [record.getMessage() for record in caplog.records]
    assert "Updated hero-A1.json" in messages
    assert "Removed old/stale-S1.json" in messages
    assert "Unpacked test-module.monsters: 0 created, 1 updated, 1 removed" in messages


def test_unpack_dry_run_writes_nothing(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), _hero_entries())

    stats = unpack_level(actor_package, actor_package.packs[0], PackOptions(dry_run=True))

    assert stats.created == 1
    assert not _source_dir(actor_package).exists()


def test_unpack_quiet_only_logs_summary(actor_package: PackageData, caplog: pytest.LogCaptureFixture) -> None:
    write_level(_store_path(actor_package), _hero_entries())

    unpack_level(actor_package, actor_package.packs[0], PackOptions(quiet=True))

    messages = [record.getMessage() for record in caplog.records if record.levelno >= logging.INFO]
    assert messages == ["Unpacked test-module.monsters: 1 created, 0 updated, 0 removed"]


def test_unpack_skips_missing_references(actor_package: PackageData, caplog: pytest.LogCaptureFixture) -> None:
    entries = _hero_entries()
    entries["!actors!A1"]["effects"] = ["E1", "E404"]
    write_level(_store_path(actor_package), entries)

    unpack_level(actor_package, actor_package.packs[0], PackOptions())

    document = json.loads((_source_dir(actor_package) / "hero-A1.json").read_text(encoding="utf-8"))
    assert [effect["_id"] for effect in document["effects"]] == ["E1"]
    warnings = [record.getMessage() for record in caplog.records if record.levelno == logging.WARNING]
    assert any("E404" in message and "Hero" in message for message in warnings)


def test_unpack_skips_malformed_keys(actor_package: PackageData, caplog: pytest.LogCaptureFixture) -> None:
    entries = _hero_entries()
    entries["!actors.effects!A1"] = {"_id": "broken"}
    write_level(_store_path(actor_package), entries)

    stats = unpack_level(actor_package, actor_package.packs[0], PackOptions())

    assert stats.created == 1
    assert any("Malformed key" in record.getMessage() for record in caplog.records)


def test_unpack_places_documents_in_folders(actor_package: PackageData) -> None:
    entries = _hero_entries()
    entries["!actors!A1"]["folder"] = "F2"
    entries["!folders!F1"] = {"_id": "F1", "name": "Monsters", "type": "Actor", "folder": None}
    entries["!folders!F2"] = {"_id": "F2", "name": "Undead", "type": "Actor", "folder": "F1"}
    write_level(_store_path(actor_package), entries)

    stats = unpack_level(actor_package, actor_package.packs[0], PackOptions())

    source_dir = _source_dir(actor_package)
    assert (source_dir / "monsters" / "undead" / "hero-A1.json").is_file()
    assert (source_dir / "monsters" / "_folder.json").is_file()
    folder = json.loads((source_dir / "monsters" / "undead" / "_folder.json").read_text(encoding="utf-8"))
    assert folder["_id"] == "F2"
    assert stats.created == 3


def test_unpack_legacy_folders_group_by_type(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), _hero_entries())

    unpack_level(actor_package, actor_package.packs[0], PackOptions(legacy_folders=True))

    assert (_source_dir(actor_package) / "npc" / "hero-A1.json").is_file()


def test_unpack_folder_cycle_writes_nothing(actor_package: PackageData) -> None:
    entries = _hero_entries()
    entries["!folders!F1"] = {"_id": "F1", "name": "One", "folder": "F2"}
    entries["!folders!F2"] = {"_id": "F2", "name": "Two", "folder": "F1"}
    write_level(_store_path(actor_package), entries)

    with pytest.raises(FolderCycleError):
        unpack_level(actor_package, actor_package.packs[0], PackOptions())

    assert not _source_dir(actor_package).exists()


def test_unpack_missing_store_raises(actor_package: PackageData) -> None:
    with pytest.raises(StoreNotFoundError):
        unpack_level(actor_package, actor_package.packs[0], PackOptions())

    assert not _store_path(actor_package).exists()


def test_unpack_locked_store_raises(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), _hero_entries())
    holder = plyvel.DB(str(_store_path(actor_package)))
    try:
        with pytest.raises(LockConflictError) as excinfo:
            unpack_level(actor_package, actor_package.packs[0], PackOptions())
    finally:
        holder.close()

    assert excinfo.value.pack == "monsters"
    assert not _source_dir(actor_package).exists()


def test_unpack_unknown_pack_type_raises(tmp_path: Path) -> None:
    package = make_package(tmp_path, [{"name": "ships", "path": "packs/ships", "type": "Spaceship"}])

    with pytest.raises(UnknownDocumentTypeError):
        unpack_level(package, package.packs[0], PackOptions())


def test_unpack_appends_stored_children_the_parent_does_not_list(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), {
        "!actors!A1": {"_id": "A1", "name": "Hero"},
        "!actors.effects!A1.E1": {"_id": "E1", "name": "Buff"},
    })

    unpack_level(actor_package, actor_package.packs[0], PackOptions())
    pack_level(actor_package, actor_package.packs[0], PackOptions())
    second = pack_level(actor_package, actor_package.packs[0], PackOptions())

    document = json.loads((_source_dir(actor_package) / "hero-A1.json").read_text(encoding="utf-8"))
    assert document["effects"] == [{"_id": "E1", "name": "Buff", "flags": {}}]
    assert set(read_level(_store_path(actor_package))) == {"!actors!A1", "!actors.effects!A1.E1"}
    assert not second.changed


def test_unpack_keeps_listed_children_before_unlisted_ones(actor_package: PackageData) -> None:
    write_level(_store_path(actor_package), {
        "!actors!A1": {"_id": "A1", "name": "Hero", "effects": ["E3"]},
        "!actors.effects!A1.E1": {"_id": "E1", "name": "Buff"},
        "!actors.effects!A1.E2": {"_id": "E2", "name": "Haste"},
        "!actors.effects!A1.E3": {"_id": "E3", "name": "Shield"},
    })

    unpack_level(actor_package, actor_package.packs[0], PackOptions())

    document = json.loads((_source_dir(actor_package) / "hero-A1.json").read_text(encoding="utf-8"))
    assert [effect["_id"] for effect in document["effects"]] == ["E3", "E1", "E2"]


def test_unpack_dry_run_matches_real_run_on_existing_tree(
    actor_package: PackageData, caplog: pytest.LogCaptureFixture
) -> None:
    entries = _hero_entries()
    entries["!actors!G1"] = {"_id": "G1", "name": "Goblin", "type": "npc"}
    write_level(_store_path(actor_package), entries)
    source_dir = _source_dir(actor_package)
    (source_dir / "old" / "deeper").mkdir(parents=True)
    (source_dir / "old" / "deeper" / "stale-S1.json").write_text('{"_id": "S1"}\n', encoding="utf-8")
    (source_dir / "hero-A1.json").write_text('{"_id": "A1", "name": "Outdated"}\n', encoding="utf-8")
    snapshot = {path: path.read_bytes() for path in source_dir.rglob("*") if path.is_file()}

    dry = unpack_level(actor_package, actor_package.packs[0], PackOptions(dry_run=True))
    dry_messages = list(caplog.messages)

    assert {path: path.read_bytes() for path in source_dir.rglob("*") if path.is_file()} == snapshot
    assert (source_dir / "old" / "deeper").is_dir()

    caplog.clear()
    real = unpack_level(actor_package, actor_package.packs[0], PackOptions())

    assert (dry.created, dry.updated, dry.removed) == (1, 1, 1)
    assert (real.created, real.updated, real.removed) == (1, 1, 1)
    assert caplog.messages == dry_messages
    assert not (source_dir / "old").exists()
