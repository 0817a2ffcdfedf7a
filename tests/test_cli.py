from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

import pytest
from conftest import make_package, read_level, write_json, write_level

from compendium_cli.cli import build_parser, main
from compendium_cli.persistence import detect_packages


@pytest.fixture(autouse=True)
def _detach_cli_handler() -> Iterator[None]:
    yield
    package_logger = logging.getLogger("compendium_cli")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


def test_parser_accepts_pack_name_positional_and_flag() -> None:
    parser = build_parser()

    args = parser.parse_args(["package", "unpack", "monsters", "--dry-run", "--legacy-folders"])
    assert args.value == "monsters"
    assert args.dry_run and args.legacy_folders

    args = parser.parse_args(["package", "pack", "-n", "spells", "--id", "my-module", "--nedb"])
    assert (args.pack, args.id, args.nedb) == ("spells", "my-module", True)


def test_detect_packages_reads_json5_manifests(tmp_path: Path) -> None:
    (tmp_path / "system.json").write_text(
        '{\n  // hand-edited\n  id: "my-system",\n  packs: [{name: "spells", type: "Item",},],\n}\n',
        encoding="utf-8",
    )

    packages = detect_packages(tmp_path)

    assert list(packages) == ["my-system"]
    assert packages["my-system"].type == "system"
    assert [pack.name for pack in packages["my-system"].packs] == ["spells"]


def test_detect_packages_with_prefix(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    make_package(tmp_path / "mod-alpha", [], package_id="alpha")
    make_package(tmp_path / "other", [], package_id="other")
    (tmp_path / "mod-broken").mkdir()
    (tmp_path / "mod-broken" / "module.json").write_text('{"title": "No id"}', encoding="utf-8")

    packages = detect_packages(tmp_path, prefix="mod-")

    assert list(packages) == ["alpha"]
    assert any("missing package id" in record.getMessage() for record in caplog.records)


def test_detect_packages_logs_when_nothing_found(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    assert detect_packages(tmp_path) == {}
    assert "No packages detected" in caplog.messages


def test_cli_unpack_continues_after_failing_pack(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    make_package(tmp_path, [
        {"name": "broken", "path": "packs/broken", "type": "Actor"},
        {"name": "monsters", "path": "packs/monsters", "type": "Actor"},
    ])
    write_level(tmp_path / "packs" / "monsters", {"!actors!A1": {"_id": "A1", "name": "Hero"}})

    exit_code = main(["package", "unpack", "--directory", str(tmp_path)])

    assert exit_code == 0
    assert (tmp_path / "packs" / "_source" / "monsters" / "hero-A1.json").is_file()
    assert any("Failed to process test-module.broken" in message for message in caplog.messages)


def test_cli_pack_selects_one_pack(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    make_package(tmp_path, [
        {"name": "monsters", "path": "packs/monsters", "type": "Actor"},
        {"name": "gear", "path": "packs/gear", "type": "Item"},
    ])
    write_json(tmp_path / "packs" / "_source" / "monsters" / "hero-A1.json", {"_id": "A1", "name": "Hero"})
    write_json(tmp_path / "packs" / "_source" / "gear" / "sword-I1.json", {"_id": "I1", "name": "Sword"})

    exit_code = main(["package", "pack", "monsters", "--directory", str(tmp_path)])

    assert exit_code == 0
    assert set(read_level(tmp_path / "packs" / "monsters")) == {"!actors!A1"}
    assert not (tmp_path / "packs" / "gear").exists()
    assert "Packed test-module.monsters: 1 inserted, 0 updated, 0 removed" in capsys.readouterr().out


def test_cli_warns_about_unknown_pack(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    make_package(tmp_path, [{"name": "monsters", "path": "packs/monsters", "type": "Actor"}])

    exit_code = main(["package", "pack", "--pack", "dragons", "--directory", str(tmp_path)])

    assert exit_code == 0
    assert 'Pack "dragons" not found' in caplog.messages


def test_cli_nedb_round_trip(tmp_path: Path) -> None:
    make_package(tmp_path, [{"name": "gear", "path": "packs/gear.db", "type": "Item"}])
    source = tmp_path / "packs" / "_source" / "gear" / "weapon" / "sword-I1.json"
    write_json(source, {"_id": "I1", "name": "Sword", "type": "weapon", "flags": {}, "sort": 0})

    assert main(["package", "pack", "--nedb", "--quiet", "--directory", str(tmp_path)]) == 0
    source.unlink()
    assert main(["package", "unpack", "--nedb", "--directory", str(tmp_path)]) == 0

    assert json.loads(source.read_text(encoding="utf-8"))["name"] == "Sword"
