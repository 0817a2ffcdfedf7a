"""Package commands.

This module provides the package-level CLI commands:
- unpack: Extract every selected compendium into source files
- pack: Build every selected compendium from its source files

Both commands run one engine call per compendium. A failure in one
compendium is logged and the run continues with the next one.
"""

from __future__ import annotations

import argparse
import logging
from typing import Callable

from compendium_cli.errors import CliError
from compendium_cli.models.package import ChangeStats, CompendiumData, PackageData, PackOptions
from compendium_cli.packing import pack_level, pack_nedb, unpack_level, unpack_nedb
from compendium_cli.persistence import detect_packages

logger = logging.getLogger(__name__)

Engine = Callable[..., ChangeStats]


def _selected(args: argparse.Namespace) -> list[tuple[PackageData, CompendiumData]]:
    """Resolve the packages and packs selected on the command line."""
    pack_name = args.pack or args.value
    packages = detect_packages(args.directory, prefix=args.prefix)
    if args.id:
        package = packages.get(args.id)
        if package is None:
            logger.warning('Package "%s" not found', args.id)
        packages = {args.id: package} if package is not None else {}

    selected = []
    for package in packages.values():
        for compendium in package.packs:
            if pack_name and compendium.name != pack_name:
                continue
            selected.append((package, compendium))

    if pack_name and packages and not selected:
        logger.warning('Pack "%s" not found', pack_name)
    return selected


def _run(engine: Engine, options: PackOptions, args: argparse.Namespace) -> int:
    for package, compendium in _selected(args):
        try:
            engine(package, compendium, options)
        except (CliError, OSError) as exc:
            logger.error("Failed to process %s.%s: %s", package.id, compendium.name, exc)
    return 0


def cmd_package_unpack(options: PackOptions, args: argparse.Namespace) -> int:
    """Unpack the selected compendiums into source files.

    Args:
        options: Run options
        args: Parsed arguments (value, pack, id, prefix, directory)

    Returns:
        Exit code (always 0; per-pack failures are logged)
    """
    return _run(unpack_nedb if options.nedb else unpack_level, options, args)


def cmd_package_pack(options: PackOptions, args: argparse.Namespace) -> int:
    """Pack the selected compendiums from source files."""
    return _run(pack_nedb if options.nedb else pack_level, options, args)
