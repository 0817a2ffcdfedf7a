#!/usr/bin/env python3
"""CLI entry point for compendium pack management.

This module provides the argument parser and main entry point that
wires together all commands from the commands package.

Usage:
    python -m compendium_cli package unpack
    python -m compendium_cli package unpack monsters --dry-run
    python -m compendium_cli package pack --id my-module --pack spells
    python -m compendium_cli package pack --nedb
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from compendium_cli.commands import cmd_package_pack, cmd_package_unpack
from compendium_cli.errors import CliError
from compendium_cli.models.package import PackOptions

LOGGER_NAME = "compendium_cli"


def _configure_stdio_utf8() -> None:
    """Ensure document names can be printed on Windows terminals.

    Windows consoles may default to a code page that can't handle Unicode.
    This reconfigures stdout/stderr to use UTF-8 if possible.
    """
    stdout = getattr(sys, "stdout", None)
    stderr = getattr(sys, "stderr", None)
    if hasattr(stdout, "reconfigure"):
        stdout.reconfigure(encoding="utf-8")  # type: ignore[attr-defined]
    if hasattr(stderr, "reconfigure"):
        stderr.reconfigure(encoding="utf-8")  # type: ignore[attr-defined]


_log_handler: logging.Handler | None = None


def _configure_logging(verbose: bool) -> None:
    """Send package log records to stdout, one message per line."""
    global _log_handler
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if _log_handler is not None:
        root.removeHandler(_log_handler)
    _log_handler = logging.StreamHandler(sys.stdout)
    _log_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(_log_handler)


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    """Options shared by pack and unpack."""
    parser.add_argument(
        "value",
        nargs="?",
        help="Name of a single pack to process (same as --pack).",
    )
    parser.add_argument("--id", help="Process only the package with this id.")
    parser.add_argument("-n", "--pack", help="Process only the pack with this name.")
    parser.add_argument(
        "--nedb",
        action="store_true",
        help="Use the legacy NeDB datafiles instead of LevelDB.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report changes without writing anything.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings, errors and per-pack summaries.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Also log unchanged entries.",
    )
    parser.add_argument(
        "--legacy-folders",
        action="store_true",
        help="Group unpacked files by document type instead of by folder.",
    )
    parser.add_argument(
        "--prefix",
        help="Scan sub-directories starting with this prefix for packages.",
    )
    parser.add_argument(
        "--directory",
        type=Path,
        default=Path("."),
        help="Directory to search for packages (default: current directory).",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the complete argument parser with all subcommands.

    Returns:
        Configured ArgumentParser with subcommands for:
        - package (unpack, pack)
    """
    parser = argparse.ArgumentParser(
        prog="compendium-cli",
        description="Convert compendium packs between databases and JSON source files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  compendium-cli package unpack
  compendium-cli package unpack monsters --dry-run
  compendium-cli package pack --id my-module -n spells
  compendium-cli package pack --nedb --quiet
  compendium-cli package unpack --prefix module- --directory ./modules
""",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---------------------------------------------------------------------
    # package command group
    # ---------------------------------------------------------------------
    package_parser = subparsers.add_parser("package", help="Compendium pack operations.")
    package_sub = package_parser.add_subparsers(dest="package_command", required=True)

    # package unpack
    package_unpack = package_sub.add_parser(
        "unpack",
        help="Extract compendium packs into individual JSON source files.",
    )
    _add_run_options(package_unpack)
    package_unpack.set_defaults(handler=cmd_package_unpack)

    # package pack
    package_pack = package_sub.add_parser(
        "pack",
        help="Build compendium packs from JSON source files.",
    )
    _add_run_options(package_pack)
    package_pack.set_defaults(handler=cmd_package_pack)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 once the selected packs were processed, 1 for error)

    Handles:
        - CliError: User-facing error messages
        - FileNotFoundError: Missing package directory
    """
    _configure_stdio_utf8()
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    options = PackOptions(
        dry_run=args.dry_run,
        quiet=args.quiet,
        verbose=args.verbose,
        legacy_folders=args.legacy_folders,
        nedb=args.nedb,
    )
    try:
        handler = getattr(args, "handler", None)
        if handler is None:
            parser.print_help()
            return 1
        return int(handler(options, args))
    except CliError as error:
        print(f"Error: {error}", file=sys.stderr)
        return 1
    except FileNotFoundError as error:
        print(f"Error: {error}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
