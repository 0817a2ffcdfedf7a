"""CLI commands for compendium packs.

This module exports all command handlers:
- package unpack: Extract compendiums into source files
- package pack: Build compendiums from source files
"""

from compendium_cli.commands.package import cmd_package_pack, cmd_package_unpack

__all__ = [
    "cmd_package_pack",
    "cmd_package_unpack",
]
