"""Compendium CLI - Converts compendium packs between databases and source files.

This package unpacks LevelDB (or legacy NeDB) compendium packs into one
human-editable JSON file per document, and packs such trees back into the
database, with clear architectural boundaries:

- **models/**: Storage keys, the document type registry, package descriptors
- **persistence/**: JSON I/O (atomic writes), source trees, LevelDB/NeDB stores
- **packing/**: Sanitization, folder resolution, pack and unpack engines
- **commands/**: CLI command handlers orchestrating operations
- **errors**: Typed error hierarchy with explicit failure states
"""

__version__ = "1.0.0"
