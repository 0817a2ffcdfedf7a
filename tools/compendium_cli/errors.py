"""Typed error hierarchy with explicit failure states.

Errors come in two severities:
- Entry-level errors (malformed keys, unknown collections, missing references,
  unreadable files) are caught by the engine loop that owns the entry, logged
  as warnings, and processing continues.
- Collection-level errors (lock conflicts, missing stores, folder cycles)
  abort the current pack or unpack and are caught by the command layer so the
  next collection still runs.
"""

from __future__ import annotations


class CliError(RuntimeError):
    """Base error for all CLI operations.

    Subclasses provide structured context; the message is user-facing.
    Never raise a raw CliError; always use a specific subclass.
    """
    pass


# -----------------------------------------------------------------------------
# Storage Errors
# -----------------------------------------------------------------------------

class LockConflictError(CliError):
    """The backing store is held by another process.

    Attributes:
        pack: Name of the compendium pack
        path: Location of the store
    """
    def __init__(self, pack: str, path: str) -> None:
        self.pack = pack
        self.path = path
        super().__init__(
            f'The pack "{pack}" ({path}) is currently in use by another process. '
            "Close it and try again."
        )


class StoreNotFoundError(CliError):
    """The store to unpack does not exist.

    Attributes:
        path: Location where the store was expected
    """
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No pack database found at {path}")


class StoreError(CliError):
    """The storage backend failed for a reason other than a lock.

    Attributes:
        path: Location of the store
        detail: Backend error message
    """
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Pack database {path} failed: {detail}")


# -----------------------------------------------------------------------------
# Document Structure Errors
# -----------------------------------------------------------------------------

class MalformedKeyError(CliError):
    """A storage key does not follow the `!<collections>!<ids>` encoding.

    Attributes:
        key: The offending key
        detail: What is wrong with it
    """
    def __init__(self, key: str, detail: str) -> None:
        self.key = key
        self.detail = detail
        super().__init__(f"Malformed key '{key}': {detail}")


class UnknownCollectionError(CliError):
    """A collection name has no matching document type.

    Attributes:
        collection: The unresolved collection name
        parent: Type or key of the document holding it, if any
    """
    def __init__(self, collection: str, parent: str | None = None) -> None:
        self.collection = collection
        self.parent = parent
        where = f" in {parent}" if parent else ""
        super().__init__(f"Unknown collection '{collection}'{where}, skipping")


class UnknownDocumentTypeError(CliError):
    """A compendium declares a document type missing from the registry.

    Attributes:
        type_name: The undeclared type
    """
    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Unknown document type '{type_name}'")


class MissingReferenceError(CliError):
    """An embedded id is listed by its parent but has no stored entry.

    Attributes:
        collection: Embedded collection holding the reference
        document_id: The id that could not be found
        parent_name: Display name of the parent document
    """
    def __init__(self, collection: str, document_id: str, parent_name: str) -> None:
        self.collection = collection
        self.document_id = document_id
        self.parent_name = parent_name
        super().__init__(
            f'The document {document_id} was not found within the {collection} '
            f'collection of "{parent_name}"'
        )


class FolderCycleError(CliError):
    """Folder ancestry loops back on itself.

    Attributes:
        folder_ids: The chain of folder ids forming the cycle
    """
    def __init__(self, folder_ids: list[str]) -> None:
        self.folder_ids = folder_ids
        super().__init__(f"Folder cycle detected: {' -> '.join(folder_ids)}")


# -----------------------------------------------------------------------------
# File Errors
# -----------------------------------------------------------------------------

class InvalidJsonError(CliError):
    """JSON parsing failed.

    Attributes:
        path: The file or key that failed to parse
        detail: Parser error message
    """
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid JSON in {path}: {detail}")


class ManifestError(CliError):
    """A package manifest could not be read.

    Attributes:
        path: The manifest file
        detail: Explanation of the problem
    """
    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid package manifest {path}: {detail}")
