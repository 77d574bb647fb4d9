"""Exception hierarchy for refshelf.

Messages say what went wrong and what to try next. Duplicates, id
collisions and empty search results are ordinary return values, not errors.
"""

from __future__ import annotations

from pathlib import Path


class RefshelfError(RuntimeError):
    """Base class for all refshelf errors."""


class LibraryError(RefshelfError):
    """The library file could not be read or written."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(
            f"Cannot use library file {path}: {reason}. "
            f"Fix or move the file, or point REFSHELF_LIBRARY at another one."
        )
        self.path = path


class ReferenceNotFound(RefshelfError):
    """No reference with the given identifier."""

    def __init__(self, identifier: str, id_type: str = "id") -> None:
        super().__init__(
            f"No reference with {id_type} '{identifier}'. "
            f"Use `refshelf list` or `refshelf search` to find the right one."
        )
        self.identifier = identifier
        self.id_type = id_type


class ImportFailure(RefshelfError):
    """An input could not be parsed or fetched."""


class AttachmentError(RefshelfError):
    """An attachment operation could not be completed."""
