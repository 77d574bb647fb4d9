"""Service layer for refshelf: storage, import, add pipeline and library operations."""

from .attachments import AttachmentManager, AttachResult, DetachResult
from .duplicates import DuplicateMatch, DuplicateResult, detect_duplicate
from .importer import Importer, ImportResult
from .library import LocalLibrary, UpdateResult
from .operations import (
    cite_references,
    list_references,
    remove_reference,
    search_references,
    update_reference,
)
from .pipeline import AddedItem, AddPipeline, AddReport, FailedItem, SkippedItem
from .resolvers import (
    CrossrefResolver,
    FetchResult,
    MemoryCache,
    MetadataResolver,
    OpenLibraryResolver,
    PubMedResolver,
    ResolverRegistry,
    default_registry,
)
from .verification import CheckResult, ReferenceChecker, check_references

__all__ = [
    "AttachmentManager",
    "AttachResult",
    "DetachResult",
    "DuplicateMatch",
    "DuplicateResult",
    "detect_duplicate",
    "Importer",
    "ImportResult",
    "LocalLibrary",
    "UpdateResult",
    "cite_references",
    "list_references",
    "remove_reference",
    "search_references",
    "update_reference",
    "AddedItem",
    "AddPipeline",
    "AddReport",
    "FailedItem",
    "SkippedItem",
    "CrossrefResolver",
    "FetchResult",
    "MemoryCache",
    "MetadataResolver",
    "OpenLibraryResolver",
    "PubMedResolver",
    "ResolverRegistry",
    "default_registry",
    "CheckResult",
    "ReferenceChecker",
    "check_references",
]
