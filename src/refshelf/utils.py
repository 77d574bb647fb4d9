"""Utility helpers for identifier normalization and filesystem-safe names."""

from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timezone

DOI_PREFIXES = (
    "https://doi.org/",
    "http://doi.org/",
    "https://dx.doi.org/",
    "http://dx.doi.org/",
    "doi.org/",
    "doi:",
)
SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
KEY_PATTERN = re.compile(r"[^a-z0-9]")


def normalize_doi(doi: str) -> str:
    """Strip resolver URL and ``doi:`` prefixes; the DOI itself keeps its case."""
    value = doi.strip()
    lowered = value.lower()
    for prefix in DOI_PREFIXES:
        if lowered.startswith(prefix):
            return value[len(prefix):].strip()
    return value


def ascii_fold(value: str) -> str:
    return unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode()


def slugify(value: str, max_length: int = 80) -> str:
    """Create a filesystem-safe slug."""
    value = ascii_fold(value).lower()
    value = SLUG_PATTERN.sub("-", value).strip("-")
    if not value:
        value = "item"
    return value[:max_length]


def compact_key(value: str, max_length: int = 32) -> str:
    """Lowercase ASCII letters and digits only, as used in citation keys."""
    return KEY_PATTERN.sub("", ascii_fold(value).lower())[:max_length]


def utc_now() -> str:
    """ISO-8601 timestamp in UTC with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
