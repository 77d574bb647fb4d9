"""Text normalization shared by search matching and duplicate detection."""

from __future__ import annotations

import re
import unicodedata

_PUNCTUATION = re.compile(r"[^\w/\s]|_")
_WHITESPACE = re.compile(r"\s+")


def _strip_marks(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.category(ch).startswith("M"))


def normalize_preserving_case(value: str) -> str:
    """NFKC, drop diacritics and punctuation (``/`` survives), squeeze spaces."""
    text = _strip_marks(unicodedata.normalize("NFKC", value))
    text = _PUNCTUATION.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_text(value: str) -> str:
    """Case-folded variant of :func:`normalize_preserving_case`."""
    return normalize_preserving_case(unicodedata.normalize("NFKC", value).lower())
