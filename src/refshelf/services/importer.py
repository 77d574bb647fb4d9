"""Classify add inputs (files, raw content, identifiers) and turn them into CSL items."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import structlog

from refshelf.errors import ImportFailure
from refshelf.services.parsers import parse_bibtex, parse_csl_json, parse_nbib, parse_ris
from refshelf.services.resolvers import ResolverRegistry
from refshelf.utils import DOI_PREFIXES, normalize_doi

logger = structlog.get_logger(__name__)

FILE_FORMATS = ("json", "bibtex", "ris", "nbib")
IDENTIFIER_FORMATS = ("doi", "pmid", "isbn")
INPUT_FORMATS = ("auto", *FILE_FORMATS, *IDENTIFIER_FORMATS)

EXTENSIONS = {
    ".json": "json",
    ".bib": "bibtex",
    ".ris": "ris",
    ".nbib": "nbib",
}

PARSERS: dict[str, Callable[[str], list[dict[str, Any]]]] = {
    "json": parse_csl_json,
    "bibtex": parse_bibtex,
    "ris": parse_ris,
    "nbib": parse_nbib,
}

_PMID = re.compile(r"^(?:PMID:\s*)?(\d+)$", flags=re.IGNORECASE)
_ISBN = re.compile(r"^ISBN:\s*([\dXx -]+)$", flags=re.IGNORECASE)


@dataclass(slots=True)
class ImportResult:
    source: str
    item: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.item is not None


def detect_by_extension(value: str) -> str | None:
    return EXTENSIONS.get(Path(value).suffix.lower())


def detect_by_content(content: str) -> str | None:
    text = content.lstrip()
    if not text:
        return None
    if text[0] in "[{":
        return "json"
    if text.startswith("@"):
        return "bibtex"
    if text.startswith("TY  -"):
        return "ris"
    if text.startswith("PMID-"):
        return "nbib"
    return None


def is_doi(value: str) -> bool:
    stripped = value.strip()
    if not stripped.startswith("10.") and not stripped.lower().startswith(DOI_PREFIXES):
        return False
    doi = normalize_doi(stripped)
    slash = doi.find("/")
    return doi.startswith("10.") and slash > 3 and slash < len(doi) - 1


def normalize_pmid(value: str) -> str | None:
    match = _PMID.match(value.strip())
    return match.group(1) if match else None


def normalize_isbn(value: str) -> str | None:
    """ISBNs must carry an ``ISBN:`` prefix; returns the bare 10/13 character form."""
    match = _ISBN.match(value.strip())
    if not match:
        return None
    digits = re.sub(r"[\s-]", "", match.group(1)).upper()
    if re.fullmatch(r"\d{9}[\dX]", digits) or re.fullmatch(r"\d{13}", digits):
        return digits
    return None


def detect_identifier(value: str) -> str | None:
    if is_doi(value):
        return "doi"
    if normalize_isbn(value):
        return "isbn"
    if normalize_pmid(value):
        return "pmid"
    return None


def _canonical_identifier(kind: str, value: str) -> str:
    if kind == "doi":
        return normalize_doi(value)
    if kind == "pmid":
        return normalize_pmid(value) or value.strip()
    return normalize_isbn(value) or value.strip()


class Importer:
    """Resolves add inputs into CSL items, preserving input order."""

    def __init__(self, registry: ResolverRegistry | None = None) -> None:
        self._registry = registry

    def parse_content(self, content: str, source: str, fmt: str = "auto") -> list[ImportResult]:
        kind = fmt if fmt in FILE_FORMATS else detect_by_content(content)
        if kind is None:
            return [ImportResult(source=source, error="Unrecognized content format")]
        try:
            items = PARSERS[kind](content)
        except ImportFailure as exc:
            return [ImportResult(source=source, error=str(exc))]
        if not items:
            return [ImportResult(source=source, error=f"No entries found in {kind} input")]
        logger.info("importer.parsed", source=source, format=kind, items=len(items))
        return [ImportResult(source=source, item=item) for item in items]

    async def import_inputs(self, inputs: list[str], fmt: str = "auto") -> list[ImportResult]:
        if fmt not in INPUT_FORMATS:
            raise ValueError(f"Unknown input format {fmt!r}; choose from {', '.join(INPUT_FORMATS)}")
        slots: list[list[ImportResult]] = [[] for _ in inputs]
        pending: dict[str, list[tuple[int, str]]] = {}

        for position, value in enumerate(inputs):
            path = Path(value)
            if fmt not in IDENTIFIER_FORMATS and path.is_file():
                try:
                    content = await asyncio.to_thread(path.read_text, encoding="utf-8")
                except (OSError, UnicodeDecodeError) as exc:
                    slots[position] = [ImportResult(source=value, error=f"Cannot read file: {exc}")]
                    continue
                file_fmt = fmt if fmt in FILE_FORMATS else detect_by_extension(value) or "auto"
                slots[position] = self.parse_content(content, value, file_fmt)
                continue

            kind = fmt if fmt in IDENTIFIER_FORMATS else detect_identifier(value)
            if kind is None:
                if fmt in FILE_FORMATS:
                    error = f"File not found: {value}"
                else:
                    error = "Unrecognized input: not a file, DOI, PMID or ISBN (use the ISBN: prefix)"
                slots[position] = [ImportResult(source=value, error=error)]
                continue
            pending.setdefault(kind, []).append((position, value))

        for kind, entries in pending.items():
            if self._registry is None or not self._registry.supports(kind):
                for position, value in entries:
                    slots[position] = [ImportResult(source=value, error=f"No resolver for {kind} identifiers")]
                continue
            identifiers = [_canonical_identifier(kind, value) for _, value in entries]
            fetched = await self._registry.resolve_many(kind, identifiers)
            for (position, value), result in zip(entries, fetched):
                item = result.item
                if item is not None and kind == "isbn":
                    item = {**item, "ISBN": item.get("ISBN") or result.identifier}
                slots[position] = [ImportResult(source=value, item=item, error=result.error)]

        return [result for slot in slots for result in slot]
