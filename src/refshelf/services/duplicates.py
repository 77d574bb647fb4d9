"""Duplicate detection for incoming references."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal

from refshelf.models import Reference
from refshelf.search.normalizer import normalize_text
from refshelf.utils import normalize_doi

DuplicateType = Literal["doi", "pmid", "pmcid", "isbn", "title-author-year"]


@dataclass(slots=True)
class DuplicateMatch:
    type: DuplicateType
    existing: Reference
    details: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class DuplicateResult:
    is_duplicate: bool
    matches: list[DuplicateMatch] = field(default_factory=list)

    @property
    def first(self) -> DuplicateMatch | None:
        return self.matches[0] if self.matches else None


def _identifier_match(candidate: Reference, existing: Reference) -> DuplicateMatch | None:
    if candidate.DOI and existing.DOI:
        doi = normalize_doi(existing.DOI)
        if normalize_doi(candidate.DOI) == doi:
            return DuplicateMatch("doi", existing, {"doi": doi})
    pairs: tuple[tuple[DuplicateType, str | None, str | None], ...] = (
        ("pmid", candidate.PMID, existing.PMID),
        ("pmcid", candidate.PMCID, existing.PMCID),
        ("isbn", candidate.ISBN, existing.ISBN),
    )
    for kind, ours, theirs in pairs:
        if ours and theirs and ours == theirs:
            return DuplicateMatch(kind, existing, {kind: theirs})
    return None


def _signature(record: Reference) -> tuple[str, str, str] | None:
    """Normalized (title, first author, year), or None if any part is missing."""
    if not record.title or not record.year:
        return None
    author = record.first_author
    name = (author.family or author.literal) if author else None
    if not name:
        return None
    title = normalize_text(record.title)
    family = normalize_text(name)
    if not title or not family:
        return None
    return title, family, str(record.year)


def detect_duplicate(candidate: Reference, existing: Iterable[Reference]) -> DuplicateResult:
    """Find existing records equivalent to ``candidate``.

    Identifier equality (DOI, PMID, PMCID, ISBN) takes precedence; the
    title/author/year signature is consulted only when no identifier matches.
    A record never duplicates itself (same uuid).
    """
    others = [
        record
        for record in existing
        if not (candidate.uuid and record.uuid == candidate.uuid)
    ]

    matches: list[DuplicateMatch] = []
    for record in others:
        match = _identifier_match(candidate, record)
        if match:
            matches.append(match)
    if matches:
        return DuplicateResult(is_duplicate=True, matches=matches)

    signature = _signature(candidate)
    if signature is None:
        return DuplicateResult(is_duplicate=False)
    title, family, year = signature
    for record in others:
        if _signature(record) == signature:
            matches.append(
                DuplicateMatch(
                    "title-author-year",
                    record,
                    {"title": title, "author": family, "year": year},
                )
            )
    return DuplicateResult(is_duplicate=bool(matches), matches=matches)
