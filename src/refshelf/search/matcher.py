"""Field-level matching of search tokens against references.

Every searchable field is described by a :class:`FieldStrategy`: how to pull
candidate values out of a record and whether those values are identifiers
(exact, case-sensitive equality) or content (normalized substring).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal

from refshelf.models import Reference
from refshelf.search.normalizer import normalize_preserving_case, normalize_text
from refshelf.search.types import FieldMatch, SearchResult, SearchToken, TokenMatch

FieldKind = Literal["identifier", "content"]

# Uppercase runs of this length are read as acronyms (AI, RNA, HIV, NASA);
# longer runs are ordinary words typed in capitals.
_ACRONYM = re.compile(r"(?<![A-Z])[A-Z]{2,4}(?![A-Z])")


@dataclass(frozen=True, slots=True)
class FieldStrategy:
    """How one searchable field is read from a record and compared."""

    name: str
    kind: FieldKind
    extract: Callable[[Reference], list[tuple[str, str]]]

    def compare(self, extracted: str, token: SearchToken) -> bool:
        if self.kind == "identifier":
            return extracted == token.value
        return content_contains(extracted, token.value)

    def match(self, record: Reference, token: SearchToken) -> FieldMatch | None:
        try:
            candidates = self.extract(record)
        except (AttributeError, IndexError, TypeError, ValueError):
            return None
        for field_name, value in candidates:
            if value and self.compare(value, token):
                strength = "exact" if self.kind == "identifier" else "partial"
                return FieldMatch(field=field_name, strength=strength, value=value)
        return None


def acronyms_in(value: str) -> list[str]:
    return _ACRONYM.findall(value)


def content_contains(haystack: str, needle: str) -> bool:
    """Normalized, case-insensitive containment with acronym sensitivity."""
    query = normalize_text(needle)
    if not query or query not in normalize_text(haystack):
        return False
    acronyms = acronyms_in(normalize_preserving_case(needle))
    if not acronyms:
        return True
    preserved = normalize_preserving_case(haystack)
    return all(acronym in preserved for acronym in acronyms)


def _single(field_name: str, getter: Callable[[Reference], object]) -> Callable[[Reference], list[tuple[str, str]]]:
    def extract(record: Reference) -> list[tuple[str, str]]:
        value = getter(record)
        if value is None or value == "":
            return []
        return [(field_name, str(value))]

    return extract


def _authors(record: Reference) -> list[tuple[str, str]]:
    names: list[str] = []
    for person in record.author or []:
        if person.family:
            initial = person.given[0] if person.given else ""
            names.append(f"{person.family} {initial}".strip())
        elif person.literal:
            names.append(person.literal)
    if not names:
        return []
    return [("author", " ".join(names))]


def _urls(record: Reference) -> list[tuple[str, str]]:
    values: list[tuple[str, str]] = []
    if record.URL:
        values.append(("URL", record.URL))
    for url in record.custom.additional_urls or []:
        if isinstance(url, str):
            values.append(("custom.additional_urls", url))
    return values


def _keywords(record: Reference) -> list[tuple[str, str]]:
    return [("keyword", keyword) for keyword in record.keyword or [] if isinstance(keyword, str)]


def _tags(record: Reference) -> list[tuple[str, str]]:
    return [("tag", tag) for tag in record.custom.tags or [] if isinstance(tag, str)]


FIELD_STRATEGIES: dict[str, FieldStrategy] = {
    "title": FieldStrategy("title", "content", _single("title", lambda r: r.title)),
    "author": FieldStrategy("author", "content", _authors),
    "container-title": FieldStrategy(
        "container-title", "content", _single("container-title", lambda r: r.container_title)
    ),
    "publisher": FieldStrategy("publisher", "content", _single("publisher", lambda r: r.publisher)),
    "abstract": FieldStrategy("abstract", "content", _single("abstract", lambda r: r.abstract)),
    "keyword": FieldStrategy("keyword", "content", _keywords),
    "tag": FieldStrategy("tag", "content", _tags),
    "DOI": FieldStrategy("DOI", "identifier", _single("DOI", lambda r: r.DOI)),
    "PMID": FieldStrategy("PMID", "identifier", _single("PMID", lambda r: r.PMID)),
    "PMCID": FieldStrategy("PMCID", "identifier", _single("PMCID", lambda r: r.PMCID)),
    "ISBN": FieldStrategy("ISBN", "identifier", _single("ISBN", lambda r: r.ISBN)),
    "URL": FieldStrategy("URL", "identifier", _urls),
    "year": FieldStrategy("year", "identifier", _single("year", lambda r: r.year)),
    "id": FieldStrategy("id", "identifier", _single("id", lambda r: r.id)),
    "uuid": FieldStrategy("uuid", "identifier", _single("uuid", lambda r: r.uuid)),
}

# Query field specifier -> strategy key.
SCOPED_FIELDS: dict[str, str] = {
    "author": "author",
    "title": "title",
    "year": "year",
    "doi": "DOI",
    "pmid": "PMID",
    "pmcid": "PMCID",
    "isbn": "ISBN",
    "url": "URL",
    "keyword": "keyword",
    "tag": "tag",
    "id": "id",
    "uuid": "uuid",
}

UNSCOPED_FIELDS: tuple[str, ...] = (
    "title",
    "author",
    "container-title",
    "publisher",
    "DOI",
    "PMID",
    "PMCID",
    "URL",
    "keyword",
    "abstract",
    "year",
)


def match_token(token: SearchToken, record: Reference) -> list[FieldMatch]:
    """Evidence that ``token`` matches ``record``; empty when it does not."""
    if token.field is not None:
        key = SCOPED_FIELDS.get(token.field)
        if key is None:
            return []
        match = FIELD_STRATEGIES[key].match(record, token)
        return [match] if match else []

    matches: list[FieldMatch] = []
    for key in UNSCOPED_FIELDS:
        match = FIELD_STRATEGIES[key].match(record, token)
        if match:
            matches.append(match)
    return matches


def match_reference(record: Reference, tokens: list[SearchToken]) -> SearchResult | None:
    """Match every token (AND) against any field (OR).

    An empty token list is not a match; callers wanting "match all" for an
    empty query handle that before calling.
    """
    if not tokens:
        return None
    token_matches: list[TokenMatch] = []
    for token in tokens:
        matches = match_token(token, record)
        if not matches:
            return None
        token_matches.append(TokenMatch(token=token, matches=matches))

    exact = any(entry.best_strength == "exact" for entry in token_matches)
    return SearchResult(
        reference=record,
        token_matches=token_matches,
        overall_strength="exact" if exact else "partial",
        score=(100 if exact else 50) + len(tokens),
    )


def match_all(records: list[Reference], tokens: list[SearchToken]) -> list[SearchResult]:
    results: list[SearchResult] = []
    for record in records:
        result = match_reference(record, tokens)
        if result is not None:
            results.append(result)
    return results
