"""Relevance ranking, field sorting and pagination."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, TypeVar

from refshelf.models import Reference
from refshelf.search.types import SearchResult

T = TypeVar("T")

SORT_FIELDS = ("created", "updated", "published", "author", "title", "relevance")
SORT_ALIASES = {
    "pub": "published",
    "mod": "updated",
    "add": "created",
    "rel": "relevance",
}


def resolve_sort_field(value: str) -> str:
    """Expand aliases; raises ``ValueError`` for unknown sort fields."""
    field = SORT_ALIASES.get(value, value)
    if field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field {value!r}; choose from {', '.join(SORT_FIELDS)}")
    return field


def _first_author_family(record: Reference) -> str | None:
    author = record.first_author
    if author is None:
        return None
    name = author.family or author.literal
    return name.casefold() if name else None


def _relevance_key(result: SearchResult, index: int) -> tuple:
    record = result.reference
    family = _first_author_family(record)
    title = record.title.casefold() if record.title else None
    return (
        0 if result.overall_strength == "exact" else 1,
        -(record.year or 0),
        (family is None, family or ""),
        (title is None, title or ""),
        index,
    )


def sort_results(results: list[SearchResult]) -> list[SearchResult]:
    """Order matches by strength, newest year, first author, title, then input order."""
    indexed = sorted(enumerate(results), key=lambda pair: _relevance_key(pair[1], pair[0]))
    return [result for _, result in indexed]


def _parse_timestamp(value: str | None) -> float:
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _created(record: Reference) -> float:
    return _parse_timestamp(record.custom.created_at)


def _updated(record: Reference) -> float:
    return _parse_timestamp(record.custom.timestamp) or _created(record)


def _published(record: Reference) -> tuple[int, int, int]:
    if not record.issued or not record.issued.date_parts or not record.issued.date_parts[0]:
        return (0, 0, 0)
    parts = record.issued.date_parts[0]
    month = parts[1] if len(parts) > 1 else 1
    day = parts[2] if len(parts) > 2 else 1
    return (parts[0], month, day)


def _author_name(record: Reference) -> str:
    author = record.first_author
    if author is None:
        return "anonymous"
    return (author.family or author.literal or "Anonymous").casefold()


_SORT_KEYS = {
    "created": _created,
    "updated": _updated,
    "published": _published,
    "author": _author_name,
    "title": lambda record: (record.title or "").casefold(),
}


def sort_references(items: list[Reference], sort: str = "updated", order: str = "desc") -> list[Reference]:
    """Sort by a record field; ties fall back to newest created, then id."""
    field = resolve_sort_field(sort)
    if field == "relevance":
        field = "updated"
    ordered = sorted(items, key=lambda record: record.id)
    ordered.sort(key=_created, reverse=True)
    ordered.sort(key=_SORT_KEYS[field], reverse=order == "desc")
    return ordered


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    limit: int
    offset: int
    next_offset: int | None


def paginate(items: list[T], limit: int = 0, offset: int = 0) -> Page[T]:
    """Slice ``items``; ``limit=0`` means no limit."""
    if limit < 0 or offset < 0:
        raise ValueError("limit and offset must be non-negative")
    total = len(items)
    window = items[offset:] if limit == 0 else items[offset : offset + limit]
    end = offset + len(window)
    next_offset = end if limit and end < total else None
    return Page(items=window, total=total, limit=limit, offset=offset, next_offset=next_offset)
