"""Library operations shared by the CLI and the HTTP server."""

from __future__ import annotations

from typing import Any

import structlog

from refshelf.exporters import format_citations
from refshelf.models import Reference
from refshelf.search import Page, match_all, paginate, resolve_sort_field, sort_references, sort_results, tokenize
from refshelf.services.library import CollisionPolicy, LocalLibrary, UpdateResult

logger = structlog.get_logger(__name__)


def search_references(
    items: list[Reference],
    query: str,
    *,
    sort: str = "updated",
    order: str = "desc",
    limit: int = 0,
    offset: int = 0,
) -> Page[Reference]:
    """Search ``items`` and return one page of matches plus the total count.

    An empty query matches every record. Relevance ordering uses the match
    ranking; ``order="asc"`` reverses it.
    """
    field = resolve_sort_field(sort)
    tokens = tokenize(query)
    if not tokens:
        matches = list(items)
        if field == "relevance":
            field = "updated"
    elif field == "relevance":
        ranked = [result.reference for result in sort_results(match_all(items, tokens))]
        matches = ranked[::-1] if order == "asc" else ranked
    else:
        matches = [result.reference for result in match_all(items, tokens)]

    if field != "relevance":
        matches = sort_references(matches, field, order)
    page = paginate(matches, limit=limit, offset=offset)
    logger.debug("operations.search", query=query, tokens=len(tokens), total=page.total)
    return page


def list_references(
    items: list[Reference],
    *,
    sort: str = "updated",
    order: str = "desc",
    limit: int = 0,
    offset: int = 0,
) -> Page[Reference]:
    return paginate(sort_references(items, sort, order), limit=limit, offset=offset)


async def update_reference(
    library: LocalLibrary,
    identifier: str,
    changes: dict[str, Any],
    *,
    id_type: str = "id",
    on_id_collision: CollisionPolicy = "fail",
) -> UpdateResult:
    await library.all()
    result = library.update(identifier, changes, id_type=id_type, on_id_collision=on_id_collision)
    if result.updated:
        await library.save()
    logger.info("operations.update", identifier=identifier, updated=result.updated, error=result.error)
    return result


async def remove_reference(library: LocalLibrary, identifier: str, *, id_type: str = "id") -> Reference | None:
    await library.all()
    removed = library.remove(identifier, id_type)
    if removed is not None:
        await library.save()
    logger.info("operations.remove", identifier=identifier, removed=removed is not None)
    return removed


def cite_references(items: list[Reference], style: str = "bibliography") -> str:
    return format_citations(items, style)
