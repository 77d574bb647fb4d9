"""Resolvers turning DOIs, PMIDs and ISBNs into CSL metadata over HTTP."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import structlog

from refshelf.settings import Settings
from refshelf.utils import normalize_doi

logger = structlog.get_logger(__name__)

CROSSREF_TO_CSL_TYPE = {
    "journal-article": "article-journal",
    "proceedings-article": "paper-conference",
    "book-chapter": "chapter",
    "book-section": "chapter",
    "book": "book",
    "monograph": "book",
    "edited-book": "book",
    "reference-book": "book",
    "dissertation": "thesis",
    "report": "report",
    "posted-content": "article",
    "dataset": "dataset",
}

_PMID_ID = re.compile(r"^pmid:(\d+)$")


@dataclass(slots=True)
class FetchResult:
    identifier: str
    provider: str
    item: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.item is not None


class ResultCache(Protocol):
    def get(self, key: str) -> FetchResult | None:
        ...

    def set(self, key: str, value: FetchResult) -> None:
        ...


class MemoryCache:
    """Per-session cache of successful lookups keyed by ``provider:identifier``."""

    def __init__(self) -> None:
        self._entries: dict[str, FetchResult] = {}

    def get(self, key: str) -> FetchResult | None:
        return self._entries.get(key)

    def set(self, key: str, value: FetchResult) -> None:
        if value.success:
            self._entries[key] = value


class MetadataResolver(Protocol):
    """Protocol for identifier resolvers."""

    name: str
    kind: str

    async def resolve_many(self, identifiers: list[str]) -> list[FetchResult]:
        ...


class CrossrefResolver:
    """Fetches DOI metadata from the Crossref Works API."""

    name = "crossref"
    kind = "doi"

    def __init__(self, client: httpx.AsyncClient, settings: Settings, cache: ResultCache | None = None) -> None:
        self._client = client
        self._settings = settings
        self._cache = cache or MemoryCache()

    async def resolve(self, doi: str) -> FetchResult:
        doi = normalize_doi(doi)
        cached = self._cache.get(f"{self.name}:{doi}")
        if cached is not None:
            return cached
        logger.info("resolver.attempt", resolver=self.name, identifier=doi)
        try:
            message = await self.fetch_message(doi)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            reason = "DOI not found" if status == 404 else f"HTTP {status}"
            logger.warning("resolver.error", resolver=self.name, identifier=doi, status=status)
            return FetchResult(identifier=doi, provider=self.name, error=f"{reason}: {doi}")
        except httpx.HTTPError as exc:
            logger.warning("resolver.error", resolver=self.name, identifier=doi, error=str(exc))
            return FetchResult(identifier=doi, provider=self.name, error=str(exc) or type(exc).__name__)
        if not message:
            logger.info("resolver.empty", identifier=doi)
            return FetchResult(identifier=doi, provider=self.name, error=f"No data returned for DOI {doi}")
        result = FetchResult(identifier=doi, provider=self.name, item=crossref_to_csl(message))
        self._cache.set(f"{self.name}:{doi}", result)
        return result

    async def resolve_many(self, identifiers: list[str]) -> list[FetchResult]:
        return [await self.resolve(doi) for doi in identifiers]

    async def fetch_message(self, doi: str) -> dict[str, Any]:
        url = f"{self._settings.crossref_base_url}/{quote(doi)}"
        response = await self._client.get(url, timeout=30)
        response.raise_for_status()
        data = response.json()
        return data.get("message", data)


class PubMedResolver:
    """Fetches CSL-JSON for PMIDs from the NCBI citation exporter in one batch."""

    name = "pubmed"
    kind = "pmid"

    def __init__(self, client: httpx.AsyncClient, settings: Settings, cache: ResultCache | None = None) -> None:
        self._client = client
        self._settings = settings
        self._cache = cache or MemoryCache()

    async def resolve_many(self, identifiers: list[str]) -> list[FetchResult]:
        pending = [pmid for pmid in identifiers if self._cache.get(f"{self.name}:{pmid}") is None]
        found: dict[str, dict[str, Any]] = {}
        failure: str | None = None
        if pending:
            logger.info("resolver.attempt", resolver=self.name, identifiers=pending)
            try:
                found = await self._fetch(pending)
            except httpx.HTTPStatusError as exc:
                failure = f"HTTP {exc.response.status_code}"
            except httpx.HTTPError as exc:
                failure = str(exc) or type(exc).__name__
            if failure:
                logger.warning("resolver.error", resolver=self.name, error=failure)

        results: list[FetchResult] = []
        for pmid in identifiers:
            cached = self._cache.get(f"{self.name}:{pmid}")
            if cached is not None:
                results.append(cached)
                continue
            if pmid in found:
                result = FetchResult(identifier=pmid, provider=self.name, item=found[pmid])
                self._cache.set(f"{self.name}:{pmid}", result)
            else:
                result = FetchResult(
                    identifier=pmid, provider=self.name, error=failure or f"PMID {pmid} not found"
                )
            results.append(result)
        return results

    async def _fetch(self, pmids: list[str]) -> dict[str, dict[str, Any]]:
        params: list[tuple[str, str]] = [("format", "csl")]
        params.extend(("id", pmid) for pmid in pmids)
        if self._settings.pubmed_email:
            params.append(("email", self._settings.pubmed_email))
        if self._settings.pubmed_api_key:
            params.append(("api_key", self._settings.pubmed_api_key))
        response = await self._client.get(self._settings.pubmed_base_url, params=params, timeout=30)
        response.raise_for_status()
        payload = response.json()
        items = payload if isinstance(payload, list) else [payload]
        found: dict[str, dict[str, Any]] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            match = _PMID_ID.match(str(item.get("id", "")))
            if match:
                item = {**item, "PMID": item.get("PMID") or match.group(1)}
                item.pop("id", None)
                found[match.group(1)] = item
        return found


class OpenLibraryResolver:
    """Fetches book metadata for ISBNs from Open Library."""

    name = "openlibrary"
    kind = "isbn"
    base_url = "https://openlibrary.org/api/books"

    def __init__(self, client: httpx.AsyncClient, cache: ResultCache | None = None) -> None:
        self._client = client
        self._cache = cache or MemoryCache()

    async def resolve_many(self, identifiers: list[str]) -> list[FetchResult]:
        results: list[FetchResult] = []
        for isbn in identifiers:
            cached = self._cache.get(f"{self.name}:{isbn}")
            if cached is not None:
                results.append(cached)
                continue
            params = {"bibkeys": f"ISBN:{isbn}", "format": "json", "jscmd": "data"}
            try:
                response = await self._client.get(self.base_url, params=params, timeout=30)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("resolver.error", resolver=self.name, identifier=isbn, error=str(exc))
                results.append(FetchResult(identifier=isbn, provider=self.name, error=str(exc) or "HTTP error"))
                continue
            book = response.json().get(f"ISBN:{isbn}")
            if not book:
                results.append(FetchResult(identifier=isbn, provider=self.name, error=f"ISBN {isbn} not found"))
                continue
            result = FetchResult(identifier=isbn, provider=self.name, item=openlibrary_to_csl(isbn, book))
            self._cache.set(f"{self.name}:{isbn}", result)
            results.append(result)
        return results


class ResolverRegistry:
    """Routes identifiers to the resolver registered for their kind."""

    def __init__(self, resolvers: Iterable[MetadataResolver]) -> None:
        self._resolvers = {resolver.kind: resolver for resolver in resolvers}

    def supports(self, kind: str) -> bool:
        return kind in self._resolvers

    async def resolve_many(self, kind: str, identifiers: list[str]) -> list[FetchResult]:
        resolver = self._resolvers.get(kind)
        if resolver is None:
            logger.warning("registry.miss", kind=kind)
            return [
                FetchResult(identifier=value, provider="none", error=f"No resolver for {kind} identifiers")
                for value in identifiers
            ]
        logger.debug("registry.invoke", resolver=resolver.name, count=len(identifiers))
        return await resolver.resolve_many(identifiers)


def default_registry(client: httpx.AsyncClient, settings: Settings, cache: ResultCache | None = None) -> ResolverRegistry:
    """Crossref for DOIs, PubMed for PMIDs and Open Library for ISBNs, sharing one cache."""
    cache = cache or MemoryCache()
    return ResolverRegistry(
        [
            CrossrefResolver(client=client, settings=settings, cache=cache),
            PubMedResolver(client=client, settings=settings, cache=cache),
            OpenLibraryResolver(client=client, cache=cache),
        ]
    )


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def crossref_to_csl(message: dict[str, Any]) -> dict[str, Any]:
    """Crossref works are near CSL; flatten list-valued titles and map types."""
    item: dict[str, Any] = {
        "type": CROSSREF_TO_CSL_TYPE.get(message.get("type", ""), "article"),
        "DOI": message.get("DOI"),
        "title": _first(message.get("title")),
        "container-title": _first(message.get("container-title")),
        "publisher": message.get("publisher"),
        "volume": message.get("volume"),
        "issue": message.get("issue"),
        "page": message.get("page"),
        "URL": message.get("URL"),
        "ISSN": _first(message.get("ISSN")),
        "ISBN": _first(message.get("ISBN")),
        "abstract": (message.get("abstract") or "").strip() or None,
        "language": message.get("language"),
    }
    authors = [
        {key: entry[key] for key in ("family", "given", "literal") if entry.get(key)}
        for entry in message.get("author", []) or []
    ]
    authors = [author for author in authors if author]
    if not authors and message.get("author"):
        authors = [{"literal": entry.get("name")} for entry in message["author"] if entry.get("name")]
    if authors:
        item["author"] = authors
    for key in ("issued", "published-print", "published-online", "created"):
        parts = (message.get(key) or {}).get("date-parts") or []
        if parts and parts[0] and parts[0][0]:
            item["issued"] = {"date-parts": [parts[0]]}
            break
    return {key: value for key, value in item.items() if value not in (None, "")}


def openlibrary_to_csl(isbn: str, book: dict[str, Any]) -> dict[str, Any]:
    item: dict[str, Any] = {"type": "book", "ISBN": isbn, "title": book.get("title")}
    authors = []
    for author in book.get("authors", []) or []:
        name = (author.get("name") or "").strip()
        if " " in name:
            given, family = name.rsplit(" ", 1)
            authors.append({"family": family, "given": given})
        elif name:
            authors.append({"literal": name})
    if authors:
        item["author"] = authors
    publishers = book.get("publishers") or []
    if publishers:
        item["publisher"] = publishers[0].get("name")
    year = re.search(r"(\d{4})", book.get("publish_date") or "")
    if year:
        item["issued"] = {"date-parts": [[int(year.group(1))]]}
    if book.get("url"):
        item["URL"] = book["url"]
    return {key: value for key, value in item.items() if value}
