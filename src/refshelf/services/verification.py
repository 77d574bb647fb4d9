"""Check references against Crossref for retractions and other updates."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote

import httpx
import structlog

from refshelf.models import CheckSummary, Reference
from refshelf.services.library import LocalLibrary
from refshelf.settings import Settings
from refshelf.utils import normalize_doi, utc_now

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class CheckResult:
    id: str
    doi: str | None
    status: str
    findings: list[str]


class ReferenceChecker:
    """Checks Crossref relations of each reference DOI."""

    _RELATION_FLAGS = {
        "is-retracted-by": "retracted",
        "is-corrected-by": "corrected",
        "is-updated-by": "updated",
        "is-replaced-by": "replaced",
    }

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def check(self, record: Reference) -> CheckResult:
        if not record.DOI:
            return CheckResult(id=record.id, doi=None, status="skipped", findings=["no DOI"])
        doi = normalize_doi(record.DOI)
        try:
            message = await self._fetch_crossref_message(doi)
        except httpx.HTTPError as exc:
            logger.warning("check.crossref_error", doi=doi, error=str(exc))
            return CheckResult(id=record.id, doi=doi, status="error", findings=[str(exc) or type(exc).__name__])

        relations = message.get("relation", {}) or {}
        findings: list[str] = []
        status = "ok"
        for relation_type, human in self._RELATION_FLAGS.items():
            hits = relations.get(relation_type)
            if not hits:
                continue
            status = human
            ids = [entry.get("id") for entry in hits if entry.get("id")]
            findings.append(f"{human} by {', '.join(ids)}" if ids else human)
            if relation_type == "is-retracted-by":
                break

        return CheckResult(id=record.id, doi=doi, status=status, findings=findings)

    async def check_many(self, records: Iterable[Reference]) -> list[CheckResult]:
        return await asyncio.gather(*(self.check(record) for record in records))

    async def _fetch_crossref_message(self, doi: str) -> dict:
        url = f"{self._settings.crossref_base_url}/{quote(doi)}"
        response = await self._client.get(url, timeout=20)
        response.raise_for_status()
        payload = response.json()
        return payload.get("message", {})


async def check_references(
    library: LocalLibrary,
    checker: ReferenceChecker,
    identifiers: list[str] | None = None,
    *,
    id_type: str = "id",
) -> list[CheckResult]:
    """Check the given references (all when ``identifiers`` is empty) and store ``custom.check``."""
    records = await library.all()
    if identifiers:
        records = [record for record in (library.find(value, id_type) for value in identifiers) if record]
    results = await checker.check_many(records)
    checked_at = utc_now()
    changed = False
    for result in results:
        if result.status == "skipped":
            continue
        summary = CheckSummary(checked_at=checked_at, status=result.status, findings=result.findings)
        update = library.update(result.id, {"custom": {"check": summary.model_dump()}})
        changed = changed or update.updated
    if changed:
        await library.save()
    logger.info("check.summary", checked=len(results), flagged=sum(r.status not in {"ok", "skipped"} for r in results))
    return results
