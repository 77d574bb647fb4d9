"""Add pipeline: import inputs, drop duplicates, allocate ids and persist."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import structlog
from pydantic import ValidationError

from refshelf.identifiers import allocate_id, ensure_custom_metadata, generate_id
from refshelf.models import Reference
from refshelf.services.duplicates import detect_duplicate
from refshelf.services.importer import Importer, ImportResult
from refshelf.services.library import LocalLibrary

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class AddedItem:
    source: str
    id: str
    uuid: str
    title: str | None
    id_changed: bool = False
    original_id: str | None = None


@dataclass(slots=True)
class SkippedItem:
    source: str
    existing_id: str
    duplicate_type: str


@dataclass(slots=True)
class FailedItem:
    source: str
    error: str


@dataclass(slots=True)
class AddReport:
    added: list[AddedItem] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)


class AddPipeline:
    """Coordinates import, duplicate detection, id allocation and persistence."""

    def __init__(self, library: LocalLibrary, importer: Importer | None = None) -> None:
        self._library = library
        self._importer = importer or Importer()

    async def add(self, inputs: Sequence[str], *, force: bool = False, fmt: str = "auto") -> AddReport:
        imported = await self._importer.import_inputs(list(inputs), fmt)
        return await self.add_imported(imported, force=force)

    async def add_content(self, content: str, *, source: str = "stdin", force: bool = False, fmt: str = "auto") -> AddReport:
        imported = self._importer.parse_content(content, source, fmt)
        return await self.add_imported(imported, force=force)

    async def add_imported(self, imported: list[ImportResult], *, force: bool = False) -> AddReport:
        """Add already-imported items in order.

        Each candidate is checked against the library as it stands, which
        includes candidates added earlier in the same batch. Nothing is
        written unless at least one item was added.
        """
        await self._library.all()
        report = AddReport()

        for result in imported:
            if not result.success:
                report.failed.append(FailedItem(source=result.source, error=result.error or "Import failed"))
                continue
            try:
                candidate = Reference.from_csl(result.item or {})
            except ValidationError as exc:
                report.failed.append(FailedItem(source=result.source, error=f"Invalid CSL-JSON: {exc}"))
                continue
            # imported uuids are not trusted; every new record gets its own
            candidate = candidate.model_copy(
                update={"custom": candidate.custom.model_copy(update={"uuid": None})}
            )

            if not force:
                duplicate = detect_duplicate(candidate, self._library.records)
                if duplicate.first is not None:
                    report.skipped.append(
                        SkippedItem(
                            source=result.source,
                            existing_id=duplicate.first.existing.id,
                            duplicate_type=duplicate.first.type,
                        )
                    )
                    logger.info(
                        "pipeline.duplicate",
                        source=result.source,
                        existing=duplicate.first.existing.id,
                        kind=duplicate.first.type,
                    )
                    continue

            # keys carried by imported records are replaced by the generated id
            allocation = allocate_id(generate_id(candidate), self._library.ids())
            candidate = ensure_custom_metadata(candidate.model_copy(update={"id": allocation.id}))
            record = self._library.add(candidate)
            report.added.append(
                AddedItem(
                    source=result.source,
                    id=record.id,
                    uuid=record.uuid or "",
                    title=record.title,
                    id_changed=allocation.changed,
                    original_id=allocation.original_id if allocation.changed else None,
                )
            )

        if report.added:
            await self._library.save()
        logger.info(
            "pipeline.summary",
            added=len(report.added),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )
        return report
