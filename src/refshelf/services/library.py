"""Reference library persisted as a CSL-JSON array on disk."""

from __future__ import annotations

import asyncio
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import ValidationError

from refshelf.errors import LibraryError
from refshelf.identifiers import allocate_id, ensure_custom_metadata, generate_id
from refshelf.models import Reference
from refshelf.settings import Settings
from refshelf.utils import normalize_doi, utc_now

logger = structlog.get_logger(__name__)

IdType = Literal["id", "uuid", "doi", "pmid", "isbn"]
ID_TYPES: tuple[str, ...] = ("id", "uuid", "doi", "pmid", "isbn")
CollisionPolicy = Literal["fail", "suffix"]


@dataclass(slots=True)
class UpdateResult:
    updated: bool
    record: Reference | None = None
    id_changed: bool = False
    new_id: str | None = None
    error: Literal["not_found", "id_collision"] | None = None


class LocalLibrary:
    """In-memory view of the library file with uuid/id/DOI/PMID indexes.

    File I/O runs in a worker thread under an asyncio lock; lookups and
    mutations are synchronous and touch memory only until :meth:`save`.
    """

    def __init__(self, settings: Settings, path: Path | None = None) -> None:
        self._settings = settings
        self._path = path or settings.library_path
        self._lock = asyncio.Lock()
        self._records: list[Reference] = []
        self._by_uuid: dict[str, Reference] = {}
        self._by_id: dict[str, Reference] = {}
        self._by_doi: dict[str, Reference] = {}
        self._by_pmid: dict[str, Reference] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def records(self) -> list[Reference]:
        return list(self._records)

    async def load(self) -> list[Reference]:
        async with self._lock:
            records = await asyncio.to_thread(self._load_sync)
        self._reset(records)
        self._loaded = True
        logger.info("library.loaded", path=str(self._path), items=len(records))
        return self.records

    async def all(self) -> list[Reference]:
        if not self._loaded:
            await self.load()
        return self.records

    async def save(self) -> None:
        payload = [record.to_csl() for record in self._records]
        async with self._lock:
            await asyncio.to_thread(self._save_sync, payload)
        logger.info("library.saved", path=str(self._path), items=len(payload))

    # Lookups ---------------------------------------------------------------

    def ids(self) -> list[str]:
        return [record.id for record in self._records]

    def find(self, identifier: str, id_type: str = "id") -> Reference | None:
        if id_type == "id":
            return self._by_id.get(identifier)
        if id_type == "uuid":
            return self._by_uuid.get(identifier)
        if id_type == "doi":
            return self._by_doi.get(normalize_doi(identifier))
        if id_type == "pmid":
            return self._by_pmid.get(identifier.strip().removeprefix("PMID:").strip())
        if id_type == "isbn":
            for record in self._records:
                if record.ISBN == identifier:
                    return record
            return None
        raise ValueError(f"Unknown id type {id_type!r}; choose from {', '.join(ID_TYPES)}")

    # Mutations -------------------------------------------------------------

    def add(self, record: Reference) -> Reference:
        """Add ``record``, generating a collision-free id when it has none."""
        if not record.id.strip():
            allocation = allocate_id(generate_id(record), self.ids())
            record = record.model_copy(update={"id": allocation.id})
        record = ensure_custom_metadata(record)
        self._records.append(record)
        self._index(record)
        logger.debug("library.added", id=record.id, uuid=record.uuid)
        return record

    def update(
        self,
        identifier: str,
        changes: dict[str, Any],
        *,
        id_type: str = "id",
        on_id_collision: CollisionPolicy = "fail",
    ) -> UpdateResult:
        """Merge ``changes`` (CSL keys) into a record.

        ``uuid`` and ``created_at`` survive any change; ``timestamp`` is
        refreshed. A requested id that belongs to another record either
        fails (``id_collision``) or is suffixed, depending on the policy.
        """
        current = self.find(identifier, id_type)
        if current is None:
            return UpdateResult(updated=False, error="not_found")

        requested_id = changes.get("id") or current.id
        new_id = requested_id
        id_changed = False
        others = [value for value in self.ids() if value != current.id]
        if requested_id != current.id and requested_id.lower() in {value.lower() for value in others}:
            if on_id_collision == "fail":
                return UpdateResult(updated=False, error="id_collision")
            new_id = allocate_id(requested_id, others).id
            id_changed = True

        existing = current.to_csl()
        custom = {
            **existing.get("custom", {}),
            **(changes.get("custom") or {}),
            "uuid": current.custom.uuid,
            "created_at": current.custom.created_at or utc_now(),
            "timestamp": utc_now(),
        }
        merged = {**existing, **changes, "id": new_id, "custom": custom}
        merged["type"] = changes.get("type") or existing.get("type", "article")
        merged = {key: value for key, value in merged.items() if value is not None}
        try:
            record = Reference.from_csl(merged)
        except ValidationError as exc:
            raise ValueError(f"Invalid changes for {current.id}: {exc}") from exc

        position = self._records.index(current)
        self._unindex(current)
        self._records[position] = record
        self._index(record)
        logger.debug("library.updated", id=record.id, id_changed=id_changed)
        return UpdateResult(updated=True, record=record, id_changed=id_changed, new_id=new_id if id_changed else None)

    def remove(self, identifier: str, id_type: str = "id") -> Reference | None:
        record = self.find(identifier, id_type)
        if record is None:
            return None
        self._records.remove(record)
        self._unindex(record)
        logger.debug("library.removed", id=record.id, uuid=record.uuid)
        return record

    # Internal helpers -----------------------------------------------------

    def _reset(self, records: list[Reference]) -> None:
        self._records = []
        self._by_uuid.clear()
        self._by_id.clear()
        self._by_doi.clear()
        self._by_pmid.clear()
        for record in records:
            self._records.append(record)
            self._index(record)

    def _index(self, record: Reference) -> None:
        if record.uuid:
            self._by_uuid[record.uuid] = record
        self._by_id[record.id] = record
        if record.DOI:
            self._by_doi[normalize_doi(record.DOI)] = record
        if record.PMID:
            self._by_pmid[record.PMID] = record

    def _unindex(self, record: Reference) -> None:
        if record.uuid:
            self._by_uuid.pop(record.uuid, None)
        if self._by_id.get(record.id) is record:
            del self._by_id[record.id]
        if record.DOI and self._by_doi.get(normalize_doi(record.DOI)) is record:
            del self._by_doi[normalize_doi(record.DOI)]
        if record.PMID and self._by_pmid.get(record.PMID) is record:
            del self._by_pmid[record.PMID]

    def _load_sync(self) -> list[Reference]:
        if not self._path.exists():
            return []
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8") or "[]")
        except json.JSONDecodeError as exc:
            raise LibraryError(self._path, f"invalid JSON ({exc})") from exc
        if not isinstance(payload, list):
            raise LibraryError(self._path, "expected a JSON array of CSL items")
        records: list[Reference] = []
        for position, item in enumerate(payload):
            try:
                record = Reference.from_csl(item)
            except ValidationError as exc:
                raise LibraryError(self._path, f"item {position} is not valid CSL-JSON ({exc})") from exc
            records.append(ensure_custom_metadata(record))
        return records

    def _save_sync(self, payload: list[dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_name(f".{self._path.name}.tmp")
        temp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        os.replace(temp_path, self._path)
