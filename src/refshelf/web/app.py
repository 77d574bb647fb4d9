"""Local JSON API for refshelf."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Literal, Optional

import httpx
from fastapi import Body, FastAPI, HTTPException, Query, status
from pydantic import BaseModel, Field, ValidationError

from refshelf import __version__
from refshelf.exporters import CITATION_STYLES
from refshelf.identifiers import allocate_id, ensure_custom_metadata, generate_id
from refshelf.models import Reference
from refshelf.search import Page
from refshelf.services import (
    AddPipeline,
    Importer,
    LocalLibrary,
    cite_references,
    default_registry,
    list_references,
    remove_reference,
    search_references,
    update_reference,
)
from refshelf.settings import Settings, get_settings


class AddRequest(BaseModel):
    inputs: list[str] = Field(default_factory=list)
    content: Optional[str] = None
    force: bool = False
    format: str = "auto"


class CiteRequest(BaseModel):
    identifiers: list[str]
    id_type: str = "id"
    style: Optional[str] = None


def _page_payload(page: Page[Reference]) -> dict[str, Any]:
    return {
        "items": [record.to_csl() for record in page.items],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
        "nextOffset": page.next_offset,
    }


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Factory used by uvicorn."""
    settings = settings or get_settings()
    app = FastAPI(title="refshelf", version=__version__)
    library = LocalLibrary(settings)

    async def fresh() -> LocalLibrary:
        # the CLI may have written the file since the last request
        await library.load()
        return library

    async def require(identifier: str) -> Reference:
        storage = await fresh()
        record = storage.find(identifier, "uuid")
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Reference {identifier} not found")
        return record

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/api/references")
    async def all_references() -> list[dict[str, Any]]:
        storage = await fresh()
        return [record.to_csl() for record in storage.records]

    @app.get("/api/references/{uuid}")
    async def get_reference(uuid: str) -> dict[str, Any]:
        return (await require(uuid)).to_csl()

    @app.post("/api/references", status_code=status.HTTP_201_CREATED)
    async def create_reference(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
        storage = await fresh()
        try:
            candidate = Reference.from_csl(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        candidate = candidate.model_copy(update={"custom": candidate.custom.model_copy(update={"uuid": None})})
        allocation = allocate_id(generate_id(candidate), storage.ids())
        record = storage.add(ensure_custom_metadata(candidate.model_copy(update={"id": allocation.id})))
        await storage.save()
        return record.to_csl()

    @app.put("/api/references/{uuid}")
    async def put_reference(
        uuid: str,
        changes: dict[str, Any] = Body(...),
        on_id_collision: Literal["fail", "suffix"] = Query("fail"),
    ) -> dict[str, Any]:
        await require(uuid)
        try:
            result = await update_reference(library, uuid, changes, id_type="uuid", on_id_collision=on_id_collision)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        if result.error == "id_collision":
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"id {changes.get('id')!r} is already used; retry with on_id_collision=suffix",
            )
        if result.record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Reference {uuid} not found")
        return {"item": result.record.to_csl(), "idChanged": result.id_changed, "newId": result.new_id}

    @app.delete("/api/references/{uuid}")
    async def delete_reference(uuid: str) -> dict[str, Any]:
        await require(uuid)
        removed = await remove_reference(library, uuid, id_type="uuid")
        if removed is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Reference {uuid} not found")
        return {"removed": removed.to_csl()}

    @app.post("/api/add")
    async def add(request: AddRequest) -> dict[str, Any]:
        if not request.inputs and not request.content:
            raise HTTPException(status_code=400, detail="Provide inputs or content")
        storage = await fresh()
        async with httpx.AsyncClient(timeout=30) as client:
            pipeline = AddPipeline(storage, Importer(default_registry(client, settings)))
            try:
                if request.content:
                    report = await pipeline.add_content(request.content, force=request.force, fmt=request.format)
                else:
                    report = await pipeline.add(request.inputs, force=request.force, fmt=request.format)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        return asdict(report)

    @app.get("/api/search")
    async def search(
        q: str = "",
        sort: Optional[str] = None,
        order: Literal["asc", "desc"] = "desc",
        limit: int = Query(0, ge=0),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        storage = await fresh()
        try:
            page = search_references(
                storage.records, q, sort=sort or "relevance", order=order, limit=limit, offset=offset
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _page_payload(page)

    @app.get("/api/list")
    async def list_all(
        sort: Optional[str] = None,
        order: Optional[Literal["asc", "desc"]] = None,
        limit: Optional[int] = Query(None, ge=0),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        storage = await fresh()
        try:
            page = list_references(
                storage.records,
                sort=sort or settings.default_sort,
                order=order or settings.default_order,
                limit=settings.default_limit if limit is None else limit,
                offset=offset,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _page_payload(page)

    @app.post("/api/cite")
    async def cite(request: CiteRequest) -> dict[str, Any]:
        style = request.style or settings.citation_style
        if style not in CITATION_STYLES:
            raise HTTPException(status_code=400, detail=f"Unknown style {style!r}")
        storage = await fresh()
        found: list[Reference] = []
        missing: list[str] = []
        for identifier in request.identifiers:
            try:
                record = storage.find(identifier, request.id_type)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            if record is None:
                missing.append(identifier)
            else:
                found.append(record)
        return {"citation": cite_references(found, style), "missing": missing}

    return app
