"""Command-line interface for refshelf."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

import httpx
import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from refshelf import exporters
from refshelf.errors import RefshelfError
from refshelf.models import Reference
from refshelf.services import (
    AddPipeline,
    AddReport,
    AttachmentManager,
    CheckResult,
    Importer,
    LocalLibrary,
    ReferenceChecker,
    check_references,
    cite_references,
    default_registry,
    list_references,
    remove_reference,
    search_references,
    update_reference,
)
from refshelf.services.importer import INPUT_FORMATS
from refshelf.services.library import ID_TYPES
from refshelf.settings import Settings, configure_logging, get_settings

T = TypeVar("T")

console = Console()
app = typer.Typer(help="refshelf: a CSL-JSON reference manager")
attach_app = typer.Typer(help="Files attached to references")
app.add_typer(attach_app, name="attach")
logger = structlog.get_logger(__name__)

LIST_FORMATS = ("table", *exporters.OUTPUT_FORMATS)


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    configure_logging(Settings.load().log_level)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except RefshelfError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc


def _check_choice(value: str, choices: tuple[str, ...], name: str) -> str:
    if value not in choices:
        raise typer.BadParameter(f"{name} must be one of: {', '.join(choices)}.")
    return value


def _print_table(records: list[Reference], title: str) -> None:
    table = Table(title=title)
    table.add_column("ID")
    table.add_column("Title", overflow="fold")
    table.add_column("Authors")
    table.add_column("Year")
    table.add_column("DOI / PMID")
    for record in records:
        authors = ", ".join(name.family or name.literal or "" for name in record.author or []) or "—"
        identifier = record.DOI or (f"PMID:{record.PMID}" if record.PMID else "—")
        table.add_row(
            escape(record.id),
            escape(record.title or "—"),
            escape(authors),
            str(record.year or "—"),
            escape(identifier),
        )
    console.print(table)


def _emit(records: list[Reference], fmt: str, title: str) -> None:
    if fmt == "table":
        _print_table(records, title)
    else:
        typer.echo(exporters.render(records, fmt))


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Output settings as JSON"),
) -> None:
    """Display the resolved settings."""
    settings = get_settings()
    if json_output:
        typer.echo(settings.model_dump_json(indent=2))
        return
    table = Table(title="refshelf settings")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key, value in settings.model_dump().items():
        table.add_row(key, escape(str(value)))
    table.add_row("library_path", escape(str(settings.library_path)))
    table.add_row("attachments_path", escape(str(settings.attachments_path)))
    console.print(table)


def _print_add_report(report: AddReport) -> None:
    for item in report.added:
        renamed = f" (renamed from {escape(item.original_id)})" if item.id_changed and item.original_id else ""
        console.print(f"[green]Added[/green] {escape(item.id)}{renamed}: {escape(item.title or '(no title)')}")
    for item in report.skipped:
        console.print(
            f"[yellow]Skipped[/yellow] {escape(item.source)}: duplicate of {escape(item.existing_id)} "
            f"({item.duplicate_type})"
        )
    for item in report.failed:
        console.print(f"[red]Failed[/red] {escape(item.source)}: {escape(item.error)}")
    console.print(
        f"{len(report.added)} added, {len(report.skipped)} skipped, {len(report.failed)} failed"
    )


@app.command()
def add(
    inputs: Optional[list[str]] = typer.Argument(
        None, help="Files (.json, .bib, .ris, .nbib), DOIs, PMIDs or ISBN:... values; reads stdin when empty"
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Add even when a duplicate exists"),
    format: str = typer.Option("auto", "--format", help="Input format"),
) -> None:
    """Add references from files, identifiers or stdin."""
    fmt = _check_choice(format.lower(), INPUT_FORMATS, "--format")
    content: str | None = None
    if not inputs:
        if sys.stdin.isatty():
            raise typer.BadParameter("Give at least one input or pipe content on stdin.")
        content = sys.stdin.read()
        if not content.strip():
            raise typer.BadParameter("stdin was empty.")

    async def runner() -> AddReport:
        settings = get_settings()
        library = LocalLibrary(settings)
        async with httpx.AsyncClient(timeout=30) as client:
            pipeline = AddPipeline(library, Importer(default_registry(client, settings)))
            if content is not None:
                return await pipeline.add_content(content, force=force, fmt=fmt)
            return await pipeline.add(inputs or [], force=force, fmt=fmt)

    report = _run(runner())
    _print_add_report(report)
    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def search(
    query: str = typer.Argument(..., help='Query, e.g. author:smith "deep learning" year:2020'),
    sort: str = typer.Option("relevance", help="relevance, updated, created, published, author, title"),
    order: str = typer.Option("desc", help="asc or desc"),
    limit: int = typer.Option(0, min=0, help="Maximum results (0 = all)"),
    offset: int = typer.Option(0, min=0, help="Skip this many results"),
    format: str = typer.Option("table", "--format", help=f"One of {', '.join(LIST_FORMATS)}"),
) -> None:
    """Search the library."""
    fmt = _check_choice(format, LIST_FORMATS, "--format")
    order = _check_choice(order, ("asc", "desc"), "--order")

    async def runner() -> list[Reference]:
        library = LocalLibrary(get_settings())
        try:
            page = search_references(await library.all(), query, sort=sort, order=order, limit=limit, offset=offset)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        return page.items

    items = _run(runner())
    if not items and fmt == "table":
        console.print("[yellow]No matches. Try fewer or broader terms.")
        return
    _emit(items, fmt, "Search Results")


@app.command("list")
def list_items(
    sort: Optional[str] = typer.Option(None, help="updated, created, published, author, title"),
    order: Optional[str] = typer.Option(None, help="asc or desc"),
    limit: Optional[int] = typer.Option(None, min=0, help="Maximum results (0 = all)"),
    offset: int = typer.Option(0, min=0, help="Skip this many results"),
    format: str = typer.Option("table", "--format", help=f"One of {', '.join(LIST_FORMATS)}"),
) -> None:
    """List references in the library."""
    fmt = _check_choice(format, LIST_FORMATS, "--format")
    settings = get_settings()
    order_value = _check_choice(order or settings.default_order, ("asc", "desc"), "--order")

    async def runner() -> list[Reference]:
        library = LocalLibrary(settings)
        try:
            page = list_references(
                await library.all(),
                sort=sort or settings.default_sort,
                order=order_value,
                limit=settings.default_limit if limit is None else limit,
                offset=offset,
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        return page.items

    items = _run(runner())
    if not items and fmt == "table":
        console.print("[yellow]Library is empty. Use `refshelf add` to import references.")
        return
    _emit(items, fmt, "References")


async def _resolve(library: LocalLibrary, identifiers: list[str], id_type: str) -> tuple[list[Reference], list[str]]:
    await library.all()
    found: list[Reference] = []
    missing: list[str] = []
    for identifier in identifiers:
        record = library.find(identifier, id_type)
        if record is None:
            missing.append(identifier)
        else:
            found.append(record)
    return found, missing


@app.command()
def cite(
    identifiers: list[str] = typer.Argument(..., help="Reference ids (or uuids with --id-type uuid)"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
    style: Optional[str] = typer.Option(None, help="bibliography or in-text"),
) -> None:
    """Format citations for the given references."""
    _check_choice(id_type, ID_TYPES, "--id-type")
    settings = get_settings()
    chosen = _check_choice(style or settings.citation_style, exporters.CITATION_STYLES, "--style")

    found, missing = _run(_resolve(LocalLibrary(settings), identifiers, id_type))
    for identifier in missing:
        console.print(f"[red]Not found:[/red] {escape(identifier)}")
    if found:
        typer.echo(cite_references(found, chosen))
    if missing:
        raise typer.Exit(code=1)


@app.command()
def export(
    identifiers: Optional[list[str]] = typer.Argument(None, help="References to export (all when omitted)"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
    format: str = typer.Option("json", "--format", help=f"One of {', '.join(exporters.OUTPUT_FORMATS)}"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file"),
) -> None:
    """Export references as CSL-JSON, BibTeX or citation keys."""
    fmt = _check_choice(format.lower(), exporters.OUTPUT_FORMATS, "--format")
    _check_choice(id_type, ID_TYPES, "--id-type")

    async def runner() -> tuple[list[Reference], list[str]]:
        library = LocalLibrary(get_settings())
        if identifiers:
            return await _resolve(library, identifiers, id_type)
        return await library.all(), []

    items, missing = _run(runner())
    for identifier in missing:
        console.print(f"[red]Not found:[/red] {escape(identifier)}")
    if missing:
        raise typer.Exit(code=1)
    payload = exporters.render(items, fmt)
    if output:
        output.write_text(payload + "\n", encoding="utf-8")
        console.print(f"[green]Wrote {len(items)} references as {fmt} to {escape(str(output))}")
    else:
        typer.echo(payload)


def _parse_assignments(assignments: list[str]) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    for assignment in assignments:
        key, sep, raw = assignment.partition("=")
        key = key.strip()
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {assignment!r}.")
        value: Any = raw
        if raw == "":
            value = None
        elif raw[:1] in "[{":
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise typer.BadParameter(f"Invalid JSON for {key}: {exc}") from exc
        changes[key] = value
    return changes


@app.command()
def update(
    identifier: str = typer.Argument(..., help="Reference id (or uuid with --id-type uuid)"),
    assignments: Optional[list[str]] = typer.Option(
        None, "--set", "-s", help="field=value; JSON for lists/objects; empty value clears the field"
    ),
    from_file: Optional[Path] = typer.Option(None, "--file", help="JSON object with the fields to change"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
    suffix: bool = typer.Option(False, "--suffix-on-collision", help="Suffix a new id that is already taken"),
) -> None:
    """Change fields of a reference."""
    _check_choice(id_type, ID_TYPES, "--id-type")
    changes: dict[str, Any] = {}
    if from_file:
        if not from_file.is_file():
            raise typer.BadParameter(f"{from_file} does not exist.")
        try:
            loaded = json.loads(from_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"{from_file} is not valid JSON: {exc}") from exc
        if not isinstance(loaded, dict):
            raise typer.BadParameter(f"{from_file} must hold a JSON object.")
        changes.update(loaded)
    changes.update(_parse_assignments(assignments or []))
    if not changes:
        raise typer.BadParameter("Nothing to change; use --set or --file.")

    async def runner():
        library = LocalLibrary(get_settings())
        try:
            return await update_reference(
                library,
                identifier,
                changes,
                id_type=id_type,
                on_id_collision="suffix" if suffix else "fail",
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    result = _run(runner())
    if result.error == "not_found":
        console.print(f"[red]No reference with {id_type} '{escape(identifier)}'.")
        raise typer.Exit(code=1)
    if result.error == "id_collision":
        console.print(
            f"[red]The id '{escape(str(changes.get('id')))}' is already used. "
            "Pick another or pass --suffix-on-collision."
        )
        raise typer.Exit(code=1)
    message = f"[green]Updated[/green] {escape(result.record.id)}"
    if result.id_changed:
        message += f" (id suffixed to {escape(result.new_id or '')})"
    console.print(message)


@app.command()
def remove(
    identifier: str = typer.Argument(..., help="Reference id (or uuid with --id-type uuid)"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove a reference from the library."""
    _check_choice(id_type, ID_TYPES, "--id-type")
    settings = get_settings()

    async def runner() -> Reference | None:
        library = LocalLibrary(settings)
        await library.all()
        record = library.find(identifier, id_type)
        if record is None:
            return None
        if not yes and not typer.confirm(f"Remove {record.id}: {record.title or '(no title)'}?"):
            raise typer.Abort()
        return await remove_reference(library, record.id)

    removed = _run(runner())
    if removed is None:
        console.print(f"[red]No reference with {id_type} '{escape(identifier)}'.")
        raise typer.Exit(code=1)
    console.print(f"[green]Removed[/green] {escape(removed.id)}: {escape(removed.title or '(no title)')}")
    if removed.custom.attachments:
        directory = settings.attachments_path / removed.custom.attachments.directory
        console.print(f"[yellow]Attachments were kept in {escape(str(directory))}")


def _render_check_table(results: list[CheckResult]) -> None:
    table = Table(title="Check Results")
    table.add_column("ID")
    table.add_column("DOI")
    table.add_column("Status")
    table.add_column("Findings")
    for result in results:
        findings = "; ".join(result.findings) if result.findings else "—"
        status_color = {
            "retracted": "red",
            "updated": "yellow",
            "corrected": "yellow",
            "replaced": "yellow",
            "error": "red",
            "skipped": "dim",
        }.get(result.status, "green")
        table.add_row(
            escape(result.id),
            escape(result.doi or "—"),
            f"[{status_color}]{result.status}[/{status_color}]",
            escape(findings),
        )
    console.print(table)


@app.command()
def check(
    identifiers: Optional[list[str]] = typer.Argument(None, help="References to check"),
    all: bool = typer.Option(False, "--all", help="Check every reference"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
) -> None:
    """Check Crossref for retractions, corrections and updates."""
    if not identifiers and not all:
        raise typer.BadParameter("Provide reference ids or use --all.")
    _check_choice(id_type, ID_TYPES, "--id-type")

    async def runner() -> tuple[list[CheckResult], list[str]]:
        settings = get_settings()
        library = LocalLibrary(settings)
        missing: list[str] = []
        if identifiers:
            _, missing = await _resolve(library, identifiers, id_type)
        async with httpx.AsyncClient(timeout=20) as client:
            checker = ReferenceChecker(client, settings)
            results = await check_references(library, checker, None if all else identifiers, id_type=id_type)
        return results, missing

    results, missing = _run(runner())
    for identifier in missing:
        console.print(f"[red]Not found:[/red] {escape(identifier)}")
    if not results:
        console.print("[yellow]Nothing to check.")
        return
    _render_check_table(results)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Launch the local JSON API."""
    import uvicorn

    uvicorn.run(
        "refshelf.web.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


# Attachments ---------------------------------------------------------------


@attach_app.command("add")
def attach_add(
    identifier: str = typer.Argument(..., help="Reference id"),
    file: Path = typer.Argument(..., help="File to attach"),
    role: str = typer.Option("fulltext", help="fulltext, supplement, notes, draft or any single word"),
    label: Optional[str] = typer.Option(None, help="Label appended to the stored filename"),
    move: bool = typer.Option(False, help="Move the file instead of copying it"),
    force: bool = typer.Option(False, "--force", help="Replace an existing file"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
) -> None:
    """Attach a file to a reference."""
    _check_choice(id_type, ID_TYPES, "--id-type")
    if not file.is_file():
        raise typer.BadParameter(f"{file} does not exist or is not a file.")

    async def runner():
        manager = AttachmentManager(LocalLibrary(get_settings()))
        return await manager.attach(identifier, file, role=role, label=label, move=move, force=force, id_type=id_type)

    result = _run(runner())
    action = "Replaced" if result.overwritten else "Attached"
    console.print(f"[green]{action}[/green] {escape(result.filename)} in {escape(str(result.directory))}")


@attach_app.command("list")
def attach_list(
    identifier: str = typer.Argument(..., help="Reference id"),
    role: Optional[str] = typer.Option(None, help="Only this role"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
) -> None:
    """List files attached to a reference."""
    _check_choice(id_type, ID_TYPES, "--id-type")

    async def runner():
        manager = AttachmentManager(LocalLibrary(get_settings()))
        return await manager.list_attachments(identifier, role=role, id_type=id_type)

    files = _run(runner())
    if not files:
        console.print("[yellow]No attachments.")
        return
    table = Table(title=f"Attachments of {escape(identifier)}")
    table.add_column("File")
    table.add_column("Role")
    table.add_column("Label")
    for item in files:
        table.add_row(escape(item.filename), item.role, escape(item.label or "—"))
    console.print(table)


@attach_app.command("detach")
def attach_detach(
    identifier: str = typer.Argument(..., help="Reference id"),
    filename: Optional[str] = typer.Argument(None, help="Attached filename"),
    role: Optional[str] = typer.Option(None, help="Detach by role"),
    all: bool = typer.Option(False, "--all", help="Detach every file of --role"),
    delete: bool = typer.Option(False, "--delete", help="Also delete the files from disk"),
    id_type: str = typer.Option("id", "--id-type", help=f"One of {', '.join(ID_TYPES)}"),
) -> None:
    """Detach files from a reference."""
    _check_choice(id_type, ID_TYPES, "--id-type")
    if not filename and not role:
        raise typer.BadParameter("Give a filename or --role.")

    async def runner():
        manager = AttachmentManager(LocalLibrary(get_settings()))
        return await manager.detach(
            identifier, filename=filename, role=role, all=all, delete_files=delete, id_type=id_type
        )

    result = _run(runner())
    for name in result.detached:
        suffix = " (deleted)" if name in result.deleted else ""
        console.print(f"[green]Detached[/green] {escape(name)}{suffix}")
    if result.directory_deleted:
        console.print("Removed the now empty attachment directory.")
