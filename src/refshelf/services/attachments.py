"""Files attached to references, stored in one directory per reference."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from refshelf.errors import AttachmentError, ReferenceNotFound
from refshelf.models import Attachment, Attachments, Reference
from refshelf.services.library import LocalLibrary
from refshelf.utils import slugify

logger = structlog.get_logger(__name__)

RESERVED_ROLES = ("fulltext", "supplement", "notes", "draft")
FULLTEXT_EXTENSIONS = ("pdf", "md")


def attachment_filename(role: str, ext: str, label: str | None = None) -> str:
    """``{role}[-{label-slug}].{ext}``"""
    slug = slugify(label) if label else ""
    stem = f"{role}-{slug}" if slug else role
    return f"{stem}.{ext}" if ext else stem


def directory_name(record: Reference) -> str:
    """``{id}[-PMID{pmid}]-{first 8 hex chars of the uuid}``"""
    if not record.uuid:
        raise AttachmentError(f"Reference '{record.id}' has no uuid; cannot create an attachment directory.")
    prefix = record.uuid.replace("-", "")[:8]
    pmid = (record.PMID or "").strip()
    if pmid:
        return f"{record.id}-PMID{pmid}-{prefix}"
    return f"{record.id}-{prefix}"


def file_extension(filename: str) -> str:
    return Path(filename).suffix.lstrip(".").lower()


@dataclass(slots=True)
class AttachResult:
    filename: str
    directory: Path
    overwritten: bool = False


@dataclass(slots=True)
class DetachResult:
    detached: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    directory_deleted: bool = False


class AttachmentManager:
    """Copies files into reference directories and keeps ``custom.attachments`` in sync."""

    def __init__(self, library: LocalLibrary) -> None:
        self._library = library
        self._root = library.settings.attachments_path

    @property
    def root(self) -> Path:
        return self._root

    async def _find(self, identifier: str, id_type: str) -> Reference:
        await self._library.all()
        record = self._library.find(identifier, id_type)
        if record is None:
            raise ReferenceNotFound(identifier, id_type)
        return record

    async def attach(
        self,
        identifier: str,
        source: Path,
        *,
        role: str,
        label: str | None = None,
        move: bool = False,
        force: bool = False,
        id_type: str = "id",
    ) -> AttachResult:
        record = await self._find(identifier, id_type)
        if not source.is_file():
            raise AttachmentError(f"Source file not found: {source}")
        if not role or "-" in role:
            raise AttachmentError(f"Invalid role {role!r}; roles are single words such as {', '.join(RESERVED_ROLES)}.")

        ext = file_extension(source.name)
        filename = attachment_filename(role, ext, label)
        current = record.custom.attachments or Attachments(directory=directory_name(record))
        existing = next((item for item in current.files if item.filename == filename), None)

        if role == "fulltext":
            if ext not in FULLTEXT_EXTENSIONS:
                raise AttachmentError("fulltext attachments must be a PDF or a Markdown file.")
            same_format = [item for item in current.files if item.role == "fulltext" and file_extension(item.filename) == ext]
            if same_format and not force:
                raise AttachmentError(f"A fulltext {ext.upper()} already exists. Use --force to replace it.")
            # only one fulltext per format; a forced replacement drops the old file entry
            files = [item for item in current.files if item not in same_format or item.filename == filename]
        else:
            if existing is not None and not force:
                raise AttachmentError(f"{filename} is already attached. Use --force to overwrite.")
            files = list(current.files)

        directory = self._root / current.directory
        destination = directory / filename
        await asyncio.to_thread(self._store_sync, source, destination, move)

        new_file = Attachment(filename=filename, role=role, label=label)
        if any(item.filename == filename for item in files):
            files = [new_file if item.filename == filename else item for item in files]
        else:
            files.append(new_file)
        await self._save_attachments(record, Attachments(directory=current.directory, files=files))
        logger.info("attachments.added", id=record.id, filename=filename, moved=move)
        return AttachResult(filename=filename, directory=directory, overwritten=existing is not None)

    async def list_attachments(self, identifier: str, *, role: str | None = None, id_type: str = "id") -> list[Attachment]:
        record = await self._find(identifier, id_type)
        current = record.custom.attachments
        if current is None:
            return []
        return [item for item in current.files if role is None or item.role == role]

    async def detach(
        self,
        identifier: str,
        *,
        filename: str | None = None,
        role: str | None = None,
        all: bool = False,
        delete_files: bool = False,
        id_type: str = "id",
    ) -> DetachResult:
        """Remove attachment entries by ``filename``, or every file of ``role`` with ``all``."""
        if not filename and not role:
            raise AttachmentError("Give a filename, or a role together with --all.")
        record = await self._find(identifier, id_type)
        current = record.custom.attachments
        if current is None or not current.files:
            raise AttachmentError(f"No attachments for reference '{record.id}'.")

        if filename:
            targets = [item for item in current.files if item.filename == filename]
        elif all:
            targets = [item for item in current.files if item.role == role]
        else:
            matching = [item for item in current.files if item.role == role]
            if len(matching) > 1:
                raise AttachmentError(f"Several {role} files are attached; pass a filename or --all.")
            targets = matching
        if not targets:
            raise AttachmentError(f"No matching attachment for reference '{record.id}'.")

        directory = self._root / current.directory
        result = DetachResult(detached=[item.filename for item in targets])
        if delete_files:
            result.deleted = await asyncio.to_thread(self._delete_sync, directory, result.detached)

        remaining = [item for item in current.files if item not in targets]
        await self._save_attachments(record, Attachments(directory=current.directory, files=remaining) if remaining else None)
        result.directory_deleted = await asyncio.to_thread(self._remove_if_empty, directory)
        logger.info("attachments.detached", id=record.id, files=result.detached, deleted=len(result.deleted))
        return result

    async def _save_attachments(self, record: Reference, attachments: Attachments | None) -> None:
        payload = attachments.model_dump(exclude_none=True) if attachments else None
        result = self._library.update(record.id, {"custom": {"attachments": payload}})
        if not result.updated:
            raise AttachmentError(f"Could not update attachment metadata for '{record.id}'.")
        await self._library.save()

    # Filesystem helpers ---------------------------------------------------

    @staticmethod
    def _store_sync(source: Path, destination: Path, move: bool) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            if move:
                shutil.move(str(source), destination)
            else:
                shutil.copy2(source, destination)
        except OSError as exc:
            raise AttachmentError(f"Failed to {'move' if move else 'copy'} {source}: {exc}") from exc

    @staticmethod
    def _delete_sync(directory: Path, filenames: list[str]) -> list[str]:
        deleted: list[str] = []
        for name in filenames:
            path = directory / name
            if path.exists():
                path.unlink()
                deleted.append(name)
        return deleted

    @staticmethod
    def _remove_if_empty(directory: Path) -> bool:
        if directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()
            return True
        return False
