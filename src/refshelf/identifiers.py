"""Citation key generation, collision suffixes and record metadata bootstrap."""

from __future__ import annotations

import uuid as uuidlib
from dataclasses import dataclass
from typing import Iterable

from refshelf.models import Reference
from refshelf.utils import compact_key, utc_now


@dataclass(slots=True)
class IdAllocation:
    id: str
    changed: bool
    original_id: str


def _author_part(record: Reference) -> str:
    author = record.first_author
    if author is None:
        return ""
    if author.family:
        return compact_key(author.family)
    if author.literal:
        return compact_key(author.literal)
    return ""


def generate_id(record: Reference) -> str:
    """Build the base citation key ``author-year`` for a record.

    The title slug is appended only when the author or the year is missing,
    and ``untitled`` stands in when there is neither author, year nor title.
    """
    author = _author_part(record)
    year = str(record.year) if record.year else ""
    title = compact_key(record.title) if record.title else ""

    if author and year:
        title_part = ""
    elif title:
        title_part = f"-{title}"
    elif not author and not year:
        title_part = "-untitled"
    else:
        title_part = ""
    return f"{author or 'anon'}-{year or 'nd'}{title_part}"


def suffix_for(index: int) -> str:
    """Collision suffix for the ``index``-th collision: a..z, aa..az, ba..."""
    suffix = ""
    while index > 0:
        index -= 1
        suffix = chr(ord("a") + index % 26) + suffix
        index //= 26
    return suffix


def allocate_id(base_id: str, existing_ids: Iterable[str]) -> IdAllocation:
    """Return the first id in ``base_id``, ``base_id + a``, ... not in use.

    Comparison is case-insensitive; existing ids are never renamed.
    """
    taken = {value.lower() for value in existing_ids}
    candidate = base_id
    index = 0
    while candidate.lower() in taken:
        index += 1
        candidate = f"{base_id}{suffix_for(index)}"
    return IdAllocation(id=candidate, changed=candidate != base_id, original_id=base_id)


def is_valid_uuid(value: str | None) -> bool:
    if not value:
        return False
    try:
        uuidlib.UUID(value)
    except ValueError:
        return False
    return True


def ensure_custom_metadata(record: Reference) -> Reference:
    """Fill uuid, created_at and timestamp where missing.

    Legacy records carried only ``timestamp``; it becomes ``created_at``.
    """
    meta = record.custom
    updates: dict[str, str] = {}
    if not is_valid_uuid(meta.uuid):
        updates["uuid"] = str(uuidlib.uuid4())
    created_at = meta.created_at or meta.timestamp or utc_now()
    if meta.created_at != created_at:
        updates["created_at"] = created_at
    if not meta.timestamp:
        updates["timestamp"] = created_at
    if not updates:
        return record
    return record.model_copy(update={"custom": meta.model_copy(update=updates)})
