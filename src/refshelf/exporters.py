"""Output formats and citation rendering for references."""

from __future__ import annotations

import json

import bibtexparser
from bibtexparser.model import Entry, Field

from refshelf.models import CslName, Reference

OUTPUT_FORMATS = ("pretty", "json", "bibtex", "ids-only", "uuid", "pandoc-key", "latex-key")
CITATION_STYLES = ("bibliography", "in-text")

CSL_TO_BIBTEX_TYPE = {
    "article": "article",
    "article-journal": "article",
    "article-magazine": "article",
    "article-newspaper": "article",
    "book": "book",
    "chapter": "inbook",
    "paper-conference": "inproceedings",
    "thesis": "phdthesis",
    "report": "techreport",
}


# Plain formats -------------------------------------------------------------


def _pretty_author(author: CslName) -> str:
    if author.literal:
        return author.literal
    family = author.family or ""
    return f"{family}, {author.given[0]}." if author.given else family


def reference_to_pretty(record: Reference) -> str:
    lines = [f"[{record.id}] {record.title}" if record.title else f"[{record.id}]"]
    if record.author:
        lines.append(f"  Authors: {'; '.join(_pretty_author(a) for a in record.author)}")
    lines.append(f"  Year: {record.year or '(no year)'}")
    lines.append(f"  Type: {record.type}")
    for label, value in (("DOI", record.DOI), ("PMID", record.PMID), ("PMCID", record.PMCID), ("URL", record.URL)):
        if value:
            lines.append(f"  {label}: {value}")
    lines.append(f"  UUID: {record.uuid or '(no uuid)'}")
    if record.custom.attachments and record.custom.attachments.files:
        roles = sorted({attachment.role for attachment in record.custom.attachments.files})
        lines.append(f"  Attachments: {', '.join(roles)}")
    return "\n".join(lines)


def export_pretty(records: list[Reference]) -> str:
    return "\n\n".join(reference_to_pretty(record) for record in records)


def export_csl_json(records: list[Reference]) -> str:
    return json.dumps([record.to_csl() for record in records], indent=2, ensure_ascii=False)


def export_keys(records: list[Reference], fmt: str) -> str:
    if fmt == "ids-only":
        keys = [record.id for record in records]
    elif fmt == "uuid":
        keys = [record.uuid or "" for record in records]
    elif fmt == "pandoc-key":
        keys = [f"@{record.id}" for record in records]
    elif fmt == "latex-key":
        keys = [f"\\cite{{{record.id}}}" for record in records]
    else:
        raise ValueError(f"Unknown key format {fmt!r}")
    return "\n".join(keys)


# BibTeX ---------------------------------------------------------------------


def _bibtex_name(author: CslName) -> str:
    if author.literal:
        return f"{{{author.literal}}}"
    family = author.family or ""
    return f"{family}, {author.given}" if author.given else family


def reference_to_bibtex_entry(record: Reference) -> Entry:
    entry_type = CSL_TO_BIBTEX_TYPE.get(record.type, "misc")
    values: list[tuple[str, str | None]] = [
        ("title", record.title),
        ("author", " and ".join(_bibtex_name(a) for a in record.author) if record.author else None),
        ("year", str(record.year) if record.year else None),
    ]
    if entry_type == "article":
        values.append(("journal", record.container_title))
    elif entry_type in {"inbook", "inproceedings"}:
        values.append(("booktitle", record.container_title))
    values.extend(
        [
            ("volume", record.volume),
            ("number", record.issue),
            ("pages", record.page),
            ("publisher", record.publisher),
            ("doi", record.DOI),
            ("url", record.URL),
            ("isbn", record.ISBN),
        ]
    )
    if record.PMID:
        values.append(("note", f"PMID: {record.PMID}"))
    elif record.PMCID:
        values.append(("note", f"PMCID: {record.PMCID}"))
    fields = [Field(key=key, value=value) for key, value in values if value]
    return Entry(entry_type=entry_type, key=record.id, fields=fields)


def export_bibtex(records: list[Reference]) -> str:
    library = bibtexparser.Library()
    for record in records:
        library.add(reference_to_bibtex_entry(record))
    return bibtexparser.write_string(library).strip()


# Citations -----------------------------------------------------------------


def _year_label(record: Reference) -> str:
    return str(record.year) if record.year else "n.d."


def _et_al(record: Reference) -> str:
    return " et al" if record.author and len(record.author) > 1 else ""


def _cite_first_author(record: Reference, *, with_initial: bool) -> str:
    author = record.first_author
    if author is None:
        return "Unknown"
    if author.literal:
        return author.literal
    family = author.family or "Unknown"
    if with_initial and author.given:
        return f"{family} {author.given[0]}"
    return family


def _volume_issue_page(record: Reference) -> str:
    if record.volume:
        text = record.volume
        if record.issue:
            text += f"({record.issue})"
        if record.page:
            text += f":{record.page}"
        return text
    return record.page or ""


def _identifier(record: Reference) -> str:
    if record.PMID:
        return f"PMID:{record.PMID}"
    if record.DOI:
        return f"DOI:{record.DOI}"
    return record.URL or ""


def format_bibliography_entry(record: Reference) -> str:
    """Vancouver-like one-line entry: author, journal, year;vol(issue):pages, id, title."""
    parts = [f"{_cite_first_author(record, with_initial=True)}{_et_al(record)}."]
    journal = getattr(record, "container-title-short", None) or record.container_title
    if journal:
        parts.append(f"{journal}.")
    details = _volume_issue_page(record)
    if details:
        parts.append(f"{_year_label(record)};{details}.")
    else:
        # "n.d." already ends the sentence
        parts.append(str(record.year) + "." if record.year else "n.d.")
    identifier = _identifier(record)
    if identifier:
        parts.append(f"{identifier}.")
    if record.title:
        parts.append(f"{record.title}.")
    return " ".join(parts)


def format_in_text(records: list[Reference]) -> str:
    if not records:
        return ""
    cites = [
        f"{_cite_first_author(record, with_initial=False)}{_et_al(record)}, {_year_label(record)}"
        for record in records
    ]
    return f"({'; '.join(cites)})"


def format_citations(records: list[Reference], style: str = "bibliography") -> str:
    if style == "in-text":
        return format_in_text(records)
    if style == "bibliography":
        return "\n\n".join(format_bibliography_entry(record) for record in records)
    raise ValueError(f"Unknown citation style {style!r}; choose from {', '.join(CITATION_STYLES)}")


def render(records: list[Reference], fmt: str) -> str:
    """Render ``records`` in any of :data:`OUTPUT_FORMATS`."""
    if fmt == "pretty":
        return export_pretty(records)
    if fmt == "json":
        return export_csl_json(records)
    if fmt == "bibtex":
        return export_bibtex(records)
    if fmt in {"ids-only", "uuid", "pandoc-key", "latex-key"}:
        return export_keys(records, fmt)
    raise ValueError(f"Unknown output format {fmt!r}; choose from {', '.join(OUTPUT_FORMATS)}")
