"""Parsers turning BibTeX, RIS, NBIB and CSL-JSON text into CSL mappings."""

from __future__ import annotations

import json
import re
from typing import Any

import bibtexparser
import structlog
from bibtexparser.model import Entry

from refshelf.errors import ImportFailure
from refshelf.utils import normalize_doi

logger = structlog.get_logger(__name__)

BIBTEX_TO_CSL_TYPE = {
    "article": "article-journal",
    "book": "book",
    "booklet": "book",
    "inbook": "chapter",
    "incollection": "chapter",
    "inproceedings": "paper-conference",
    "conference": "paper-conference",
    "phdthesis": "thesis",
    "mastersthesis": "thesis",
    "techreport": "report",
    "manual": "report",
    "online": "webpage",
    "misc": "article",
    "unpublished": "manuscript",
}

RIS_TO_CSL_TYPE = {
    "JOUR": "article-journal",
    "JFULL": "article-journal",
    "MGZN": "article-magazine",
    "NEWS": "article-newspaper",
    "BOOK": "book",
    "EBOOK": "book",
    "CHAP": "chapter",
    "ECHAP": "chapter",
    "CONF": "paper-conference",
    "CPAPER": "paper-conference",
    "THES": "thesis",
    "RPRT": "report",
    "ELEC": "webpage",
    "WEB": "webpage",
    "GEN": "article",
}

NBIB_TO_RIS_TAG = {
    "PMID": "AN",
    "TI": "TI",
    "FAU": "AU",
    "AU": "AU",
    "JT": "JO",
    "TA": "JA",
    "AB": "AB",
    "VI": "VL",
    "IP": "IS",
    "PG": "SP",
    "DP": "PY",
    "LA": "LA",
    "MH": "KW",
    "OT": "KW",
    "IS": "SN",
    "PT": "TY",
}

NBIB_PUBLICATION_TYPE = {
    "Journal Article": "JOUR",
    "Review": "JOUR",
    "Book": "BOOK",
    "Book Chapter": "CHAP",
    "Conference Paper": "CPAPER",
    "Thesis": "THES",
    "Report": "RPRT",
}

MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1
    )
}

_RIS_LINE = re.compile(r"^([A-Z][A-Z0-9])  -(?: (.*))?$")
_NBIB_LINE = re.compile(r"^([A-Z]+)\s*-\s?(.*)$")
_YEAR = re.compile(r"(\d{4})")


# CSL-JSON --------------------------------------------------------------------


def parse_csl_json(text: str) -> list[dict[str, Any]]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFailure(f"Invalid JSON: {exc}") from exc
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise ImportFailure("CSL-JSON input must be an object or an array of objects.")
    return payload


# BibTeX ----------------------------------------------------------------------


def parse_bibtex(text: str) -> list[dict[str, Any]]:
    library = bibtexparser.parse_string(text)
    if library.failed_blocks:
        logger.warning("parsers.bibtex_failed_blocks", count=len(library.failed_blocks))
    if not library.entries and library.failed_blocks:
        raise ImportFailure("No BibTeX entries could be parsed; check braces and commas.")
    return [bibtex_entry_to_csl(entry) for entry in library.entries]


def _strip_braces(value: str) -> str:
    return re.sub(r"\s+", " ", value.replace("{", "").replace("}", "")).strip()


def parse_bibtex_names(value: str) -> list[dict[str, str]]:
    """Split ``A and B`` into CSL names; braced names are institutional."""
    names: list[dict[str, str]] = []
    for raw in re.split(r"\s+and\s+", value.strip()):
        raw = raw.strip()
        if not raw:
            continue
        if raw.startswith("{") and raw.endswith("}"):
            names.append({"literal": _strip_braces(raw)})
            continue
        cleaned = _strip_braces(raw)
        if "," in cleaned:
            family, given = (part.strip() for part in cleaned.split(",", 1))
        elif " " in cleaned:
            given, family = cleaned.rsplit(" ", 1)
        else:
            family, given = cleaned, ""
        name = {"family": family}
        if given:
            name["given"] = given
        names.append(name)
    return names


def bibtex_entry_to_csl(entry: Entry) -> dict[str, Any]:
    fields = {field.key.lower(): str(field.value) for field in entry.fields}
    item: dict[str, Any] = {
        "id": entry.key,
        "type": BIBTEX_TO_CSL_TYPE.get(entry.entry_type.lower(), "article"),
    }
    if "title" in fields:
        item["title"] = _strip_braces(fields["title"])
    if "author" in fields:
        item["author"] = parse_bibtex_names(fields["author"])
    if "editor" in fields:
        item["editor"] = parse_bibtex_names(fields["editor"])
    container = fields.get("journal") or fields.get("journaltitle") or fields.get("booktitle")
    if container:
        item["container-title"] = _strip_braces(container)
    year_match = _YEAR.search(fields.get("year") or fields.get("date") or "")
    if year_match:
        parts = [int(year_match.group(1))]
        month = MONTHS.get(fields.get("month", "").strip().lower()[:3])
        if month:
            parts.append(month)
        item["issued"] = {"date-parts": [parts]}
    simple = {
        "volume": "volume",
        "number": "issue",
        "publisher": "publisher",
        "abstract": "abstract",
        "isbn": "ISBN",
        "url": "URL",
        "pmid": "PMID",
        "pmcid": "PMCID",
        "note": "note",
        "language": "language",
    }
    for source, target in simple.items():
        if fields.get(source):
            item[target] = _strip_braces(fields[source])
    if fields.get("pages"):
        item["page"] = re.sub(r"-+", "-", fields["pages"].strip())
    if fields.get("doi"):
        item["DOI"] = normalize_doi(fields["doi"])
    if fields.get("keywords"):
        item["keyword"] = [part.strip() for part in re.split(r"[;,]", fields["keywords"]) if part.strip()]
    return item


# RIS / NBIB ------------------------------------------------------------------


def parse_ris_records(text: str) -> list[list[tuple[str, str]]]:
    """Group ``TAG  - value`` lines into records terminated by ``ER``."""
    records: list[list[tuple[str, str]]] = []
    current: list[tuple[str, str]] = []
    for line in text.splitlines():
        match = _RIS_LINE.match(line.rstrip())
        if not match:
            if current and line.strip():
                tag, value = current[-1]
                current[-1] = (tag, f"{value} {line.strip()}")
            continue
        tag, value = match.group(1), (match.group(2) or "").strip()
        if tag == "ER":
            if current:
                records.append(current)
            current = []
            continue
        current.append((tag, value))
    if current:
        records.append(current)
    return records


def _ris_name(value: str) -> dict[str, str]:
    if "," in value:
        family, given = (part.strip() for part in value.split(",", 1))
        name = {"family": family}
        if given:
            name["given"] = given
        return name
    return {"literal": value.strip()}


def ris_record_to_csl(pairs: list[tuple[str, str]]) -> dict[str, Any]:
    item: dict[str, Any] = {"type": "article-journal"}
    authors: list[dict[str, str]] = []
    keywords: list[str] = []
    start_page = end_page = None
    for tag, value in pairs:
        if not value:
            continue
        if tag == "TY":
            item["type"] = RIS_TO_CSL_TYPE.get(value.upper(), "article")
        elif tag in {"AU", "A1"}:
            authors.append(_ris_name(value))
        elif tag in {"TI", "T1"}:
            item.setdefault("title", value)
        elif tag in {"T2", "JO", "JF", "BT"}:
            item.setdefault("container-title", value)
        elif tag in {"JA", "J2"}:
            item.setdefault("container-title-short", value)
        elif tag in {"PY", "Y1", "DA"}:
            year_match = _YEAR.search(value)
            if year_match and "issued" not in item:
                item["issued"] = {"date-parts": [[int(year_match.group(1))]]}
        elif tag == "VL":
            item["volume"] = value
        elif tag == "IS":
            item["issue"] = value
        elif tag == "SP":
            start_page = value
        elif tag == "EP":
            end_page = value
        elif tag in {"AB", "N2"}:
            item.setdefault("abstract", value)
        elif tag == "DO":
            item["DOI"] = normalize_doi(value)
        elif tag == "UR":
            item.setdefault("URL", value)
        elif tag == "SN":
            item.setdefault("ISSN" if re.fullmatch(r"\d{4}-?\d{3}[\dXx]( .*)?", value) else "ISBN", value)
        elif tag == "PB":
            item["publisher"] = value
        elif tag == "LA":
            item["language"] = value
        elif tag == "KW":
            keywords.append(value)
        elif tag == "AN" and value.isdigit():
            item["PMID"] = value
        elif tag == "ID":
            item["id"] = value
    if authors:
        item["author"] = authors
    if keywords:
        item["keyword"] = keywords
    if start_page:
        item["page"] = f"{start_page}-{end_page}" if end_page else start_page
    return item


def parse_ris(text: str) -> list[dict[str, Any]]:
    records = parse_ris_records(text)
    if not records:
        raise ImportFailure("No RIS records found; each record must start with 'TY  - '.")
    return [ris_record_to_csl(record) for record in records]


def _nbib_pairs(entry: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for line in entry.splitlines():
        match = _NBIB_LINE.match(line)
        if match:
            pairs.append((match.group(1), match.group(2).strip()))
        elif pairs and line[:1].isspace():
            tag, value = pairs[-1]
            pairs[-1] = (tag, f"{value} {line.strip()}")
    return pairs


def nbib_to_ris_pairs(entry: str) -> list[tuple[str, str]]:
    """Translate one MEDLINE record into RIS tag/value pairs."""
    converted: list[tuple[str, str]] = []
    record_type = None
    pairs = _nbib_pairs(entry)
    has_full_names = any(tag == "FAU" for tag, _ in pairs)
    for tag, value in pairs:
        if tag == "AU" and has_full_names:
            continue
        if tag == "AID" and "[doi]" in value:
            converted.append(("DO", value.split("[doi]", 1)[0].strip()))
            continue
        ris_tag = NBIB_TO_RIS_TAG.get(tag)
        if ris_tag is None:
            continue
        if ris_tag == "PY":
            year_match = re.match(r"^(\d{4})", value)
            if year_match:
                converted.append(("PY", year_match.group(1)))
        elif ris_tag == "TY":
            record_type = record_type or NBIB_PUBLICATION_TYPE.get(value, "JOUR")
        else:
            converted.append((ris_tag, value))
    if not converted:
        return []
    return [("TY", record_type or "JOUR"), *converted]


def parse_nbib(text: str) -> list[dict[str, Any]]:
    entries = [chunk for chunk in re.split(r"\n\s*\n", text.strip()) if chunk.strip()]
    records = [pairs for pairs in (nbib_to_ris_pairs(entry) for entry in entries) if pairs]
    if not records:
        raise ImportFailure("No PubMed (NBIB) records found; each record must start with 'PMID- '.")
    return [ris_record_to_csl(record) for record in records]
