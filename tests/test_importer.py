from pathlib import Path

import pytest

from refshelf.services.importer import (
    Importer,
    detect_by_content,
    detect_by_extension,
    detect_identifier,
    normalize_isbn,
    normalize_pmid,
)
from refshelf.services.resolvers import FetchResult, ResolverRegistry


class _StubResolver:
    def __init__(self, name: str, kind: str, items: dict[str, dict]) -> None:
        self.name = name
        self.kind = kind
        self._items = items
        self.calls: list[list[str]] = []

    async def resolve_many(self, identifiers: list[str]) -> list[FetchResult]:
        self.calls.append(list(identifiers))
        return [
            FetchResult(identifier=value, provider=self.name, item=self._items.get(value))
            if value in self._items
            else FetchResult(identifier=value, provider=self.name, error=f"{value} not found")
            for value in identifiers
        ]


def test_detect_by_extension_and_content() -> None:
    assert detect_by_extension("refs.BIB") == "bibtex"
    assert detect_by_extension("export.nbib") == "nbib"
    assert detect_by_extension("notes.txt") is None
    assert detect_by_content('  [{"id": "a"}]') == "json"
    assert detect_by_content("@article{a,}") == "bibtex"
    assert detect_by_content("TY  - JOUR\nER  -") == "ris"
    assert detect_by_content("PMID- 1\nTI  - x") == "nbib"
    assert detect_by_content("hello") is None


def test_detect_identifier() -> None:
    assert detect_identifier("10.1000/xyz") == "doi"
    assert detect_identifier("https://doi.org/10.1000/xyz") == "doi"
    assert detect_identifier("doi:10.1000/xyz") == "doi"
    assert detect_identifier("12345678") == "pmid"
    assert detect_identifier("PMID:12345678") == "pmid"
    assert detect_identifier("ISBN:978-0-262-03384-8") == "isbn"
    assert detect_identifier("9780262033848") == "pmid"
    assert detect_identifier("10.1000") is None
    assert detect_identifier("smith") is None


def test_normalizers() -> None:
    assert normalize_pmid("PMID: 42") == "42"
    assert normalize_isbn("ISBN: 0-262-03384-x") == "026203384X"
    assert normalize_isbn("ISBN:123") is None


def test_parse_content_reports_unknown_format() -> None:
    (result,) = Importer().parse_content("not a reference", "stdin")
    assert not result.success
    assert "Unrecognized" in result.error


@pytest.mark.asyncio
async def test_import_inputs_preserves_order_and_groups_identifiers(tmp_path: Path) -> None:
    bib = tmp_path / "refs.bib"
    bib.write_text("@book{a, title = {Book A}, year = {2001}}\n@book{b, title = {Book B}, year = {2002}}\n", encoding="utf-8")
    doi = _StubResolver("doi-stub", "doi", {"10.1/one": {"type": "article", "title": "One"}})
    pmid = _StubResolver("pmid-stub", "pmid", {"42": {"type": "article", "title": "Forty-two"}})
    isbn = _StubResolver("isbn-stub", "isbn", {"9780262033848": {"type": "book", "title": "Algorithms"}})
    importer = Importer(ResolverRegistry([doi, pmid, isbn]))

    results = await importer.import_inputs(
        ["PMID:42", str(bib), "10.1/one", "nonsense", "10.1/two", "ISBN:9780262033848"]
    )

    assert [result.source for result in results] == [
        "PMID:42",
        str(bib),
        str(bib),
        "10.1/one",
        "nonsense",
        "10.1/two",
        "ISBN:9780262033848",
    ]
    assert [result.success for result in results] == [True, True, True, True, False, False, True]
    assert results[1].item["title"] == "Book A"
    assert results[6].item["ISBN"] == "9780262033848"
    assert doi.calls == [["10.1/one", "10.1/two"]]
    assert pmid.calls == [["42"]]


@pytest.mark.asyncio
async def test_import_inputs_without_registry(tmp_path: Path) -> None:
    (result,) = await Importer().import_inputs(["10.1/one"])
    assert result.error == "No resolver for doi identifiers"


@pytest.mark.asyncio
async def test_import_inputs_rejects_unknown_format() -> None:
    with pytest.raises(ValueError):
        await Importer().import_inputs(["x"], "endnote")
