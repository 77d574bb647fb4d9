from refshelf.models import Reference
from refshelf.services.duplicates import detect_duplicate


def _ref(id: str, **fields) -> Reference:
    return Reference.from_csl({"id": id, "type": "article-journal", **fields})


def test_doi_match_ignores_resolver_prefix() -> None:
    existing = [_ref("smith-2020", DOI="10.1000/ABC")]
    result = detect_duplicate(_ref("", DOI="https://doi.org/10.1000/ABC"), existing)
    assert result.is_duplicate
    assert result.first.type == "doi"
    assert result.first.existing.id == "smith-2020"


def test_identifiers_compare_exactly() -> None:
    existing = [_ref("a", PMID="12345678"), _ref("b", ISBN="9780262033848")]
    assert detect_duplicate(_ref("", PMID="1234"), existing).is_duplicate is False
    assert detect_duplicate(_ref("", ISBN="9780262033848"), existing).first.type == "isbn"
    assert detect_duplicate(_ref("", PMCID="PMC1"), [_ref("c", PMCID="PMC1")]).first.type == "pmcid"


def test_identifier_match_wins_over_signature() -> None:
    signature = {"title": "Cells", "author": [{"family": "Doe"}], "issued": {"date-parts": [[2020]]}}
    existing = [_ref("sig", **signature), _ref("doi", DOI="10.1/x")]
    result = detect_duplicate(_ref("", DOI="10.1/x", **signature), existing)
    assert [match.type for match in result.matches] == ["doi"]
    assert result.first.existing.id == "doi"


def test_title_author_year_signature() -> None:
    existing = [
        _ref(
            "doe-2020",
            title="Machine Learning: A Review",
            author=[{"family": "Doé", "given": "Jane"}],
            issued={"date-parts": [[2020, 5]]},
        )
    ]
    candidate = _ref(
        "",
        title="machine learning - a review",
        author=[{"family": "DOE"}],
        issued={"date-parts": [[2020]]},
    )
    result = detect_duplicate(candidate, existing)
    assert result.is_duplicate
    assert result.first.type == "title-author-year"


def test_signature_needs_every_part() -> None:
    existing = [_ref("x", title="Cells", author=[{"family": "Doe"}])]
    candidate = _ref("", title="Cells", author=[{"family": "Doe"}])
    assert not detect_duplicate(candidate, existing).is_duplicate

    dated = [_ref("y", title="Cells", author=[{"family": "Doe"}], issued={"date-parts": [[2020]]})]
    other_year = _ref("", title="Cells", author=[{"family": "Doe"}], issued={"date-parts": [[2021]]})
    assert not detect_duplicate(other_year, dated).is_duplicate


def test_record_does_not_duplicate_itself() -> None:
    record = _ref("a", DOI="10.1/x", custom={"uuid": "123e4567-e89b-12d3-a456-426614174000"})
    assert not detect_duplicate(record, [record]).is_duplicate
