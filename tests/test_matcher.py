from refshelf.models import Reference
from refshelf.search import SearchToken, match_reference, match_token, tokenize
from refshelf.search.matcher import content_contains


def _ref(**fields) -> Reference:
    payload = {"id": "smith-2023", "type": "article-journal", **fields}
    return Reference.from_csl(payload)


def _sample() -> Reference:
    return _ref(
        title="Machine Learning in Medicine",
        author=[{"family": "Smith", "given": "John"}, {"literal": "WHO Collaboration"}],
        issued={"date-parts": [[2023, 4]]},
        **{"container-title": "Journal of Médical AI"},
        DOI="10.1000/ML.2023",
        PMID="12345678",
        URL="https://example.org/ml",
        keyword=["neural networks", "diagnosis"],
        custom={"tags": ["to-read"], "additional_urls": ["https://mirror.example.org/ml"]},
    )


def test_identifier_field_requires_exact_equality() -> None:
    record = _sample()
    (match,) = match_token(SearchToken(raw="pmid:12345678", value="12345678", field="pmid"), record)
    assert match.strength == "exact"
    assert match.field == "PMID"
    assert match_token(SearchToken(raw="pmid:1234", value="1234", field="pmid"), record) == []


def test_doi_comparison_is_case_sensitive() -> None:
    record = _sample()
    assert match_token(SearchToken(raw="doi", value="10.1000/ML.2023", field="doi"), record)
    assert match_token(SearchToken(raw="doi", value="10.1000/ml.2023", field="doi"), record) == []


def test_content_search_ignores_case() -> None:
    (match,) = match_token(SearchToken(raw="MACHINE", value="MACHINE", field="title"), _sample())
    assert match.strength == "partial"
    assert match.value == "Machine Learning in Medicine"


def test_content_search_strips_diacritics() -> None:
    assert match_token(SearchToken(raw="medical", value="medical"), _sample())[0].field == "container-title"
    record = _ref(title="Über die Künstliche Intelligenz")
    assert match_token(SearchToken(raw="kunstliche", value="kunstliche"), record)


def test_acronyms_match_case_sensitively() -> None:
    record = _ref(title="Aid programs and the main street", abstract="We study AI adoption.")
    matches = match_token(SearchToken(raw="AI", value="AI"), record)
    assert [match.field for match in matches] == ["abstract"]
    assert match_token(SearchToken(raw="ai", value="ai"), _ref(title="Main effects"))
    assert not content_contains("Main effects", "AI")


def test_author_field_uses_family_and_initial() -> None:
    record = _sample()
    assert match_token(SearchToken(raw="a", value="smith j", field="author"), record)
    assert match_token(SearchToken(raw="a", value="collaboration", field="author"), record)
    assert match_token(SearchToken(raw="a", value="john", field="author"), record) == []


def test_url_scope_searches_additional_urls() -> None:
    token = SearchToken(raw="url", value="https://mirror.example.org/ml", field="url")
    (match,) = match_token(token, _sample())
    assert match.field == "custom.additional_urls"
    assert match.strength == "exact"


def test_keyword_and_tag_elements_are_searched_separately() -> None:
    record = _sample()
    assert match_token(SearchToken(raw="k", value="neural", field="keyword"), record)
    assert match_token(SearchToken(raw="t", value="to-read", field="tag"), record)
    assert match_token(SearchToken(raw="k", value="networks diagnosis", field="keyword"), record) == []


def test_year_matches_exactly() -> None:
    record = _sample()
    assert match_token(SearchToken(raw="year:2023", value="2023", field="year"), record)[0].strength == "exact"
    assert match_token(SearchToken(raw="year:202", value="202", field="year"), record) == []


def test_unscoped_token_collects_evidence_from_every_field() -> None:
    record = _ref(title="Learning to learn", abstract="Learning theory", keyword=["learning"])
    fields = [match.field for match in match_token(SearchToken(raw="learning", value="learning"), record)]
    assert fields == ["title", "keyword", "abstract"]


def test_unknown_prefix_matches_as_literal_text() -> None:
    record = _ref(title="Journal: Nature of things")
    (token,) = tokenize("journal:nature")
    assert match_token(token, record)[0].field == "title"
    assert match_token(token, _ref(title="Nature")) == []


def test_match_reference_requires_every_token() -> None:
    record = _sample()
    t1, t2 = tokenize("machine medicine")
    t3 = tokenize("physics")[0]
    assert match_reference(record, [t1, t2]) is not None
    assert match_reference(record, [t1, t3]) is None
    assert match_reference(record, []) is None


def test_match_reference_strength_and_score() -> None:
    record = _sample()
    partial = match_reference(record, tokenize("machine learning"))
    exact = match_reference(record, tokenize("machine pmid:12345678"))
    assert partial.overall_strength == "partial"
    assert partial.score == 52
    assert exact.overall_strength == "exact"
    assert exact.score == 102


def test_malformed_fields_are_non_matches() -> None:
    record = _ref(title=None, author=[{}], issued={"date-parts": [[]]})
    assert match_reference(record, tokenize("anything year:2020")) is None
