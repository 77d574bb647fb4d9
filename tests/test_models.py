from refshelf.models import CslName, Reference


def test_display_name() -> None:
    assert CslName(given="Ada", family="Lovelace").display_name == "Ada Lovelace"
    assert CslName(literal="WHO").display_name == "WHO"


def test_from_csl_coerces_common_shapes() -> None:
    record = Reference.from_csl(
        {
            "id": "x",
            "title": ["First", "Second"],
            "container-title": "Journal",
            "volume": 12,
            "PMID": 12345,
            "keyword": "a; b ;",
            "issued": {"date-parts": [[2020, 1]]},
        }
    )
    assert record.title == "First"
    assert record.container_title == "Journal"
    assert record.volume == "12"
    assert record.PMID == "12345"
    assert record.keyword == ["a", "b"]
    assert record.year == 2020


def test_to_csl_preserves_unknown_fields() -> None:
    payload = {
        "id": "x",
        "type": "book",
        "container-title-short": "J",
        "custom": {"uuid": "u", "reading_status": "done"},
    }
    csl = Reference.from_csl(payload).to_csl()
    assert csl["container-title-short"] == "J"
    assert csl["custom"]["reading_status"] == "done"
    assert "title" not in csl
