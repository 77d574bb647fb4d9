import json
from pathlib import Path

import pytest

from refshelf.models import Reference
from refshelf.services.library import LocalLibrary
from refshelf.services.operations import (
    cite_references,
    list_references,
    remove_reference,
    search_references,
    update_reference,
)
from refshelf.settings import Settings


def _collection() -> list[Reference]:
    return [
        Reference.from_csl(
            {
                "id": "smith-2023",
                "type": "article-journal",
                "title": "Machine Learning in Medicine",
                "author": [{"family": "Smith"}],
                "issued": {"date-parts": [[2023]]},
                "custom": {"timestamp": "2024-03-01T00:00:00.000Z"},
            }
        ),
        Reference.from_csl(
            {
                "id": "doe-2024",
                "type": "article-journal",
                "title": "Deep Learning",
                "author": [{"family": "Doe"}],
                "issued": {"date-parts": [[2024]]},
                "custom": {"timestamp": "2024-02-01T00:00:00.000Z"},
            }
        ),
        Reference.from_csl(
            {
                "id": "lee-2010",
                "type": "book",
                "title": "Tissues",
                "author": [{"family": "Lee"}],
                "issued": {"date-parts": [[2010]]},
                "custom": {"timestamp": "2024-01-01T00:00:00.000Z"},
            }
        ),
    ]


def test_search_ranks_by_relevance() -> None:
    page = search_references(_collection(), "Learning", sort="relevance")
    assert [record.id for record in page.items] == ["doe-2024", "smith-2023"]
    assert page.total == 2

    reversed_page = search_references(_collection(), "Learning", sort="relevance", order="asc")
    assert [record.id for record in reversed_page.items] == ["smith-2023", "doe-2024"]


def test_search_with_field_sort_and_paging() -> None:
    page = search_references(_collection(), "Learning", sort="title", order="asc", limit=1, offset=1)
    assert [record.id for record in page.items] == ["smith-2023"]
    assert page.total == 2


def test_empty_query_matches_everything() -> None:
    page = search_references(_collection(), "   ", sort="relevance")
    assert [record.id for record in page.items] == ["smith-2023", "doe-2024", "lee-2010"]


def test_list_references_sorts_and_pages() -> None:
    page = list_references(_collection(), sort="published", order="asc", limit=2)
    assert [record.id for record in page.items] == ["lee-2010", "smith-2023"]
    assert page.total == 3


def test_cite_references_in_text() -> None:
    assert cite_references(_collection()[:2], "in-text") == "(Smith, 2023; Doe, 2024)"


def _write(settings: Settings) -> None:
    payload = [record.to_csl() for record in _collection()]
    settings.library_path.write_text(json.dumps(payload), encoding="utf-8")


@pytest.mark.asyncio
async def test_update_reference_persists(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path)
    _write(settings)

    result = await update_reference(LocalLibrary(settings), "lee-2010", {"title": "Organs"})
    assert result.updated

    reloaded = LocalLibrary(settings)
    assert (await reloaded.load())[2].title == "Organs"


@pytest.mark.asyncio
async def test_update_reference_missing_does_not_write(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path)
    result = await update_reference(LocalLibrary(settings), "ghost", {"title": "x"})
    assert result.error == "not_found"
    assert not settings.library_path.exists()


@pytest.mark.asyncio
async def test_remove_reference_persists(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path)
    _write(settings)

    removed = await remove_reference(LocalLibrary(settings), "doe-2024")
    assert removed is not None and removed.id == "doe-2024"
    assert await remove_reference(LocalLibrary(settings), "doe-2024") is None

    reloaded = await LocalLibrary(settings).load()
    assert [record.id for record in reloaded] == ["smith-2023", "lee-2010"]
