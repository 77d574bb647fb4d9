from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from refshelf import cli

runner = CliRunner()

ITEMS = [
    {
        "id": "smith-2023",
        "type": "article-journal",
        "title": "Machine Learning in Medicine",
        "author": [{"family": "Smith", "given": "Ann"}],
        "issued": {"date-parts": [[2023]]},
        "DOI": "10.1/ml",
    },
    {
        "id": "doe-2024",
        "type": "article-journal",
        "title": "Deep Learning",
        "author": [{"family": "Doe", "given": "Jo"}],
        "issued": {"date-parts": [[2024]]},
    },
]


def _seed(tmp_path: Path, monkeypatch) -> Path:
    data_dir = tmp_path / "refshelf-data"
    monkeypatch.setenv("REFSHELF_DATA_DIR", str(data_dir))
    source = tmp_path / "refs.json"
    source.write_text(json.dumps(ITEMS), encoding="utf-8")
    result = runner.invoke(cli.app, ["add", str(source)])
    assert result.exit_code == 0, result.stdout
    return data_dir


def test_config_json_flag(tmp_path, monkeypatch):
    data_dir = tmp_path / "refshelf-data"
    monkeypatch.setenv("REFSHELF_DATA_DIR", str(data_dir))
    monkeypatch.setenv("REFSHELF_LOG_LEVEL", "DEBUG")

    result = runner.invoke(cli.app, ["config", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout.strip())
    assert Path(payload["data_dir"]) == data_dir
    assert payload["log_level"] == "DEBUG"


def test_add_from_file_then_skip_duplicates(tmp_path, monkeypatch):
    data_dir = _seed(tmp_path, monkeypatch)
    saved = json.loads((data_dir / "csl.library.json").read_text(encoding="utf-8"))
    assert [item["id"] for item in saved] == ["smith-2023", "doe-2024"]

    result = runner.invoke(cli.app, ["add", str(tmp_path / "refs.json")])

    assert result.exit_code == 0
    assert "0 added, 2 skipped, 0 failed" in result.stdout


def test_add_reports_failures_with_exit_code(tmp_path, monkeypatch):
    monkeypatch.setenv("REFSHELF_DATA_DIR", str(tmp_path / "refshelf-data"))
    result = runner.invoke(cli.app, ["add", "not-an-identifier"])
    assert result.exit_code == 1
    assert "1 failed" in result.stdout


def test_search_outputs_ids_in_relevance_order(tmp_path, monkeypatch):
    _seed(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["search", "Learning", "--format", "ids-only"])
    assert result.exit_code == 0
    assert result.stdout.split() == ["doe-2024", "smith-2023"]


def test_search_rejects_unknown_sort(tmp_path, monkeypatch):
    _seed(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["search", "Learning", "--sort", "colour"])
    assert result.exit_code != 0


def test_list_sorted_by_title(tmp_path, monkeypatch):
    _seed(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["list", "--sort", "title", "--order", "asc", "--format", "pandoc-key"])
    assert result.exit_code == 0
    assert result.stdout.split() == ["@doe-2024", "@smith-2023"]


def test_list_empty_library(tmp_path, monkeypatch):
    monkeypatch.setenv("REFSHELF_DATA_DIR", str(tmp_path / "refshelf-data"))
    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "Library is empty" in result.stdout


def test_cite_in_text_and_missing(tmp_path, monkeypatch):
    _seed(tmp_path, monkeypatch)
    result = runner.invoke(cli.app, ["cite", "smith-2023", "doe-2024", "--style", "in-text"])
    assert result.exit_code == 0
    assert "(Smith, 2023; Doe, 2024)" in result.stdout

    missing = runner.invoke(cli.app, ["cite", "ghost"])
    assert missing.exit_code == 1
    assert "Not found" in missing.stdout


def test_export_bibtex_to_file(tmp_path, monkeypatch):
    _seed(tmp_path, monkeypatch)
    destination = tmp_path / "out.bib"
    result = runner.invoke(cli.app, ["export", "smith-2023", "--format", "bibtex", "--output", str(destination)])
    assert result.exit_code == 0
    text = destination.read_text(encoding="utf-8")
    assert "@article{smith-2023," in text
    assert "doe-2024" not in text


def test_update_and_remove(tmp_path, monkeypatch):
    data_dir = _seed(tmp_path, monkeypatch)

    collision = runner.invoke(cli.app, ["update", "smith-2023", "--set", "id=doe-2024"])
    assert collision.exit_code == 1

    result = runner.invoke(
        cli.app, ["update", "smith-2023", "--set", "title=Revised", "--set", 'keyword=["ml"]']
    )
    assert result.exit_code == 0
    saved = json.loads((data_dir / "csl.library.json").read_text(encoding="utf-8"))
    assert saved[0]["title"] == "Revised"
    assert saved[0]["keyword"] == ["ml"]

    removed = runner.invoke(cli.app, ["remove", "doe-2024", "--yes"])
    assert removed.exit_code == 0
    saved = json.loads((data_dir / "csl.library.json").read_text(encoding="utf-8"))
    assert [item["id"] for item in saved] == ["smith-2023"]


def test_attach_commands(tmp_path, monkeypatch):
    _seed(tmp_path, monkeypatch)
    pdf = tmp_path / "paper.pdf"
    pdf.write_bytes(b"%PDF-1.4")

    attached = runner.invoke(cli.app, ["attach", "add", "smith-2023", str(pdf)])
    assert attached.exit_code == 0

    listed = runner.invoke(cli.app, ["attach", "list", "smith-2023"])
    assert listed.exit_code == 0
    assert "fulltext.pdf" in listed.stdout

    again = runner.invoke(cli.app, ["attach", "add", "smith-2023", str(pdf)])
    assert again.exit_code == 1

    detached = runner.invoke(cli.app, ["attach", "detach", "smith-2023", "fulltext.pdf", "--delete"])
    assert detached.exit_code == 0
    assert "Detached" in detached.stdout
