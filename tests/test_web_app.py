import json

from fastapi.testclient import TestClient

from refshelf.settings import Settings
from refshelf.web.app import create_app

UUID = "123e4567-e89b-12d3-a456-426614174000"


def _client(tmp_path) -> tuple[TestClient, Settings]:
    settings = Settings(data_dir=tmp_path)
    items = [
        {
            "id": "smith-2023",
            "type": "article-journal",
            "title": "Machine Learning in Medicine",
            "author": [{"family": "Smith"}],
            "issued": {"date-parts": [[2023]]},
            "custom": {"uuid": UUID},
        },
        {
            "id": "doe-2024",
            "type": "article-journal",
            "title": "Deep Learning",
            "author": [{"family": "Doe"}],
            "issued": {"date-parts": [[2024]]},
        },
    ]
    settings.library_path.write_text(json.dumps(items), encoding="utf-8")
    return TestClient(create_app(settings)), settings


def test_health(tmp_path) -> None:
    client, _ = _client(tmp_path)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_get_reference_by_uuid(tmp_path) -> None:
    client, _ = _client(tmp_path)
    assert client.get(f"/api/references/{UUID}").json()["id"] == "smith-2023"
    assert client.get("/api/references/unknown").status_code == 404
    assert len(client.get("/api/references").json()) == 2


def test_search_and_list(tmp_path) -> None:
    client, _ = _client(tmp_path)
    payload = client.get("/api/search", params={"q": "Learning", "limit": 1}).json()
    assert [item["id"] for item in payload["items"]] == ["doe-2024"]
    assert payload["total"] == 2
    assert payload["nextOffset"] == 1

    assert client.get("/api/search", params={"q": "x", "sort": "colour"}).status_code == 400

    listed = client.get("/api/list", params={"sort": "title", "order": "asc"}).json()
    assert [item["id"] for item in listed["items"]] == ["doe-2024", "smith-2023"]


def test_create_update_delete(tmp_path) -> None:
    client, settings = _client(tmp_path)

    created = client.post(
        "/api/references",
        json={"id": "Doe2024X", "type": "book", "title": "Tissues", "author": [{"family": "Doe"}], "issued": {"date-parts": [[2024]]}},
    )
    assert created.status_code == 201
    record = created.json()
    assert record["id"] == "doe-2024a"
    uuid = record["custom"]["uuid"]

    conflict = client.put(f"/api/references/{uuid}", json={"id": "smith-2023"})
    assert conflict.status_code == 409

    updated = client.put(
        f"/api/references/{uuid}", params={"on_id_collision": "suffix"}, json={"id": "smith-2023"}
    ).json()
    assert updated["idChanged"] is True
    assert updated["newId"] == "smith-2023a"

    deleted = client.delete(f"/api/references/{uuid}")
    assert deleted.json()["removed"]["id"] == "smith-2023a"
    saved = json.loads(settings.library_path.read_text(encoding="utf-8"))
    assert [item["id"] for item in saved] == ["smith-2023", "doe-2024"]


def test_changes_on_disk_are_picked_up(tmp_path) -> None:
    client, settings = _client(tmp_path)
    assert len(client.get("/api/references").json()) == 2
    settings.library_path.write_text("[]", encoding="utf-8")
    assert client.get("/api/references").json() == []


def test_add_content_and_cite(tmp_path) -> None:
    client, _ = _client(tmp_path)
    content = json.dumps(
        [{"id": "Lee2010", "type": "book", "title": "Organs", "author": [{"family": "Lee"}], "issued": {"date-parts": [[2010]]}}]
    )

    report = client.post("/api/add", json={"content": content}).json()
    assert [item["id"] for item in report["added"]] == ["lee-2010"]
    assert client.post("/api/add", json={}).status_code == 400

    cited = client.post(
        "/api/cite", json={"identifiers": ["smith-2023", "ghost"], "style": "in-text"}
    ).json()
    assert cited == {"citation": "(Smith, 2023)", "missing": ["ghost"]}
