from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from epub_reader.web.app import create_app

from conftest import COVER_BYTES


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    return TestClient(create_app(tmp_path / "data"))


@pytest.fixture
def imported(client: TestClient, sample_epub: Path) -> dict:
    response = client.post("/api/import", json={"path": str(sample_epub)})
    assert response.status_code == 200
    return response.json()


def test_nothing_loaded(client: TestClient):
    assert client.get("/api/pages/1").status_code == 409
    assert client.get("/api/toc").status_code == 409
    assert client.get("/api/identifiers/chap1/page").status_code == 409
    assert client.get("/api/paths", params={"path": "text/chap_01.xhtml"}).status_code == 409
    assert client.get("/api/library").json() == []


def test_import(imported: dict, sample_epub: Path):
    assert imported["title"] == "Sample Book"
    assert imported["author"] == "Jane Doe"
    assert imported["current_page"] == 1
    assert imported["total_pages"] == 3
    assert imported["book_url"].endswith("Sample Book.epub")


def test_import_errors(client: TestClient, tmp_path: Path):
    text_file = tmp_path / "notes.txt"
    text_file.write_text("hello")
    response = client.post("/api/import", json={"path": str(text_file)})
    assert response.status_code == 400

    response = client.post("/api/import", json={"path": str(tmp_path / "missing.epub")})
    assert response.status_code == 400


def test_pages(client: TestClient, imported: dict):
    page = client.get("/api/pages/2").json()
    assert page["display_title"] == "The Middle"
    assert page["media_type"] == "application/xhtml+xml"
    assert "Second page." in page["content"]

    assert client.get("/api/pages/0").status_code == 404
    assert client.get("/api/pages/4").status_code == 404


def test_reading_a_page_updates_progress(client: TestClient, imported: dict):
    client.get("/api/pages/3")
    assert client.get(f"/api/progress/{imported['checksum']}").json() == {"page": 3}


def test_progress(client: TestClient, imported: dict):
    checksum = imported["checksum"]
    assert client.put(f"/api/progress/{checksum}", json={"page": 2}).json() == {"status": "saved"}
    assert client.get(f"/api/progress/{checksum}").json() == {"page": 2}
    assert client.get("/api/progress/1").json() == {"page": 1}


def test_toc(client: TestClient, imported: dict):
    assert client.get("/api/toc").json() == [
        ["Opening", "chap1"],
        ["The Middle", "chap2"],
        ["chap3", "chap3"],
    ]


def test_identifier_and_path_lookups(client: TestClient, imported: dict):
    assert client.get("/api/identifiers/chap3/page").json() == {"page": 3}
    assert client.get("/api/identifiers/nope/page").json() == {"page": 1}

    response = client.get("/api/paths", params={"path": "text/chap_02.xhtml"})
    assert response.json() == {"identifier": "chap2"}
    assert client.get("/api/paths", params={"path": "text/missing.xhtml"}).status_code == 404


def test_page_links(client: TestClient, imported: dict):
    links = client.get("/api/pages/1/links").json()
    assert links == [
        {"href": "chap_02.xhtml#sec", "identifier": "chap2", "page": 2, "fragment": "sec"},
    ]
    assert [link["page"] for link in client.get("/api/pages/2/links").json()] == [2]
    assert client.get("/api/pages/9/links").status_code == 404


def test_library_and_cover(client: TestClient, imported: dict):
    library = client.get("/api/library").json()
    assert [book["checksum"] for book in library] == [imported["checksum"]]

    cover = client.get(f"/api/library/{imported['checksum']}/cover")
    assert cover.status_code == 200
    assert cover.content == COVER_BYTES
    assert client.get("/api/library/1/cover").status_code == 404


def test_open_from_library(tmp_path: Path, sample_epub: Path):
    data_dir = tmp_path / "data"
    first = TestClient(create_app(data_dir))
    checksum = first.post("/api/import", json={"path": str(sample_epub)}).json()["checksum"]
    first.get("/api/pages/2")

    # A fresh app over the same storage starts with nothing loaded
    second = TestClient(create_app(data_dir))
    assert second.get("/api/pages/1").status_code == 409

    opened = second.post(f"/api/library/{checksum}/open")
    assert opened.status_code == 200
    assert opened.json()["current_page"] == 2
    assert second.get("/api/pages/1").json()["display_title"] == "Opening"
    assert second.post("/api/library/1/open").status_code == 404
