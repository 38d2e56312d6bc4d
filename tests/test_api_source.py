"""Tests for the /source routes."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from pathstore.api.main import create_app
from pathstore.config import Settings
from pathstore.core.lineage import META_ID
from pathstore.storage.memory_store import InMemoryObjectStore


@pytest.fixture
def client(store: InMemoryObjectStore) -> TestClient:
    return TestClient(create_app(store=store, settings=Settings(list_page_size=2)))


class TestPutAndGet:
    """Tests for writing and reading objects."""

    def test_put_then_get(self, client: TestClient) -> None:
        response = client.put(
            "/source/acme/site/page.html",
            content=b"<p>hi</p>",
            headers={"content-type": "text/html"},
        )

        assert response.status_code == 201
        source = response.json()["source"]
        assert source["path"] == "/acme/site/page.html"
        assert source["id"]

        fetched = client.get("/source/acme/site/page.html")
        assert fetched.status_code == 200
        assert fetched.content == b"<p>hi</p>"
        assert fetched.headers["content-type"].startswith("text/html")
        assert fetched.headers["X-Pathstore-Id"] == source["id"]

    def test_paths_are_lower_cased(self, client: TestClient, store: InMemoryObjectStore) -> None:
        client.put("/source/ACME/Site/Page.HTML", content=b"x")

        assert store.exists("acme", "site/page.html")
        assert client.get("/source/acme/SITE/page.html").status_code == 200

    def test_overwrite_keeps_lineage(self, client: TestClient, store: InMemoryObjectStore) -> None:
        first = client.put("/source/acme/a.html", content=b"one").json()["source"]["id"]
        second = client.put("/source/acme/a.html", content=b"two").json()["source"]["id"]

        assert first == second
        assert store.head("acme", "a.html").metadata[META_ID] == first

    def test_head(self, client: TestClient) -> None:
        client.put("/source/acme/a.html", content=b"abc")

        response = client.head("/source/acme/a.html")

        assert response.status_code == 200
        assert response.headers["content-length"] == "3"
        assert response.content == b""

    def test_missing_object_is_404(self, client: TestClient) -> None:
        response = client.get("/source/acme/missing.html")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_folder_put_rejected(self, client: TestClient) -> None:
        response = client.put("/source/acme/site/folder", content=b"x")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"


class TestDelete:
    """Tests for deletes."""

    def test_delete_file(self, client: TestClient, store: InMemoryObjectStore) -> None:
        client.put("/source/acme/a.html", content=b"x")

        response = client.delete("/source/acme/a.html")

        assert response.status_code == 204
        assert not store.exists("acme", "a.html")

    def test_delete_absent_file_succeeds(self, client: TestClient) -> None:
        assert client.delete("/source/acme/gone.html").status_code == 204

    def test_folder_delete_resumes(self, client: TestClient, store: InMemoryObjectStore) -> None:
        for i in range(5):
            store.put("acme", f"docs/{i}.html", b"x")
        store.put("acme", "keep.html", b"x")

        response = client.delete("/source/acme/docs")
        requests = 1
        while response.status_code == 200:
            token = response.json()["continuation_token"]
            response = client.delete(
                "/source/acme/docs", params={"continuation_token": token}
            )
            requests += 1

        assert response.status_code == 204
        assert requests == 3
        assert store.list_objects("acme", "").keys == ["keep.html"]

    def test_org_root_delete_rejected(self, client: TestClient) -> None:
        assert client.delete("/source/acme/").status_code == 400
