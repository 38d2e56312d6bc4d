"""Tests for the /list and /count routes."""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from pathstore.api.main import create_app
from pathstore.config import Settings
from pathstore.storage.memory_store import InMemoryObjectStore


@pytest.fixture
def client(store: InMemoryObjectStore) -> TestClient:
    return TestClient(create_app(store=store, settings=Settings(list_page_size=2)))


@pytest.fixture
def site(store: InMemoryObjectStore) -> None:
    for key in (
        "site/index.html",
        "site/about.html",
        "site/blog/post.html",
        "site/drafts.props",
        "site/private/plan.html",
    ):
        store.put("acme", key, b"x")


class TestList:
    """Tests for one-level listings."""

    @pytest.mark.usefixtures("site")
    def test_lists_children_sorted(self, client: TestClient) -> None:
        response = client.get("/list/acme/site")

        assert response.status_code == 200
        assert [entry["name"] for entry in response.json()] == [
            "about",
            "blog",
            "drafts",
            "index",
            "private",
        ]
        index = next(entry for entry in response.json() if entry["name"] == "index")
        assert index["path"] == "/acme/site/index.html"
        assert index["ext"] == "html"
        assert "lastModified" in index

    @pytest.mark.usefixtures("site")
    def test_org_root(self, client: TestClient) -> None:
        response = client.get("/list/acme")

        assert response.json() == [{"path": "/acme/site", "name": "site"}]

    def test_empty_folder_lists_nothing(self, client: TestClient) -> None:
        assert client.get("/list/acme/nothing").json() == []

    @pytest.mark.usefixtures("site")
    def test_unreadable_entries_filtered(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config = {
            "acme": {
                "permissions": [
                    {"path": "/**", "users": ["*"], "actions": "read"},
                    {
                        "path": "/site/private/**",
                        "users": ["owner@example.com"],
                        "actions": "read",
                    },
                ]
            }
        }
        monkeypatch.setenv("PATHSTORE_ORG_CONFIG_JSON", json.dumps(config))

        names = [entry["name"] for entry in client.get("/list/acme/site").json()]

        assert "private" not in names
        assert "index" in names


class TestCount:
    """Tests for key counting."""

    def test_folder_count_includes_markers(
        self, client: TestClient, store: InMemoryObjectStore
    ) -> None:
        for key in ("folder", "folder.props", "folder/a.html", "folder/b.html"):
            store.put("acme", key, b"x")

        response = client.get("/count/acme/folder")

        assert response.status_code == 200
        assert response.json() == {"total": 4}

    @pytest.mark.usefixtures("site")
    def test_file_counts_one(self, client: TestClient) -> None:
        assert client.get("/count/acme/site/index.html").json() == {"total": 1}

    def test_count_denied_without_read(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        rule = {"path": "/public/**", "users": ["*"], "actions": "read"}
        config = {"acme": {"permissions": [rule]}}
        monkeypatch.setenv("PATHSTORE_ORG_CONFIG_JSON", json.dumps(config))

        response = client.get("/count/acme/internal")

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
