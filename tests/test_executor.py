"""Tests for executing copy/move/delete plans."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from pathstore.core.executor import PlanExecutor
from pathstore.core.lineage import META_ID, META_PATH, decode_users
from pathstore.core.move_tokens import MoveTokenSigner
from pathstore.core.path_index import PathIndex
from pathstore.core.plans import DestinationPlan, MutationKind
from pathstore.storage.errors import StorageBackendError
from pathstore.storage.memory_store import InMemoryObjectStore
from pathstore.storage.models import StoredObjectMetadata


class FlakyStore(InMemoryObjectStore):
    """In-memory store whose puts fail a set number of times per key."""

    def __init__(self, failures: dict[str, int]) -> None:
        super().__init__()
        self._failures = dict(failures)

    def put(self, org: str, key: str, data: bytes, **kwargs: Any) -> StoredObjectMetadata:
        remaining = self._failures.get(key, 0)
        if remaining:
            self._failures[key] = remaining - 1
            raise StorageBackendError(message="transient", org=org, key=key)
        return super().put(org, key, data, **kwargs)


class UndeletableStore(InMemoryObjectStore):
    """In-memory store that refuses to delete."""

    def delete(self, org: str, key: str) -> None:
        raise StorageBackendError(message="denied", org=org, key=key)


@pytest.fixture
def executor(store: InMemoryObjectStore) -> PlanExecutor:
    return PlanExecutor(store, clock=lambda: 1_700_000_000_000)


def keys_of(store: InMemoryObjectStore, org: str = "acme") -> list[str]:
    return store.list_objects(org, "").keys


class TestCopy:
    """Tests for copy execution."""

    def test_copy_folder_tree(
        self, store: InMemoryObjectStore, seed: Callable[..., None], executor: PlanExecutor
    ) -> None:
        seed("docs.props", "docs/a.html", "docs/sub/b.html")
        plan = DestinationPlan("docs", "archive", MutationKind.COPY)

        result = executor.copy("acme", plan)

        assert result.complete
        assert result.total == 3
        assert keys_of(store) == [
            "archive.props",
            "archive/a.html",
            "archive/sub/b.html",
            "docs.props",
            "docs/a.html",
            "docs/sub/b.html",
        ]
        assert store.get("acme", "archive/sub/b.html").body == b"content"

    def test_copy_starts_new_lineage(
        self, store: InMemoryObjectStore, seed: Callable[..., None], executor: PlanExecutor
    ) -> None:
        seed("a.html", metadata={META_ID: "lineage-1", META_PATH: "a.html"})

        plan = DestinationPlan("a.html", "b.html", MutationKind.COPY)
        executor.copy("acme", plan, users=["x@y.z"])

        copied = store.head("acme", "b.html").metadata
        assert copied[META_ID] != "lineage-1"
        assert copied[META_PATH] == "b.html"
        assert decode_users(copied["users"]) == [{"email": "x@y.z"}]
        assert store.head("acme", "a.html").metadata[META_ID] == "lineage-1"

    def test_missing_source_reported(self, executor: PlanExecutor) -> None:
        result = executor.copy("acme", DestinationPlan("gone.html", "b.html", MutationKind.COPY))

        assert result.all_missing
        assert result.failed[0].status == 404

    def test_transient_failure_retried_once(self, org: str) -> None:
        store = FlakyStore({"b.html": 1})
        store.put(org, "a.html", b"x")

        result = PlanExecutor(store).copy(org, DestinationPlan("a.html", "b.html"))

        assert result.complete
        assert store.get(org, "b.html").body == b"x"

    def test_persistent_failure_reported(self, org: str) -> None:
        store = FlakyStore({"b.html": 5})
        store.put(org, "a.html", b"x")

        result = PlanExecutor(store).copy(org, DestinationPlan("a.html", "b.html"))

        assert not result.complete
        assert result.failed[0].status == 500
        assert result.to_dict()["failed"][0]["key"] == "a.html"


class TestMove:
    """Tests for move execution."""

    def test_move_keeps_lineage_and_removes_source(
        self, store: InMemoryObjectStore, seed: Callable[..., None], executor: PlanExecutor
    ) -> None:
        seed("docs/a.html", metadata={META_ID: "lineage-1", META_PATH: "docs/a.html"})
        seed("docs.props")

        result = executor.move("acme", DestinationPlan("docs", "archive"))

        assert result.complete
        assert keys_of(store) == ["archive.props", "archive/a.html"]
        moved = store.head("acme", "archive/a.html").metadata
        assert moved[META_ID] == "lineage-1"
        assert moved[META_PATH] == "archive/a.html"

    def test_move_updates_path_index(
        self, store: InMemoryObjectStore, seed: Callable[..., None]
    ) -> None:
        seed("a.html")
        index = PathIndex(30)
        index.remember("acme", "a.html")

        PlanExecutor(store, index=index).move("acme", DestinationPlan("a.html", "b.html"))

        assert index.contains("acme", "b.html")
        assert not index.contains("acme", "a.html")

    def test_failed_delete_reported(self, org: str) -> None:
        store = UndeletableStore()
        store.put(org, "a.html", b"x")

        result = PlanExecutor(store).move(org, DestinationPlan("a.html", "b.html"))

        assert not result.complete
        assert "source not deleted" in (result.failed[0].error or "")
        assert store.exists(org, "b.html")

    def test_batched_move_resumes_with_token(
        self, store: InMemoryObjectStore, seed: Callable[..., None]
    ) -> None:
        seed(*(f"docs/{i}.html" for i in range(5)))
        signer = MoveTokenSigner("test-secret")
        executor = PlanExecutor(store, page_size=2, move_tokens=signer)

        first = executor.move("acme", DestinationPlan("docs", "archive"), batched=True)
        assert first.total == 2
        assert first.continuation_token is not None

        token = first.continuation_token
        total = first.total
        while token:
            resume = signer.verify(token, "docs")
            assert resume.destination == "archive"
            step = executor.move(
                "acme",
                DestinationPlan("docs", resume.destination, continuation_token=resume.store_token),
                batched=True,
            )
            total += step.total
            token = step.continuation_token

        assert total == 5
        assert keys_of(store) == [f"archive/{i}.html" for i in range(5)]


class TestDelete:
    """Tests for delete execution."""

    def test_delete_folder(
        self, store: InMemoryObjectStore, seed: Callable[..., None], executor: PlanExecutor
    ) -> None:
        seed("docs", "docs.props", "docs/a.html", "keep.html")

        result = executor.delete("acme", "docs")

        assert result.complete
        assert result.total == 3
        assert keys_of(store) == ["keep.html"]

    def test_delete_absent_file_is_idempotent(self, executor: PlanExecutor) -> None:
        result = executor.delete("acme", "gone.html")

        assert result.complete
        assert result.succeeded == 1
