"""Pytest configuration and fixtures for pathstore tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from pathstore.acl import PATHSTORE_ORG_CONFIG_ENV
from pathstore.api.auth import PATHSTORE_API_KEYS_ENV
from pathstore.config import (
    ENV_COLLISION_MAX_ATTEMPTS,
    ENV_LIST_PAGE_SIZE,
    ENV_MOVE_TOKEN_SECRET,
    ENV_OBJECT_STORE_BACKEND,
    ENV_PATH_INDEX_TTL_SECONDS,
    ENV_S3_BUCKET,
)
from pathstore.storage.memory_store import InMemoryObjectStore

TEST_ORG = "acme"


@pytest.fixture(autouse=True)
def clean_pathstore_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from an unconfigured environment.

    Tests that need configuration set it explicitly with monkeypatch.
    """
    for env_var in (
        ENV_OBJECT_STORE_BACKEND,
        ENV_S3_BUCKET,
        ENV_LIST_PAGE_SIZE,
        ENV_COLLISION_MAX_ATTEMPTS,
        ENV_PATH_INDEX_TTL_SECONDS,
        ENV_MOVE_TOKEN_SECRET,
        PATHSTORE_API_KEYS_ENV,
        PATHSTORE_ORG_CONFIG_ENV,
        "PATHSTORE_OTEL_ENABLED",
    ):
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def org() -> str:
    """Return the organization used by most tests."""
    return TEST_ORG


@pytest.fixture
def store() -> InMemoryObjectStore:
    """Create an empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def seed(store: InMemoryObjectStore, org: str) -> Callable[..., None]:
    """Return a helper that writes text objects into the store."""

    def _seed(
        *keys: str, body: bytes = b"content", metadata: dict[str, str] | None = None
    ) -> None:
        for key in keys:
            store.put(org, key, body, content_type="text/plain", metadata=metadata)

    return _seed
