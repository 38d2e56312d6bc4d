"""Tests for the pathstore API error envelope and request IDs.

Tests cover:
A) Routing errors use the normative envelope
B) Request IDs are reused or generated and echoed back
C) Unhandled exceptions return a safe 500 envelope
"""

from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient

from pathstore.api.error_model import get_error_code_for_status
from pathstore.api.main import create_app
from pathstore.api.middleware.request_id import MAX_REQUEST_ID_LENGTH, REQUEST_ID_HEADER
from pathstore.storage.memory_store import InMemoryObjectStore
from pathstore.storage.models import StoredObject


class ExplodingStore(InMemoryObjectStore):
    """Store whose reads fail with an unexpected error."""

    def get(self, org: str, key: str) -> StoredObject:
        raise RuntimeError("disk on fire: secret-token")


@pytest.fixture
def client(store: InMemoryObjectStore) -> TestClient:
    return TestClient(create_app(store=store))


class TestErrorEnvelope:
    """Tests for the shape of error responses."""

    def test_unknown_route(self, client: TestClient) -> None:
        response = client.get("/nowhere")

        assert response.status_code == 404
        body = response.json()
        assert set(body) == {"code", "message", "details", "request_id"}
        assert body["code"] == "NOT_FOUND"
        assert response.headers[REQUEST_ID_HEADER] == body["request_id"]

    def test_method_not_allowed(self, client: TestClient) -> None:
        response = client.patch("/source/acme/a.html")

        assert response.status_code == 405
        assert response.json()["code"] == "METHOD_NOT_ALLOWED"

    def test_missing_object(self, client: TestClient) -> None:
        response = client.get("/source/acme/missing.html")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_unexpected_error_is_safe(self) -> None:
        client = TestClient(create_app(store=ExplodingStore()), raise_server_exceptions=False)

        response = client.get("/source/acme/a.html")

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert "secret-token" not in response.text
        assert body["request_id"]

    @pytest.mark.parametrize(
        ("status", "code"),
        [(400, "BAD_REQUEST"), (403, "FORBIDDEN"), (409, "CONFLICT"), (418, "ERROR")],
    )
    def test_codes_for_status(self, status: int, code: str) -> None:
        assert get_error_code_for_status(status) == code


class TestRequestId:
    """Tests for request ID propagation."""

    def test_incoming_id_reused(self, client: TestClient) -> None:
        response = client.get("/health", headers={REQUEST_ID_HEADER: "abc-123"})

        assert response.headers[REQUEST_ID_HEADER] == "abc-123"

    def test_generated_when_missing(self, client: TestClient) -> None:
        response = client.get("/health")

        uuid.UUID(response.headers[REQUEST_ID_HEADER])

    def test_oversized_id_replaced(self, client: TestClient) -> None:
        oversized = "x" * (MAX_REQUEST_ID_LENGTH + 1)

        response = client.get("/health", headers={REQUEST_ID_HEADER: oversized})

        assert response.headers[REQUEST_ID_HEADER] != oversized
