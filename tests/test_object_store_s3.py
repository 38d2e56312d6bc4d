"""Tests for the S3 Object Storage backend.

The boto3 client is driven through botocore's Stubber, so every request
the backend makes is checked against the expected S3 API call.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from pathstore.config import ConfigError, Settings
from pathstore.storage import create_object_store
from pathstore.storage.errors import (
    InvalidContinuationTokenError,
    ObjectNotFoundError,
    PathTraversalError,
    PreconditionFailedError,
    StorageBackendError,
)
from pathstore.storage.s3_store import S3ObjectStore

BUCKET = "pathstore-test"
MODIFIED = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def s3_client() -> Any:
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client: Any) -> Iterator[Stubber]:
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def s3_store(s3_client: Any, stubber: Stubber) -> S3ObjectStore:
    return S3ObjectStore(BUCKET, s3_client, page_size=2)


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


class TestReadWrite:
    """Tests for single-object operations."""

    def test_put_prefixes_key_with_org(self, s3_store: S3ObjectStore, stubber: Stubber) -> None:
        stubber.add_response(
            "put_object",
            {"ETag": '"abc123"'},
            {
                "Bucket": BUCKET,
                "Key": "acme/site/page.html",
                "Body": b"<p>hi</p>",
                "Metadata": {"id": "lineage-1"},
                "ContentType": "text/html",
            },
        )

        metadata = s3_store.put(
            "acme",
            "site/page.html",
            b"<p>hi</p>",
            content_type="text/html",
            metadata={"id": "lineage-1"},
        )

        assert metadata.etag == "abc123"
        assert metadata.size_bytes == 9
        assert metadata.metadata == {"id": "lineage-1"}

    def test_conditional_put_sends_preconditions(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_response(
            "put_object",
            {"ETag": '"new"'},
            {
                "Bucket": BUCKET,
                "Key": "acme/a.txt",
                "Body": b"x",
                "Metadata": {},
                "IfMatch": '"old"',
            },
        )
        stubber.add_response(
            "put_object",
            {"ETag": '"fresh"'},
            {
                "Bucket": BUCKET,
                "Key": "acme/b.txt",
                "Body": b"x",
                "Metadata": {},
                "IfNoneMatch": "*",
            },
        )

        assert s3_store.put("acme", "a.txt", b"x", if_match="old").etag == "new"
        assert s3_store.put("acme", "b.txt", b"x", if_none_match=True).etag == "fresh"

    @pytest.mark.parametrize("code", ["PreconditionFailed", "ConditionalRequestConflict"])
    def test_failed_precondition_maps_to_precondition_error(
        self, s3_store: S3ObjectStore, stubber: Stubber, code: str
    ) -> None:
        stubber.add_client_error("put_object", service_error_code=code, http_status_code=412)

        with pytest.raises(PreconditionFailedError):
            s3_store.put("acme", "a.txt", b"x", if_match="old")

    def test_get_returns_body_and_metadata(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_response(
            "get_object",
            {
                "Body": _body(b"hello"),
                "ContentLength": 5,
                "ContentType": "text/plain",
                "ETag": '"e1"',
                "LastModified": MODIFIED,
                "Metadata": {"label": "first"},
            },
            {"Bucket": BUCKET, "Key": "acme/a.txt"},
        )

        result = s3_store.get("acme", "a.txt")

        assert result.body == b"hello"
        assert result.metadata.etag == "e1"
        assert result.metadata.last_modified == MODIFIED
        assert result.metadata.metadata == {"label": "first"}

    def test_missing_object_maps_to_not_found(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        with pytest.raises(ObjectNotFoundError):
            s3_store.head("acme", "gone.html")

    def test_exists_uses_head(self, s3_store: S3ObjectStore, stubber: Stubber) -> None:
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        assert not s3_store.exists("acme", "gone.html")

    def test_other_errors_map_to_backend_error(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_client_error(
            "get_object", service_error_code="AccessDenied", http_status_code=403
        )

        with pytest.raises(StorageBackendError):
            s3_store.get("acme", "a.txt")

    def test_delete(self, s3_store: S3ObjectStore, stubber: Stubber) -> None:
        stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "acme/a.txt"})

        s3_store.delete("acme", "a.txt")

    def test_traversal_rejected_without_request(self, s3_store: S3ObjectStore) -> None:
        with pytest.raises(PathTraversalError):
            s3_store.get("acme", "../other/a.txt")


class TestListing:
    """Tests for ListObjectsV2 translation."""

    def test_list_strips_org_prefix_and_follows_truncation(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [
                    {"Key": "acme/docs/a.html", "Size": 1, "LastModified": MODIFIED},
                    {"Key": "acme/docs/b.html", "Size": 2, "LastModified": MODIFIED},
                ],
                "IsTruncated": True,
                "NextContinuationToken": "next-1",
                "KeyCount": 2,
            },
            {"Bucket": BUCKET, "Prefix": "acme/docs/", "MaxKeys": 2},
        )

        page = s3_store.list_objects("acme", "docs/")

        assert page.keys == ["docs/a.html", "docs/b.html"]
        assert page.next_continuation_token == "next-1"

    def test_list_with_delimiter_and_token(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_response(
            "list_objects_v2",
            {
                "CommonPrefixes": [{"Prefix": "acme/docs/sub/"}],
                "IsTruncated": False,
                "KeyCount": 1,
            },
            {
                "Bucket": BUCKET,
                "Prefix": "acme/docs/",
                "MaxKeys": 2,
                "Delimiter": "/",
                "ContinuationToken": "next-1",
            },
        )

        page = s3_store.list_objects(
            "acme", "docs/", delimiter="/", continuation_token="next-1"
        )

        assert page.keys == []
        assert page.common_prefixes == ["docs/sub/"]
        assert page.next_continuation_token is None

    def test_bad_token_maps_to_invalid_token(
        self, s3_store: S3ObjectStore, stubber: Stubber
    ) -> None:
        stubber.add_client_error(
            "list_objects_v2", service_error_code="InvalidArgument", http_status_code=400
        )

        with pytest.raises(InvalidContinuationTokenError):
            s3_store.list_objects("acme", "docs/", continuation_token="bogus")


class TestFactory:
    """Tests for building the S3 backend from settings."""

    def test_s3_backend_requires_bucket(self) -> None:
        with pytest.raises(ConfigError):
            Settings(backend="s3")

    def test_s3_backend_selected(self) -> None:
        settings = Settings(backend="s3", s3_bucket=BUCKET, s3_region="us-east-1")

        store = create_object_store(settings)

        assert store.backend_name == "s3"
        assert isinstance(store, S3ObjectStore)
        assert store.bucket == BUCKET
