"""pathstore S3 Object Storage backend.

Stores every org under one bucket with org-prefixed keys:

    s3://{bucket}/{org}/{key}

Custom metadata travels as S3 user metadata (x-amz-meta-*), which S3
lower-cases; pathstore metadata keys are lower-case already.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from pathstore.config import Settings
from pathstore.storage.errors import (
    InvalidContinuationTokenError,
    ObjectNotFoundError,
    PreconditionFailedError,
    StorageBackendError,
)
from pathstore.storage.models import ListedObject, ListPage, StoredObject, StoredObjectMetadata
from pathstore.storage.object_store import ObjectStore, validate_key, validate_prefix
from pathstore.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_PRECONDITION_CODES = frozenset({"PreconditionFailed", "412", "ConditionalRequestConflict"})
_MAX_KEYS_CEILING = 1000


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def create_s3_client(settings: Settings) -> Any:
    """Build a boto3 S3 client from settings."""
    session = boto3.Session(region_name=settings.s3_region)
    return session.client(
        "s3",
        region_name=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
        config=BotoConfig(retries={"max_attempts": 5, "mode": "standard"}),
    )


class S3ObjectStore(ObjectStore):
    """S3-backed object storage.

    The bucket is shared by all orgs; the org is the first key segment, so
    a prefix listing never crosses org boundaries.
    """

    def __init__(self, bucket: str, client: Any, *, page_size: int = _MAX_KEYS_CEILING) -> None:
        """Initialize the backend.

        Args:
            bucket: Bucket name.
            client: boto3 S3 client (or a stubbed client in tests).
            page_size: Default MaxKeys for listings (capped at 1000 by S3).
        """
        self._bucket = bucket
        self._client = client
        self._page_size = min(page_size, _MAX_KEYS_CEILING)

    @classmethod
    def from_settings(cls, settings: Settings) -> S3ObjectStore:
        """Create a store from validated settings."""
        if not settings.s3_bucket:
            raise StorageBackendError(message="S3 bucket is not configured")
        return cls(
            settings.s3_bucket,
            create_s3_client(settings),
            page_size=settings.list_page_size,
        )

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "s3"

    @property
    def bucket(self) -> str:
        """Return the bucket name."""
        return self._bucket

    def _physical_key(self, org: str, key: str) -> str:
        return f"{org}/{key}"

    def _metadata_from_response(
        self, org: str, key: str, resp: dict[str, Any]
    ) -> StoredObjectMetadata:
        last_modified = resp.get("LastModified")
        if not isinstance(last_modified, datetime):
            last_modified = datetime.now(UTC)
        return StoredObjectMetadata(
            org=org,
            key=key,
            size_bytes=int(resp.get("ContentLength", 0)),
            content_type=resp.get("ContentType"),
            etag=str(resp.get("ETag", "")).strip('"'),
            last_modified=last_modified,
            metadata={str(k): str(v) for k, v in (resp.get("Metadata") or {}).items()},
        )

    def _translate(self, error: Exception, org: str, key: str, action: str) -> Exception:
        if isinstance(error, ClientError):
            code = _error_code(error)
            if code in _NOT_FOUND_CODES:
                return ObjectNotFoundError(org=org, key=key)
            if code in _PRECONDITION_CODES and action == "put":
                return PreconditionFailedError(org=org, key=key)
            if code == "InvalidArgument" and action == "list":
                return InvalidContinuationTokenError(org=org, key=key)
        return StorageBackendError(
            message=f"Failed to {action} object: {error}",
            org=org,
            key=key,
            cause=error,
        )

    @traced_storage_operation("put")
    def put(
        self,
        org: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        if_match: str | None = None,
        if_none_match: bool = False,
    ) -> StoredObjectMetadata:
        """Store an object."""
        validate_key(org, key)
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": self._physical_key(org, key),
            "Body": data,
            "Metadata": dict(metadata or {}),
        }
        if content_type:
            params["ContentType"] = content_type
        if if_match is not None:
            params["IfMatch"] = f'"{if_match}"'
        if if_none_match:
            params["IfNoneMatch"] = "*"

        try:
            resp = self._client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, org, key, "put") from e

        logger.debug("Stored object: bucket=%s org=%s key=%s", self._bucket, org, key)
        return StoredObjectMetadata(
            org=org,
            key=key,
            size_bytes=len(data),
            content_type=content_type,
            etag=str(resp.get("ETag", "")).strip('"'),
            last_modified=datetime.now(UTC),
            metadata=dict(metadata or {}),
        )

    @traced_storage_operation("get")
    def get(self, org: str, key: str) -> StoredObject:
        """Retrieve an object."""
        validate_key(org, key)
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=self._physical_key(org, key))
            body = resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, org, key, "get") from e
        return StoredObject(metadata=self._metadata_from_response(org, key, resp), body=body)

    @traced_storage_operation("head")
    def head(self, org: str, key: str) -> StoredObjectMetadata:
        """Get object metadata without retrieving content."""
        validate_key(org, key)
        try:
            resp = self._client.head_object(Bucket=self._bucket, Key=self._physical_key(org, key))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, org, key, "head") from e
        return self._metadata_from_response(org, key, resp)

    @traced_storage_operation("delete")
    def delete(self, org: str, key: str) -> None:
        """Delete an object. S3 reports success for absent keys."""
        validate_key(org, key)
        try:
            self._client.delete_object(Bucket=self._bucket, Key=self._physical_key(org, key))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, org, key, "delete") from e
        logger.debug("Deleted object: bucket=%s org=%s key=%s", self._bucket, org, key)

    @traced_storage_operation("list_objects")
    def list_objects(
        self,
        org: str,
        prefix: str,
        *,
        delimiter: str | None = None,
        continuation_token: str | None = None,
        limit: int | None = None,
    ) -> ListPage:
        """List one page of objects under prefix via ListObjectsV2."""
        validate_prefix(org, prefix)
        org_prefix = f"{org}/"
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Prefix": f"{org_prefix}{prefix}",
            "MaxKeys": min(limit or self._page_size, _MAX_KEYS_CEILING),
        }
        if delimiter:
            params["Delimiter"] = delimiter
        if continuation_token:
            params["ContinuationToken"] = continuation_token

        try:
            resp = self._client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, org, prefix, "list") from e

        objects = [
            ListedObject(
                key=item["Key"][len(org_prefix) :],
                size_bytes=int(item.get("Size", 0)),
                last_modified=item.get("LastModified") or datetime.now(UTC),
            )
            for item in resp.get("Contents", [])
            if item["Key"].startswith(org_prefix)
        ]
        common_prefixes = [
            item["Prefix"][len(org_prefix) :]
            for item in resp.get("CommonPrefixes", [])
            if item["Prefix"].startswith(org_prefix)
        ]
        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None

        return ListPage(
            objects=objects,
            common_prefixes=common_prefixes,
            next_continuation_token=next_token,
        )
