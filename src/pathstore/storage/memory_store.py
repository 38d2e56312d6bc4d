"""pathstore in-memory Object Storage backend.

Process-local storage for development and testing with the same listing
semantics as S3 ListObjectsV2:
- Ascending lexicographic key order
- Delimiter roll-up into common prefixes
- Opaque continuation tokens; pages never overlap
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import threading
from datetime import UTC, datetime

from pathstore.storage.errors import (
    InvalidContinuationTokenError,
    ObjectNotFoundError,
    PreconditionFailedError,
)
from pathstore.storage.models import ListedObject, ListPage, StoredObject, StoredObjectMetadata
from pathstore.storage.object_store import ObjectStore, validate_key, validate_prefix
from pathstore.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


def _encode_token(after_key: str) -> str:
    return base64.urlsafe_b64encode(after_key.encode("utf-8")).decode("ascii")


def _decode_token(org: str, token: str) -> str:
    try:
        return base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidContinuationTokenError(org=org) from e


class InMemoryObjectStore(ObjectStore):
    """Dict-backed object storage.

    Objects are held as {(org, key): (metadata, body)}. All access is
    serialized by a lock so the store can back a threaded test server.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        """Initialize an empty store.

        Args:
            page_size: Maximum entries per listing page when the caller
                does not pass a limit.
        """
        self._objects: dict[tuple[str, str], tuple[StoredObjectMetadata, bytes]] = {}
        self._lock = threading.Lock()
        self._page_size = page_size

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

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
        stored = StoredObjectMetadata(
            org=org,
            key=key,
            size_bytes=len(data),
            content_type=content_type,
            etag=hashlib.md5(data, usedforsecurity=False).hexdigest(),
            last_modified=datetime.now(UTC),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            current = self._objects.get((org, key))
            if if_none_match and current is not None:
                raise PreconditionFailedError(org=org, key=key)
            if if_match is not None and (current is None or current[0].etag != if_match):
                raise PreconditionFailedError(org=org, key=key)
            self._objects[(org, key)] = (stored, bytes(data))

        logger.debug("Stored object: org=%s key=%s size=%d", org, key, len(data))
        return stored

    @traced_storage_operation("get")
    def get(self, org: str, key: str) -> StoredObject:
        """Retrieve an object."""
        validate_key(org, key)
        with self._lock:
            entry = self._objects.get((org, key))
        if entry is None:
            raise ObjectNotFoundError(org=org, key=key)
        metadata, body = entry
        return StoredObject(metadata=metadata, body=body)

    @traced_storage_operation("head")
    def head(self, org: str, key: str) -> StoredObjectMetadata:
        """Get object metadata without retrieving content."""
        validate_key(org, key)
        with self._lock:
            entry = self._objects.get((org, key))
        if entry is None:
            raise ObjectNotFoundError(org=org, key=key)
        return entry[0]

    @traced_storage_operation("delete")
    def delete(self, org: str, key: str) -> None:
        """Delete an object (no-op when absent)."""
        validate_key(org, key)
        with self._lock:
            removed = self._objects.pop((org, key), None)
        logger.debug("Deleted object: org=%s key=%s existed=%s", org, key, removed is not None)

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
        """List one page of objects under prefix."""
        validate_prefix(org, prefix)
        page_limit = limit if limit is not None and limit > 0 else self._page_size
        after = _decode_token(org, continuation_token) if continuation_token else None

        with self._lock:
            matching = sorted(
                (key, meta)
                for (obj_org, key), (meta, _) in self._objects.items()
                if obj_org == org and key.startswith(prefix)
            )

        objects: list[ListedObject] = []
        common_prefixes: list[str] = []
        last_emitted: str | None = None
        truncated = False

        for key, meta in matching:
            if after is not None:
                if key <= after:
                    continue
                # A rolled-up prefix was the last entry; skip everything under it.
                if delimiter and after.endswith(delimiter) and key.startswith(after):
                    continue

            entry: str | ListedObject
            if delimiter:
                remainder = key[len(prefix) :]
                idx = remainder.find(delimiter)
                if idx >= 0:
                    rolled = prefix + remainder[: idx + len(delimiter)]
                    if common_prefixes and common_prefixes[-1] == rolled:
                        continue
                    entry = rolled
                else:
                    entry = ListedObject(
                        key=key, size_bytes=meta.size_bytes, last_modified=meta.last_modified
                    )
            else:
                entry = ListedObject(
                    key=key, size_bytes=meta.size_bytes, last_modified=meta.last_modified
                )

            if len(objects) + len(common_prefixes) >= page_limit:
                truncated = True
                break

            if isinstance(entry, str):
                common_prefixes.append(entry)
                last_emitted = entry
            else:
                objects.append(entry)
                last_emitted = entry.key

        next_token = _encode_token(last_emitted) if truncated and last_emitted else None
        return ListPage(
            objects=objects,
            common_prefixes=common_prefixes,
            next_continuation_token=next_token,
        )
