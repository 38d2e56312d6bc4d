"""pathstore Object Storage interface definition.

Provides the ObjectStore interface that all storage backends implement, plus
the key validation shared by every backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pathstore.storage.errors import ObjectNotFoundError, PathTraversalError
from pathstore.storage.models import ListPage, StoredObject, StoredObjectMetadata


def is_path_traversal(key: str) -> bool:
    """Check if a key could escape the org namespace.

    Detects:
    - Empty keys
    - Null bytes and backslashes
    - Absolute paths (leading "/" or "~")
    - ".." or "." segments
    """
    if not key:
        return True

    if "\x00" in key or "\\" in key:
        return True

    if key.startswith("/") or key.startswith("~"):
        return True

    return any(segment in ("..", ".") for segment in key.split("/"))


def validate_key(org: str, key: str) -> None:
    """Validate an object key and raise if unsafe."""
    if is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            org=org,
            key=key,
        )


def validate_prefix(org: str, prefix: str) -> None:
    """Validate a listing prefix. The empty prefix (whole org) is allowed."""
    if prefix:
        validate_key(org, prefix)


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    Keys are org-relative ("site/docs/page.html"); each backend maps them
    onto its own physical namespace ("<org>/site/docs/page.html").

    There is no rename primitive and no multi-key transaction: every call
    is an independent single-key operation, except list_objects which reads
    a consistent-enough page of a prefix.

    Implementations:
    - InMemoryObjectStore: process-local dict (dev/test)
    - S3ObjectStore: AWS S3 and S3-compatible stores (production)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g., "memory", "s3")."""
        ...

    @abstractmethod
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
        """Store an object, replacing any existing content at the key.

        Args:
            org: Organization namespace.
            key: Org-relative key for the object.
            data: Object content as bytes.
            content_type: Optional MIME type of the content.
            metadata: Optional custom string metadata stored with the object.
            if_match: Only write when the current object has this etag.
            if_none_match: Only write when no object exists at the key.

        Returns:
            Metadata for the stored object.

        Raises:
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the write.
            PreconditionFailedError: If a write condition does not hold.
        """
        ...

    @abstractmethod
    def get(self, org: str, key: str) -> StoredObject:
        """Retrieve an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def head(self, org: str, key: str) -> StoredObjectMetadata:
        """Get object metadata without retrieving content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the operation.
        """
        ...

    @abstractmethod
    def delete(self, org: str, key: str) -> None:
        """Delete an object.

        Deleting a key that does not exist is not an error, so a retried
        move can safely re-run its delete step.

        Raises:
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def list_objects(
        self,
        org: str,
        prefix: str,
        *,
        delimiter: str | None = None,
        continuation_token: str | None = None,
        limit: int | None = None,
    ) -> ListPage:
        """List one page of objects whose key starts with prefix.

        Args:
            org: Organization namespace.
            prefix: Org-relative key prefix ("" lists the whole org).
            delimiter: When set, keys containing the delimiter after the
                prefix are rolled up into common_prefixes.
            continuation_token: Cursor returned by a previous page.
            limit: Maximum number of entries (objects + prefixes) per page.

        Returns:
            ListPage in ascending key order. Pages never overlap.

        Raises:
            PathTraversalError: If prefix contains traversal sequences.
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...

    def exists(self, org: str, key: str) -> bool:
        """Return True if an object is stored at exactly this key."""
        try:
            self.head(org, key)
        except ObjectNotFoundError:
            return False
        return True
