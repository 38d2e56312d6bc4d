"""pathstore Object Storage abstraction.

Provides org-scoped object storage over a flat key namespace.

Backends:
- InMemoryObjectStore: process-local (dev/test)
- S3ObjectStore: AWS S3 and S3-compatible stores (production)

Environment Variables:
    PATHSTORE_OBJECT_STORE_BACKEND: "memory" or "s3" (default: "memory")
    PATHSTORE_S3_BUCKET: Bucket for the s3 backend
"""

from __future__ import annotations

from pathstore.config import Settings
from pathstore.storage.errors import (
    InvalidContinuationTokenError,
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    PreconditionFailedError,
    StorageBackendError,
)
from pathstore.storage.memory_store import InMemoryObjectStore
from pathstore.storage.models import ListedObject, ListPage, StoredObject, StoredObjectMetadata
from pathstore.storage.object_store import ObjectStore


def create_object_store(settings: Settings) -> ObjectStore:
    """Create the object store backend selected by settings."""
    if settings.backend == "s3":
        from pathstore.storage.s3_store import S3ObjectStore

        return S3ObjectStore.from_settings(settings)
    return InMemoryObjectStore(page_size=settings.list_page_size)


__all__ = [
    "InMemoryObjectStore",
    "InvalidContinuationTokenError",
    "ListPage",
    "ListedObject",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ObjectStore",
    "PathTraversalError",
    "PreconditionFailedError",
    "StorageBackendError",
    "StoredObject",
    "StoredObjectMetadata",
    "create_object_store",
]
