"""pathstore object storage error types.

Typed exceptions for backend operations. Backends translate their native
failures (boto3 ClientError, missing dict entries) into these types so the
core never sees backend-specific errors.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        org: Organization associated with the operation (if applicable).
        key: Org-relative object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        org: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.org = org
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.org:
            parts.append(f"org={self.org}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object is not present in storage."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        org: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, org=org, key=key)


class PathTraversalError(ObjectStorageError):
    """Raised when an object key could escape its org namespace.

    Keys like "../x", "a\\b", "/abs" or keys with NUL bytes are rejected
    before they reach a backend.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        org: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, org=org, key=key)


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    Indicates the backend itself failed (network, throttling, permissions)
    rather than a logical error like object not found.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        org: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, org=org, key=key)
        self.cause = cause


class InvalidContinuationTokenError(ObjectStorageError):
    """Raised when a listing cursor was not issued by this backend or is corrupt."""

    def __init__(
        self,
        message: str = "Invalid continuation token",
        *,
        org: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, org=org, key=key)


class PreconditionFailedError(ObjectStorageError):
    """Raised when a conditional write finds the object changed underneath it."""

    def __init__(
        self,
        message: str = "Object changed since it was read",
        *,
        org: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, org=org, key=key)
