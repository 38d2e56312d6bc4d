"""Error taxonomy for structural mutations.

Each error carries the HTTP status the routing layer answers with. Core
entry points that promise structured results catch these and return a
MutationError value instead of letting them cross the boundary.
"""

from __future__ import annotations


class PathStoreError(Exception):
    """Base exception for pathstore core failures.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status the failure maps to.
        code: Machine-readable error code.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(PathStoreError):
    """Malformed payload or missing required field."""

    status_code = 400
    code = "INVALID_REQUEST"


class IllegalMoveError(PathStoreError):
    """Destination is the source itself or lies beneath it."""

    status_code = 400
    code = "ILLEGAL_MOVE"


class NotFoundError(PathStoreError):
    """Referenced primary key or version does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class CollisionExhaustedError(PathStoreError):
    """No disambiguated destination could be found within the attempt budget."""

    status_code = 500
    code = "COLLISION_EXHAUSTED"

    def __init__(self, message: str, *, candidate: str, attempts: int) -> None:
        super().__init__(message)
        self.candidate = candidate
        self.attempts = attempts


class WriteConflictError(PathStoreError):
    """The object kept changing while a write was retried."""

    status_code = 409
    code = "WRITE_CONFLICT"
