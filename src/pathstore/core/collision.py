"""Collision resolution for move destinations.

A move must never overwrite an existing key. When the proposed destination
is taken, a numeric suffix derived from a monotonic millisecond clock is
appended to the final segment ("bar" -> "bar-1718000000123",
"page.html" -> "page-1718000000123.html") and the check is repeated.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Final

from pathstore.config import DEFAULT_COLLISION_MAX_ATTEMPTS
from pathstore.core.errors import CollisionExhaustedError
from pathstore.paths import SEPARATOR, is_file_key, split_extension

logger = logging.getLogger(__name__)

NANOSECONDS_PER_MILLISECOND: Final[int] = 1_000_000


class MonotonicMillis:
    """Epoch-millisecond source that never yields the same value twice.

    Wall-clock milliseconds are used while they advance; when two calls land
    in the same millisecond (or the clock steps backwards) the previous
    value plus one is returned instead. Thread-safe.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        """Initialize the source.

        Args:
            clock: Returns the current time in epoch milliseconds.
                Defaults to time.time_ns() // 1_000_000.
        """
        self._clock = clock or (lambda: time.time_ns() // NANOSECONDS_PER_MILLISECOND)
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            value = max(self._clock(), self._last + 1)
            self._last = value
            return value


_default_suffix_source = MonotonicMillis()


def default_suffix_source() -> MonotonicMillis:
    """Return the process-wide suffix source shared by all resolvers."""
    return _default_suffix_source


def with_suffix(key: str, suffix: int | str) -> str:
    """Append -<suffix> to the final segment of key, before any extension."""
    head, sep, last = key.rpartition(SEPARATOR)
    if is_file_key(last):
        name, ext = split_extension(last)
        if name:
            last = f"{name}-{suffix}.{ext}"
        else:
            last = f"{last}-{suffix}"
    else:
        last = f"{last}-{suffix}"
    return f"{head}{sep}{last}"


def resolve_collision(
    candidate: str,
    exists: Callable[[str], bool],
    *,
    suffix_source: Callable[[], int] | None = None,
    max_attempts: int = DEFAULT_COLLISION_MAX_ATTEMPTS,
) -> str:
    """Return a destination key that does not collide with an existing key.

    Args:
        candidate: Proposed org-relative destination key.
        exists: Returns True when a key is taken. May be backed by a stale
            cache; a stale "taken" answer only costs an extra suffix.
        suffix_source: Produces suffix integers. Defaults to the shared
            monotonic millisecond source.
        max_attempts: Suffixed names tried before giving up.

    Returns:
        candidate itself when free, otherwise a suffixed variant.

    Raises:
        CollisionExhaustedError: If every suffixed name was also taken.
    """
    if not exists(candidate):
        return candidate

    next_suffix = suffix_source or _default_suffix_source
    for attempt in range(1, max_attempts + 1):
        proposal = with_suffix(candidate, next_suffix())
        if not exists(proposal):
            logger.debug(
                "Resolved collision: candidate=%s destination=%s attempts=%d",
                candidate,
                proposal,
                attempt,
            )
            return proposal

    logger.warning(
        "Collision resolution exhausted: candidate=%s attempts=%d", candidate, max_attempts
    )
    raise CollisionExhaustedError(
        f"No free destination found for '{candidate}' after {max_attempts} attempts",
        candidate=candidate,
        attempts=max_attempts,
    )
