"""Short-lived cache of known-existing keys.

Accelerates the existence checks made during collision resolution. The
index is a cache, never a source of truth: only positive answers are
remembered, so a stale entry can make a free name look taken (one extra
suffix) but can never make a taken name look free (an overwrite).
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from pathstore.config import DEFAULT_PATH_INDEX_TTL_SECONDS
from pathstore.paths import SEPARATOR, is_file_key, props_key
from pathstore.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


class PathIndex:
    """TTL cache of (org, key) pairs observed to exist.

    Thread-safe. Entries expire after ttl_seconds; a ttl of 0 disables
    caching entirely.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_PATH_INDEX_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def contains(self, org: str, key: str) -> bool:
        """Return True if the key was recently observed to exist."""
        with self._lock:
            expires_at = self._entries.get((org, key.casefold()))
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._entries[(org, key.casefold())]
                return False
            return True

    def remember(self, org: str, key: str) -> None:
        """Record that a key exists."""
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[(org, key.casefold())] = self._clock() + self._ttl

    def forget(self, org: str, key: str) -> None:
        """Drop a key, e.g. after it was deleted or moved away."""
        with self._lock:
            self._entries.pop((org, key.casefold()), None)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def key_exists(store: ObjectStore, org: str, key: str) -> bool:
    """Check the store for a file or folder at key.

    A file exists when the object exists. A folder exists when its marker
    object, its props marker or at least one child is present.
    """
    if store.exists(org, key):
        return True
    if is_file_key(key):
        return False
    if store.exists(org, props_key(key)):
        return True
    page = store.list_objects(org, f"{key}{SEPARATOR}", limit=1)
    return bool(page.objects)


def existence_check(
    store: ObjectStore,
    org: str,
    index: PathIndex | None = None,
) -> Callable[[str], bool]:
    """Build the exists(key) callable used by collision resolution."""

    def exists(key: str) -> bool:
        if index is not None and index.contains(org, key):
            return True
        found = key_exists(store, org, key)
        if found and index is not None:
            index.remember(org, key)
        return found

    return exists
