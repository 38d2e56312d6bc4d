"""Key enumeration under a file or folder key.

A file key enumerates to itself. A folder key enumerates to its marker
object and "<folder>.props" marker (when present) followed by every key
under "<folder>/", following continuation tokens until the listing is
exhausted. Enumeration is lazy and restartable: each call reads the store
afresh instead of resuming earlier state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime

from pathstore.paths import (
    PROPS_EXTENSION,
    SEPARATOR,
    basename,
    is_file_key,
    props_key,
    split_extension,
)
from pathstore.storage.errors import InvalidContinuationTokenError
from pathstore.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyPage:
    """One page of enumerated keys.

    Attributes:
        keys: Keys on this page.
        continuation_token: Resume point, None when enumeration is complete.
    """

    keys: list[str] = field(default_factory=list)
    continuation_token: str | None = None


@dataclass(frozen=True)
class ListingEntry:
    """A key annotated for presentation.

    Attributes:
        key: Org-relative key.
        path: Org-qualified path ("/org/key").
        name: Final segment without extension.
        ext: Extension, None for folders.
        is_folder: True for folders (including folders represented only by
            their ".props" marker).
        last_modified: Epoch milliseconds of the last write (files only).
    """

    key: str
    path: str
    name: str
    ext: str | None
    is_folder: bool
    last_modified: int | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"path": self.path, "name": self.name}
        if self.ext is not None:
            data["ext"] = self.ext
        if self.last_modified is not None:
            data["lastModified"] = self.last_modified
        return data


def _children_prefix(prefix_key: str) -> str:
    return f"{prefix_key}{SEPARATOR}" if prefix_key else ""


def _marker_keys(store: ObjectStore, org: str, prefix_key: str) -> list[str]:
    if not prefix_key:
        return []
    return [key for key in (prefix_key, props_key(prefix_key)) if store.exists(org, key)]


def iter_all_keys(
    store: ObjectStore,
    org: str,
    prefix_key: str,
    *,
    page_size: int | None = None,
) -> Iterator[str]:
    """Yield every key under prefix_key exactly once.

    Args:
        store: Object store to enumerate.
        org: Organization namespace.
        prefix_key: File key, folder key, or "" for the whole org.
        page_size: Listing page size forwarded to the store.

    Yields:
        Org-relative keys: the markers first, then descendants in store order.
    """
    if is_file_key(prefix_key):
        yield prefix_key
        return

    seen: set[str] = set()
    for key in _marker_keys(store, org, prefix_key):
        seen.add(key)
        yield key

    children_prefix = _children_prefix(prefix_key)
    token: str | None = None
    pages = 0
    while True:
        page = store.list_objects(org, children_prefix, continuation_token=token, limit=page_size)
        pages += 1
        for key in page.keys:
            if key in seen:
                continue
            seen.add(key)
            yield key
        token = page.next_continuation_token
        if not token:
            break

    logger.debug(
        "Enumerated org=%s prefix=%s keys=%d pages=%d", org, prefix_key, len(seen), pages
    )


def list_all_keys(
    store: ObjectStore,
    org: str,
    prefix_key: str,
    *,
    page_size: int | None = None,
) -> list[str]:
    """Return every key under prefix_key (see iter_all_keys)."""
    return list(iter_all_keys(store, org, prefix_key, page_size=page_size))


def count_keys(
    store: ObjectStore,
    org: str,
    prefix_key: str,
    *,
    page_size: int | None = None,
) -> int:
    """Count the keys a move/copy/delete of prefix_key would touch."""
    return sum(1 for _ in iter_all_keys(store, org, prefix_key, page_size=page_size))


def list_keys_page(
    store: ObjectStore,
    org: str,
    prefix_key: str,
    *,
    continuation_token: str | None = None,
    limit: int | None = None,
) -> KeyPage:
    """Return one page of keys for batched operations.

    The first page (no continuation token) also carries the folder markers,
    so a caller resuming with each returned token sees every key once.

    Raises:
        InvalidContinuationTokenError: If a token is given for a file key.
    """
    if is_file_key(prefix_key):
        if continuation_token:
            raise InvalidContinuationTokenError(org=org, key=prefix_key)
        return KeyPage(keys=[prefix_key])

    keys = [] if continuation_token else _marker_keys(store, org, prefix_key)
    page = store.list_objects(
        org,
        _children_prefix(prefix_key),
        continuation_token=continuation_token,
        limit=limit,
    )
    keys.extend(page.keys)
    return KeyPage(keys=keys, continuation_token=page.next_continuation_token)


def to_listing_entries(org: str, keys: list[str]) -> list[ListingEntry]:
    """Annotate keys 1:1 with folder/file classification."""
    entries = []
    for key in keys:
        name, ext = split_extension(basename(key))
        entries.append(
            ListingEntry(
                key=key,
                path=f"/{org}/{key}",
                name=name,
                ext=ext,
                # "file.jpg.props" is a sidecar, not a folder marker.
                is_folder=ext is None or (ext == PROPS_EXTENSION and "." not in name),
            )
        )
    return entries


def _epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def list_children(
    store: ObjectStore,
    org: str,
    prefix_key: str,
    *,
    page_size: int | None = None,
) -> list[ListingEntry]:
    """One-level directory listing of a folder, sorted by name.

    - Rolled-up prefixes become folders, except extension "folders"
      ("image.jpg/")
    - "name.props" becomes a folder unless that folder is already listed
    - Sidecars ("file.jpg.props"), multi-dot names and hidden dot-files
      are not listed
    """
    folders: list[ListingEntry] = []
    objects = []
    prefix = _children_prefix(prefix_key)
    token: str | None = None
    while True:
        page = store.list_objects(
            org, prefix, delimiter=SEPARATOR, continuation_token=token, limit=page_size
        )
        for rolled in page.common_prefixes:
            key = rolled.rstrip(SEPARATOR)
            name = basename(key)
            if "." in name:
                continue
            folders.append(
                ListingEntry(key=key, path=f"/{org}/{key}", name=name, ext=None, is_folder=True)
            )
        objects.extend(page.objects)
        token = page.next_continuation_token
        if not token:
            break

    entries = list(folders)
    folder_names = {entry.name for entry in folders}
    for obj in objects:
        parts = basename(obj.key).split(".")
        if len(parts) != 2:
            continue
        name, ext = parts
        if not name:
            continue
        if ext == PROPS_EXTENSION:
            if name in folder_names:
                continue
            folder_key = obj.key[: -len(f".{PROPS_EXTENSION}")]
            folder_names.add(name)
            entries.append(
                ListingEntry(
                    key=folder_key,
                    path=f"/{org}/{folder_key}",
                    name=name,
                    ext=None,
                    is_folder=True,
                )
            )
            continue
        entries.append(
            ListingEntry(
                key=obj.key,
                path=f"/{org}/{obj.key}",
                name=name,
                ext=ext,
                is_folder=False,
                last_modified=_epoch_millis(obj.last_modified),
            )
        )

    return sorted(entries, key=lambda entry: entry.name)
