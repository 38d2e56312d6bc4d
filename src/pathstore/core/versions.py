"""Append-only version snapshots of live objects.

Layout inside an org:

    <key>                                   live object (metadata id=<lineage>)
    .versions/<lineage>/<timestamp>.<ext>   immutable snapshot

Snapshots are filed under the lineage id rather than the path, so history
follows an object through renames and moves. Snapshot content is written
once and never overwritten: the timestamp comes from a monotonic clock and
is bumped further if the key is somehow taken. Only a snapshot's label can
change afterwards.

Overwriting a live object through put_with_version snapshots the content
being replaced first. Both the first write and the overwrite are
conditional (no object yet / unchanged etag); a lost race starts over.

Per key the history only grows: NO_VERSIONS -> HAS_VERSIONS.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final

from pathstore.core.collision import default_suffix_source
from pathstore.core.errors import InvalidRequestError, NotFoundError, WriteConflictError
from pathstore.core.lineage import (
    META_ID,
    META_LABEL,
    META_PATH,
    META_TIMESTAMP,
    META_USERS,
    decode_users,
    encode_users,
    fresh_metadata,
    rewritten_metadata,
)
from pathstore.paths import SEPARATOR, basename, split_extension
from pathstore.storage.errors import ObjectNotFoundError, PreconditionFailedError
from pathstore.storage.models import StoredObject, StoredObjectMetadata
from pathstore.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

VERSIONS_ROOT: Final[str] = ".versions"
VERSION_URL_PREFIX: Final[str] = "/versionsource"
DEFAULT_EXTENSION: Final[str] = "bin"
MAX_TIMESTAMP_BUMPS: Final[int] = 100
MAX_WRITE_ATTEMPTS: Final[int] = 5


@dataclass(frozen=True)
class VersionRecord:
    """An immutable, labeled snapshot of an object.

    Attributes:
        timestamp: Creation time in epoch milliseconds; strictly increasing
            per lineage.
        url: Where the snapshot content can be fetched.
        label: Optional human-readable label (not unique).
        path: Path of the live object when the snapshot was taken.
        users: Users who created the snapshot.
    """

    timestamp: int
    url: str
    label: str | None = None
    path: str | None = None
    users: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "timestamp": self.timestamp,
            "url": self.url,
            "users": self.users,
        }
        if self.label is not None:
            data["label"] = self.label
        if self.path is not None:
            data["path"] = self.path
        return data


def version_prefix(object_id: str) -> str:
    """Org-relative prefix holding every snapshot of a lineage."""
    return f"{VERSIONS_ROOT}{SEPARATOR}{object_id}{SEPARATOR}"


def version_url(org: str, object_id: str, version_file: str) -> str:
    """Public URL of one snapshot."""
    return f"{VERSION_URL_PREFIX}/{org}/{object_id}/{version_file}"


def _validate_segment(value: str, what: str) -> None:
    if not value or SEPARATOR in value or value in (".", ".."):
        raise InvalidRequestError(f"Invalid {what}")


def _record(
    org: str, object_id: str, snapshot_key: str, metadata: Mapping[str, str]
) -> VersionRecord:
    version_file = snapshot_key[len(version_prefix(object_id)) :]
    stamp_raw = metadata.get(META_TIMESTAMP) or split_extension(version_file)[0]
    try:
        timestamp = int(stamp_raw)
    except ValueError:
        timestamp = 0

    return VersionRecord(
        timestamp=timestamp,
        url=version_url(org, object_id, version_file),
        label=metadata.get(META_LABEL),
        path=metadata.get(META_PATH),
        users=decode_users(metadata.get(META_USERS)),
    )


class VersionManager:
    """Creates, lists and resolves version snapshots."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        clock: Callable[[], int] | None = None,
        page_size: int | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Object store holding live objects and snapshots.
            clock: Strictly increasing epoch-millisecond source. Defaults to
                the process-wide monotonic source.
            page_size: Listing page size when enumerating snapshots.
        """
        self._store = store
        self._clock: Callable[[], int] = clock or default_suffix_source()
        self._page_size = page_size

    def _current(self, org: str, key: str) -> StoredObject:
        try:
            return self._store.get(org, key)
        except ObjectNotFoundError as e:
            raise NotFoundError(f"No object at '{key}'") from e

    def _lineage_id(self, org: str, key: str) -> str | None:
        try:
            return self._store.head(org, key).metadata.get(META_ID)
        except ObjectNotFoundError as e:
            raise NotFoundError(f"No object at '{key}'") from e

    def create_version(
        self,
        org: str,
        key: str,
        *,
        label: str | None = None,
        users: Sequence[str] | None = None,
    ) -> VersionRecord:
        """Snapshot the current content of key.

        Args:
            org: Organization namespace.
            key: Org-relative key of the live object.
            label: Optional label for the snapshot.
            users: Emails of the users creating the snapshot.

        Returns:
            The new VersionRecord.

        Raises:
            NotFoundError: If no object exists at key.
        """
        current = self._current(org, key)
        object_id = current.metadata.metadata.get(META_ID)
        if not object_id:
            # Objects written without lineage get one on their first snapshot.
            metadata = {**fresh_metadata(key, users, self._clock()), **current.metadata.metadata}
            self._store.put(
                org,
                key,
                current.body,
                content_type=current.metadata.content_type,
                metadata=metadata,
            )
            object_id = metadata[META_ID]

        return self._write_snapshot(org, key, object_id, current, label=label, users=users)

    def put_with_version(
        self,
        org: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
        users: Sequence[str] | None = None,
        label: str | None = None,
    ) -> StoredObjectMetadata:
        """Write data at key, snapshotting the content it replaces.

        A new object starts a fresh lineage. An overwrite keeps the lineage
        id, gets a new version id, and leaves the replaced content behind as
        a snapshot attributed to the overwriting users.

        Args:
            org: Organization namespace.
            key: Org-relative key of the live object.
            data: New content.
            content_type: MIME type of the new content.
            users: Emails of the writing users.
            label: Optional label for the snapshot of the replaced content.

        Returns:
            Metadata of the stored object.

        Raises:
            WriteConflictError: If concurrent writers kept winning the race.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                current: StoredObject | None = self._store.get(org, key)
            except ObjectNotFoundError:
                current = None

            try:
                if current is None:
                    return self._store.put(
                        org,
                        key,
                        data,
                        content_type=content_type,
                        metadata=fresh_metadata(key, users, self._clock()),
                        if_none_match=True,
                    )
                return self._overwrite(
                    org, key, current, data, content_type=content_type, users=users, label=label
                )
            except PreconditionFailedError:
                logger.info("Concurrent write org=%s key=%s attempt=%d", org, key, attempt)

        raise WriteConflictError(
            f"'{key}' changed during every one of {MAX_WRITE_ATTEMPTS} write attempts"
        )

    def _overwrite(
        self,
        org: str,
        key: str,
        current: StoredObject,
        data: bytes,
        *,
        content_type: str | None,
        users: Sequence[str] | None,
        label: str | None,
    ) -> StoredObjectMetadata:
        existing = current.metadata.metadata
        object_id = existing.get(META_ID) or str(uuid.uuid4())
        self._write_snapshot(org, key, object_id, current, label=label, users=users)
        metadata = rewritten_metadata({**existing, META_ID: object_id}, key, users, self._clock())
        return self._store.put(
            org,
            key,
            data,
            content_type=content_type,
            metadata=metadata,
            if_match=current.metadata.etag,
        )

    def _write_snapshot(
        self,
        org: str,
        key: str,
        object_id: str,
        current: StoredObject,
        *,
        label: str | None,
        users: Sequence[str] | None,
    ) -> VersionRecord:
        _, ext = split_extension(basename(key))
        extension = ext or DEFAULT_EXTENSION

        timestamp = self._clock()
        version_file = f"{timestamp}.{extension}"
        for _ in range(MAX_TIMESTAMP_BUMPS):
            if not self._store.exists(org, version_prefix(object_id) + version_file):
                break
            timestamp = self._clock()
            version_file = f"{timestamp}.{extension}"

        snapshot_metadata = {
            META_ID: object_id,
            META_TIMESTAMP: str(timestamp),
            META_USERS: encode_users(users),
            META_PATH: key,
        }
        if label is not None:
            snapshot_metadata[META_LABEL] = label

        self._store.put(
            org,
            version_prefix(object_id) + version_file,
            current.body,
            content_type=current.metadata.content_type,
            metadata=snapshot_metadata,
        )
        logger.info(
            "Created version org=%s key=%s id=%s timestamp=%d label=%s",
            org,
            key,
            object_id,
            timestamp,
            label,
        )
        return VersionRecord(
            timestamp=timestamp,
            url=version_url(org, object_id, version_file),
            label=label,
            path=key,
            users=decode_users(snapshot_metadata[META_USERS]),
        )

    def list_versions(self, org: str, key: str) -> list[VersionRecord]:
        """Return every snapshot of key, oldest first.

        Raises:
            NotFoundError: If no object exists at key.
        """
        object_id = self._lineage_id(org, key)
        if not object_id:
            return []

        prefix = version_prefix(object_id)
        records: list[VersionRecord] = []
        token: str | None = None
        while True:
            page = self._store.list_objects(
                org, prefix, continuation_token=token, limit=self._page_size
            )
            for listed in page.objects:
                record = self._read_record(org, object_id, listed.key)
                if record is not None:
                    records.append(record)
            token = page.next_continuation_token
            if not token:
                break

        records.sort(key=lambda record: (record.timestamp, record.url))
        return records

    def _read_record(self, org: str, object_id: str, snapshot_key: str) -> VersionRecord | None:
        try:
            head = self._store.head(org, snapshot_key)
        except ObjectNotFoundError:
            # Listed but gone: removed by a retention sweep in between.
            logger.debug("Snapshot vanished org=%s key=%s", org, snapshot_key)
            return None
        return _record(org, object_id, snapshot_key, head.metadata)

    def update_label(
        self, org: str, key: str, *, url: str, label: str | None
    ) -> VersionRecord:
        """Relabel one snapshot of key; an empty or None label removes it.

        Only the label changes. The snapshot keeps its content, timestamp,
        path and users.

        Args:
            org: Organization namespace.
            key: Org-relative key of the live object.
            url: URL of the snapshot, as returned by list_versions.
            label: New label.

        Returns:
            The updated VersionRecord.

        Raises:
            NotFoundError: If key has no object or url is not one of its
                snapshots.
        """
        object_id = self._lineage_id(org, key)
        prefix = version_url(org, object_id or "", "")
        version_file = url[len(prefix) :] if url.startswith(prefix) else ""
        if not object_id or SEPARATOR in version_file or version_file in ("", ".", ".."):
            raise NotFoundError("Version not found")

        snapshot_key = version_prefix(object_id) + version_file
        try:
            snapshot = self._store.get(org, snapshot_key)
        except ObjectNotFoundError as e:
            raise NotFoundError("Version not found") from e

        metadata = dict(snapshot.metadata.metadata)
        if label:
            metadata[META_LABEL] = label
        else:
            metadata.pop(META_LABEL, None)

        self._store.put(
            org,
            snapshot_key,
            snapshot.body,
            content_type=snapshot.metadata.content_type,
            metadata=metadata,
            if_match=snapshot.metadata.etag,
        )
        logger.info(
            "Relabeled version org=%s key=%s id=%s file=%s label=%s",
            org,
            key,
            object_id,
            version_file,
            label,
        )
        return _record(org, object_id, snapshot_key, metadata)

    def resolve_version(self, org: str, key: str, label: str) -> VersionRecord | None:
        """Return the oldest snapshot carrying label, or None."""
        return next(
            (record for record in self.list_versions(org, key) if record.label == label),
            None,
        )

    def find_version(self, org: str, key: str, timestamp: int) -> VersionRecord | None:
        """Return the snapshot taken at timestamp, or None."""
        return next(
            (record for record in self.list_versions(org, key) if record.timestamp == timestamp),
            None,
        )

    def get_version_content(self, org: str, object_id: str, version_file: str) -> StoredObject:
        """Fetch the bytes captured by a snapshot.

        Raises:
            InvalidRequestError: If the id or file name is malformed.
            NotFoundError: If the snapshot does not exist.
        """
        _validate_segment(object_id, "version id")
        _validate_segment(version_file, "version file")
        try:
            return self._store.get(org, version_prefix(object_id) + version_file)
        except ObjectNotFoundError as e:
            raise NotFoundError("Version not found") from e
