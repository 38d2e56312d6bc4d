"""pathstore object storage data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class StoredObjectMetadata:
    """Metadata for a stored object.

    Attributes:
        org: Organization owning this object.
        key: Org-relative key of the object.
        size_bytes: Size of the object content in bytes.
        content_type: MIME type of the content (e.g., "text/html").
        etag: Backend entity tag for the current content.
        last_modified: Timestamp of the last write.
        metadata: Custom string metadata (lineage id, version, label, users, path).
    """

    org: str
    key: str
    size_bytes: int
    content_type: str | None
    etag: str
    last_modified: datetime
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Convert metadata to dictionary for JSON serialization."""
        return {
            "org": self.org,
            "key": self.key,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "etag": self.etag,
            "last_modified": self.last_modified.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> StoredObjectMetadata:
        """Create metadata from dictionary."""
        last_modified_raw = data.get("last_modified")
        if isinstance(last_modified_raw, str):
            last_modified = datetime.fromisoformat(last_modified_raw)
        elif isinstance(last_modified_raw, datetime):
            last_modified = last_modified_raw
        else:
            last_modified = datetime.now(UTC)

        size_bytes_raw = data.get("size_bytes")
        size_bytes = int(str(size_bytes_raw)) if size_bytes_raw is not None else 0

        content_type_raw = data.get("content_type")
        content_type = str(content_type_raw) if content_type_raw else None

        metadata_raw = data.get("metadata")
        metadata = (
            {str(k): str(v) for k, v in metadata_raw.items()}
            if isinstance(metadata_raw, dict)
            else {}
        )

        return cls(
            org=str(data["org"]),
            key=str(data["key"]),
            size_bytes=size_bytes,
            content_type=content_type,
            etag=str(data.get("etag", "")),
            last_modified=last_modified,
            metadata=metadata,
        )


@dataclass(frozen=True)
class StoredObject:
    """A stored object with metadata and body content."""

    metadata: StoredObjectMetadata
    body: bytes


@dataclass(frozen=True)
class ListedObject:
    """One object returned by a prefix listing.

    Attributes:
        key: Org-relative key.
        size_bytes: Content size in bytes.
        last_modified: Timestamp of the last write.
    """

    key: str
    size_bytes: int
    last_modified: datetime


@dataclass(frozen=True)
class ListPage:
    """One page of a prefix listing.

    Attributes:
        objects: Objects on this page, in ascending key order.
        common_prefixes: Org-relative prefixes rolled up by the delimiter
            (each ends with the delimiter). Empty when no delimiter was given.
        next_continuation_token: Opaque cursor for the next page, None when
            the listing is exhausted.
    """

    objects: list[ListedObject] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_continuation_token: str | None = None

    @property
    def keys(self) -> list[str]:
        """Keys of the objects on this page."""
        return [obj.key for obj in self.objects]
