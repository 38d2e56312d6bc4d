"""Custom metadata carried by live objects and version snapshots.

Every live object has a lineage id that survives renames and moves (the
metadata is retained) but not copies (a copy starts a new lineage with a
clean history). Version snapshots are filed under the lineage id.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping, Sequence
from typing import Final

META_ID: Final[str] = "id"
META_VERSION: Final[str] = "version"
META_TIMESTAMP: Final[str] = "timestamp"
META_USERS: Final[str] = "users"
META_PATH: Final[str] = "path"
META_LABEL: Final[str] = "label"

ANONYMOUS_USERS: Final[str] = json.dumps([{"email": "anonymous"}])


def encode_users(users: Sequence[str] | None) -> str:
    """Serialize acting user emails the way they are stored in metadata."""
    if not users:
        return ANONYMOUS_USERS
    return json.dumps([{"email": email} for email in users])


def decode_users(raw: str | None) -> list[dict[str, str]]:
    """Parse stored users, falling back to anonymous for bad values."""
    if not raw:
        return json.loads(ANONYMOUS_USERS)
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return json.loads(ANONYMOUS_USERS)
    if not isinstance(parsed, list):
        return json.loads(ANONYMOUS_USERS)
    return [entry for entry in parsed if isinstance(entry, dict)]


def fresh_metadata(path: str, users: Sequence[str] | None, timestamp: int) -> dict[str, str]:
    """Metadata for an object starting a new lineage."""
    return {
        META_ID: str(uuid.uuid4()),
        META_VERSION: str(uuid.uuid4()),
        META_TIMESTAMP: str(timestamp),
        META_USERS: encode_users(users),
        META_PATH: path,
    }


def retained_metadata(existing: Mapping[str, str], path: str) -> dict[str, str]:
    """Metadata for an object keeping its lineage at a new path."""
    metadata = dict(existing)
    metadata[META_PATH] = path
    return metadata


def rewritten_metadata(
    existing: Mapping[str, str], path: str, users: Sequence[str] | None, timestamp: int
) -> dict[str, str]:
    """Metadata for new content written over an object: same lineage, new version."""
    metadata = dict(existing)
    metadata.update(
        {
            META_VERSION: str(uuid.uuid4()),
            META_TIMESTAMP: str(timestamp),
            META_USERS: encode_users(users),
            META_PATH: path,
        }
    )
    return metadata
