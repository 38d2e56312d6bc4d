"""Path sanitization and request path parsing.

Callers address content as /<api>/<org>/<path>. Destination paths arrive
org-qualified in request payloads ("/myorg/site/page.html") and are reduced
to org-relative keys ("site/page.html") before any store access.

A key whose final segment has an extension is a file; anything else is a
folder, represented in the store by its children ("folder/...") plus an
optional "folder.props" marker object.
"""

from __future__ import annotations

from dataclasses import dataclass

from pathstore.core.errors import InvalidRequestError

SEPARATOR = "/"
PROPS_EXTENSION = "props"


def sanitize(raw: str | None) -> str:
    """Normalize a raw destination path into a canonical lower-case key.

    Strips leading/trailing separators, drops empty segments, trims each
    segment and lower-cases the result. Never raises: degenerate input
    yields "" and the caller decides whether that is acceptable.

    Examples:
        "/FOO/BAR" -> "foo/bar"
        "/foo/bar/" -> "foo/bar"
        "///" -> ""
    """
    if not raw or not isinstance(raw, str):
        return ""
    segments = (segment.strip() for segment in raw.split(SEPARATOR))
    return SEPARATOR.join(segment for segment in segments if segment).lower()


def split_org(sanitized: str) -> tuple[str, str]:
    """Split a sanitized org-qualified path into (org, org-relative key)."""
    org, _, key = sanitized.partition(SEPARATOR)
    return org, key


def basename(key: str) -> str:
    """Return the final segment of a key."""
    return key.rsplit(SEPARATOR, 1)[-1]


def parent(key: str) -> str:
    """Return the key of the containing folder ("" at the org root)."""
    head, sep, _ = key.rpartition(SEPARATOR)
    return head if sep else ""


def split_extension(segment: str) -> tuple[str, str | None]:
    """Split a segment into (name, extension) at the last dot."""
    name, dot, ext = segment.rpartition(".")
    if not dot:
        return segment, None
    return name, ext


def is_file_key(key: str) -> bool:
    """Return True if the key names a concrete object rather than a folder."""
    return bool(key) and "." in basename(key)


def props_key(key: str) -> str:
    """Return the folder marker key paired with a folder key."""
    return f"{key}.{PROPS_EXTENSION}"


def is_same_or_descendant(candidate: str, ancestor: str) -> bool:
    """Return True if candidate equals ancestor or lies beneath it.

    Comparison is on whole segments ("drafts-new" is not beneath "drafts")
    and case-insensitive. The empty ancestor (org root) contains everything.
    """
    if not ancestor:
        return True
    candidate_cf = candidate.casefold()
    ancestor_cf = ancestor.casefold()
    return candidate_cf == ancestor_cf or candidate_cf.startswith(ancestor_cf + SEPARATOR)


def rebase(key: str, source: str, destination: str) -> str:
    """Rewrite a key under source so it sits under destination instead."""
    if key == source:
        return destination
    if source and key.startswith(source):
        return destination + key[len(source) :]
    return f"{destination}{SEPARATOR}{key}" if destination else key


@dataclass(frozen=True)
class ObjectPath:
    """A parsed request path.

    Attributes:
        api: Route family the path was addressed to ("source", "list", ...).
        org: Organization namespace.
        key: Org-relative key ("" for the org root).
        filename: Final segment of the key.
        name: Final segment without its extension.
        ext: Extension of the final segment, None for folders.
        site: First segment below the org, None at the org root.
    """

    api: str
    org: str
    key: str
    filename: str
    name: str
    ext: str | None
    site: str | None

    @property
    def is_file(self) -> bool:
        """True when the path names a concrete object."""
        return self.ext is not None

    @property
    def props_key(self) -> str:
        """Folder marker key for this path."""
        return props_key(self.key)

    @property
    def pathname(self) -> str:
        """Org-qualified path with a leading separator."""
        return f"{SEPARATOR}{self.org}{SEPARATOR}{self.key}" if self.key else f"/{self.org}"


def parse_object_path(org: str, path: str, *, api: str = "source") -> ObjectPath:
    """Parse the org and path portions of a request URL.

    Request paths are lower-cased and trailing separators dropped, so
    "/source/MyOrg/Site/Page.HTML/" addresses key "site/page.html" in
    org "myorg".

    Raises:
        InvalidRequestError: If the org is missing or the path contains
            "." / ".." segments.
    """
    org_clean = sanitize(org)
    if not org_clean or SEPARATOR in org_clean:
        raise InvalidRequestError("Invalid path: missing organization")

    lowered = (path or "").lower()
    segments = [segment for segment in lowered.split(SEPARATOR) if segment]
    if any(segment in (".", "..") for segment in segments):
        raise InvalidRequestError("Invalid path: relative segments are not allowed")

    key = SEPARATOR.join(segments)
    filename = segments[-1] if segments else ""
    name, ext = split_extension(filename)
    site = segments[0] if len(segments) > 1 else None

    return ObjectPath(
        api=api,
        org=org_clean,
        key=key,
        filename=filename,
        name=name,
        ext=ext,
        site=site,
    )
