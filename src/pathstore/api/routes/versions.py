"""Version routes.

- GET /versionlist/{org}/{path} lists an object's snapshots, oldest first;
  ?label=<label> resolves the oldest snapshot carrying that label
- POST /versionsource/{org}/{path} snapshots the current content (201),
  with an optional "label" field in a JSON or form body
- PATCH /versionsource/{org}/{path} relabels the snapshot named by the "url"
  field; an empty or missing "label" removes the label
- GET /versionsource/{org}/{id}/{file} returns a snapshot's content
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from pathstore.api.auth import CurrentUser
from pathstore.api.deps import Services
from pathstore.api.forms import snapshot_form
from pathstore.core.errors import InvalidRequestError, NotFoundError
from pathstore.core.lineage import META_PATH
from pathstore.paths import parse_object_path

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Versions"])

LABEL_FIELD = "label"
URL_FIELD = "url"


@router.get("/versionlist/{org}/{path:path}", response_model=None)
def list_versions(
    org: str,
    path: str,
    user: CurrentUser,
    services: Services,
    label: str | None = None,
) -> list[dict[str, Any]] | dict[str, Any]:
    """List the snapshots of an object, or resolve one by label."""
    target = parse_object_path(org, path, api="versionlist")
    services.require_permission(user, target, "read")

    if label is not None:
        record = services.versions.resolve_version(target.org, target.key, label)
        if record is None:
            raise NotFoundError(f"No version labeled '{label}'")
        return record.to_dict()

    return [record.to_dict() for record in services.versions.list_versions(target.org, target.key)]


@router.post("/versionsource/{org}/{path:path}", status_code=201)
async def create_version(
    org: str, path: str, request: Request, user: CurrentUser, services: Services
) -> JSONResponse:
    """Snapshot the current content of an object."""
    target = parse_object_path(org, path, api="versionsource")
    services.require_permission(user, target, "write")

    payload = (await snapshot_form(request))()
    label = payload.get(LABEL_FIELD) if payload is not None else None

    record = services.versions.create_version(
        target.org,
        target.key,
        label=label,
        users=None if user.is_anonymous else [user.email],
    )
    return JSONResponse(status_code=201, content=record.to_dict())


@router.patch("/versionsource/{org}/{path:path}")
async def update_version_label(
    org: str, path: str, request: Request, user: CurrentUser, services: Services
) -> dict[str, Any]:
    """Change the label of one snapshot of an object."""
    target = parse_object_path(org, path, api="versionsource")
    services.require_permission(user, target, "write")

    payload = (await snapshot_form(request))()
    url = payload.get(URL_FIELD) if payload is not None else None
    if payload is None or not url:
        raise InvalidRequestError("A version url is required")

    record = services.versions.update_label(
        target.org, target.key, url=url, label=payload.get(LABEL_FIELD)
    )
    return record.to_dict()


@router.get("/versionsource/{org}/{object_id}/{version_file}")
def get_version(
    org: str, object_id: str, version_file: str, user: CurrentUser, services: Services
) -> Response:
    """Return the content captured by a snapshot.

    Access is checked against the path the object had when the snapshot
    was taken.
    """
    snapshot = services.versions.get_version_content(org.lower(), object_id, version_file)
    snapshot_path = parse_object_path(
        org, snapshot.metadata.metadata.get(META_PATH, ""), api="versionsource"
    )
    services.require_permission(user, snapshot_path, "read")

    return Response(
        content=snapshot.body,
        media_type=snapshot.metadata.content_type or "application/octet-stream",
        headers={"ETag": f'"{snapshot.metadata.etag}"'},
    )
