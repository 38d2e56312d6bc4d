"""Source routes: read, write and delete objects by path.

- GET/HEAD /source/{org}/{path} return the object (404 when absent)
- PUT /source/{org}/{path} stores the request body (201)
- DELETE /source/{org}/{path} deletes a file, or one batch of a folder
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from pathstore.api.auth import CurrentUser
from pathstore.api.deps import Services
from pathstore.api.error_model import make_error_response
from pathstore.core.errors import InvalidRequestError
from pathstore.core.lineage import META_ID
from pathstore.paths import parse_object_path
from pathstore.storage.models import StoredObjectMetadata

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Source"])

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _object_headers(metadata: StoredObjectMetadata) -> dict[str, str]:
    headers = {
        "ETag": f'"{metadata.etag}"',
        "Content-Length": str(metadata.size_bytes),
        "Last-Modified": metadata.last_modified.strftime("%a, %d %b %Y %H:%M:%S GMT"),
    }
    object_id = metadata.metadata.get(META_ID)
    if object_id:
        headers["X-Pathstore-Id"] = object_id
    return headers


@router.get("/source/{org}/{path:path}")
def get_source(org: str, path: str, user: CurrentUser, services: Services) -> Response:
    """Return the object stored at path."""
    target = parse_object_path(org, path)
    services.require_permission(user, target, "read")

    obj = services.store.get(target.org, target.key)
    headers = _object_headers(obj.metadata)
    headers.pop("Content-Length")
    return Response(
        content=obj.body,
        media_type=obj.metadata.content_type or DEFAULT_CONTENT_TYPE,
        headers=headers,
    )


@router.head("/source/{org}/{path:path}")
def head_source(org: str, path: str, user: CurrentUser, services: Services) -> Response:
    """Return the headers of the object stored at path, without the body."""
    target = parse_object_path(org, path)
    services.require_permission(user, target, "read")

    metadata = services.store.head(target.org, target.key)
    return Response(
        media_type=metadata.content_type or DEFAULT_CONTENT_TYPE,
        headers=_object_headers(metadata),
    )


@router.put("/source/{org}/{path:path}", status_code=201)
async def put_source(
    org: str, path: str, request: Request, user: CurrentUser, services: Services
) -> JSONResponse:
    """Store the request body at path.

    Overwriting an object snapshots the replaced content and keeps the
    lineage id, so its version history stays attached; the stored content
    gets a new version id. A new object starts a fresh lineage. Losing the
    write race to concurrent writers too often is a 409.
    """
    target = parse_object_path(org, path)
    if not target.is_file:
        raise InvalidRequestError("Only files can be written; folder paths need an extension")
    services.require_permission(user, target, "write")

    body = await request.body()
    content_type = request.headers.get("content-type") or DEFAULT_CONTENT_TYPE
    users = None if user.is_anonymous else [user.email]

    stored = services.versions.put_with_version(
        target.org, target.key, body, content_type=content_type, users=users
    )
    services.index.remember(target.org, target.key)
    logger.info("Stored org=%s key=%s size=%d", target.org, target.key, stored.size_bytes)

    return JSONResponse(
        status_code=201,
        content={
            "source": {
                "path": target.pathname,
                "contentType": stored.content_type,
                "etag": stored.etag,
                "id": stored.metadata[META_ID],
            }
        },
    )


@router.delete("/source/{org}/{path:path}")
def delete_source(
    org: str,
    path: str,
    request: Request,
    user: CurrentUser,
    services: Services,
    continuation_token: str | None = None,
) -> Response:
    """Delete a file, or one batch of a folder tree.

    Folder deletes process one listing page per request; while keys remain
    the response is 200 with a continuation_token to resume from.
    """
    target = parse_object_path(org, path)
    if not target.key:
        raise InvalidRequestError("Refusing to delete an entire organization")
    services.require_permission(user, target, "write")

    result = services.executor.delete(
        target.org, target.key, continuation_token=continuation_token, batched=True
    )
    if result.failed:
        return make_error_response(
            request,
            code="DELETE_INCOMPLETE",
            message="Some keys could not be deleted",
            http_status=500,
            details=result.to_dict(),
        )
    if result.continuation_token:
        return JSONResponse(status_code=200, content=result.to_dict())
    return Response(status_code=204)
