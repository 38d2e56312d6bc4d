"""Listing routes.

- GET /list/{org}/{path} returns the one-level children of a folder,
  filtered to what the caller may read
- GET /count/{org}/{path} returns how many keys a move, copy or delete of
  the path would touch
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from pathstore.acl import filter_paths
from pathstore.api.auth import CurrentUser
from pathstore.api.deps import Services
from pathstore.core.enumerator import count_keys, list_children
from pathstore.paths import parse_object_path

router = APIRouter(tags=["Listing"])


class CountResponse(BaseModel):
    """Number of keys under a path."""

    total: int


@router.get("/list/{org}")
@router.get("/list/{org}/{path:path}")
def list_folder(
    org: str, user: CurrentUser, services: Services, path: str = ""
) -> list[dict[str, Any]]:
    """List the folders and files directly under path, sorted by name."""
    target = parse_object_path(org, path, api="list")
    services.require_permission(user, target, "read")

    entries = list_children(
        services.store, target.org, target.key, page_size=services.settings.list_page_size
    )
    readable = set(
        filter_paths(services.access_control, user, (entry.path for entry in entries), "read")
    )
    return [entry.to_dict() for entry in entries if entry.path in readable]


@router.get("/count/{org}/{path:path}", response_model=CountResponse)
def count_path(org: str, path: str, user: CurrentUser, services: Services) -> CountResponse:
    """Count the keys under path, folder markers included."""
    target = parse_object_path(org, path, api="count")
    services.require_permission(user, target, "read")

    total = count_keys(
        services.store, target.org, target.key, page_size=services.settings.list_page_size
    )
    return CountResponse(total=total)
