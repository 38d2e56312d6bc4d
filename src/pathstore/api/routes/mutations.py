"""Structural mutation routes: move, copy and rename.

POST /move|/copy|/rename/{org}/{path} with a "destination" field (JSON or
form body). The destination names a path inside the same org, e.g.
"/myorg/site/new-name". Validation happens before anything is written:

- no body: 204, nothing done
- bad body, missing destination, destination inside the source: 400
- move onto an existing path: the destination gets a unique suffix
- continuation token on a file, or a move token that is unsigned or bound
  to another source or destination: 400
- copy or rename onto the source itself: 400

Folders are processed one listing page per request; while keys remain the
response carries a continuation_token to send back with the next request.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from pathstore.acl import User
from pathstore.api.auth import CurrentUser
from pathstore.api.deps import PathStoreServices, Services
from pathstore.api.error_model import make_error_response
from pathstore.api.forms import snapshot_form
from pathstore.core.executor import ExecutionResult
from pathstore.core.plans import DestinationPlan, MutationError, MutationKind
from pathstore.core.validator import validate_mutation
from pathstore.paths import parse_object_path

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Mutations"])


def _execute(
    services: PathStoreServices, org: str, plan: DestinationPlan, user: User
) -> ExecutionResult:
    users = None if user.is_anonymous else [user.email]
    if plan.kind is MutationKind.COPY:
        return services.executor.copy(org, plan, users=users, batched=True)
    return services.executor.move(org, plan, users=users, batched=True)


async def _mutate(
    kind: MutationKind,
    org: str,
    path: str,
    request: Request,
    user: User,
    services: PathStoreServices,
) -> Response:
    source = parse_object_path(org, path, api=kind.value)
    services.require_permission(user, source, "read" if kind is MutationKind.COPY else "write")

    snapshot = await snapshot_form(request)
    outcome = validate_mutation(
        snapshot,
        source.key,
        kind,
        org=source.org,
        exists=services.exists(source.org),
        suffix_source=services.suffix_source,
        max_attempts=services.settings.collision_max_attempts,
        move_tokens=services.move_tokens,
    )
    if outcome is None:
        return Response(status_code=204)
    if isinstance(outcome, MutationError):
        return make_error_response(
            request, code=outcome.code, message=outcome.message, http_status=outcome.status
        )

    destination = parse_object_path(source.org, outcome.destination, api=kind.value)
    services.require_permission(user, destination, "write")

    result = _execute(services, source.org, outcome, user)
    if result.total == 0 or result.all_missing:
        return make_error_response(
            request,
            code="NOT_FOUND",
            message=f"Nothing found at {source.pathname}",
            http_status=404,
        )
    if result.failed:
        return make_error_response(
            request,
            code=f"{kind.name}_INCOMPLETE",
            message=f"Some keys could not be processed by {kind.value}",
            http_status=500,
            details=result.to_dict(),
        )

    logger.info(
        "%s org=%s %s -> %s keys=%d",
        kind.value,
        source.org,
        source.key,
        outcome.destination,
        result.total,
    )
    return JSONResponse(
        status_code=200,
        content={
            "source": source.pathname,
            "destination": destination.pathname,
            **result.to_dict(),
        },
    )


@router.post("/move/{org}/{path:path}")
async def move_path(
    org: str, path: str, request: Request, user: CurrentUser, services: Services
) -> Response:
    """Move a file or folder; the destination is suffixed if taken."""
    return await _mutate(MutationKind.MOVE, org, path, request, user, services)


@router.post("/copy/{org}/{path:path}")
async def copy_path(
    org: str, path: str, request: Request, user: CurrentUser, services: Services
) -> Response:
    """Copy a file or folder; copies start a new version lineage."""
    return await _mutate(MutationKind.COPY, org, path, request, user, services)


@router.post("/rename/{org}/{path:path}")
async def rename_path(
    org: str, path: str, request: Request, user: CurrentUser, services: Services
) -> Response:
    """Rename a file or folder to exactly the destination given."""
    return await _mutate(MutationKind.RENAME, org, path, request, user, services)
