"""Move/copy/rename request validation.

Turns a request payload and a source key into a DestinationPlan without
touching the store (other than through the supplied exists check):

1. No payload -> None (nothing to do, not an error)
2. Unparseable payload or unusable destination -> 400
3. Destination sanitized and reduced to an org-relative key
4. Destination beneath the source -> 400 (a folder cannot move into itself)
5. MOVE: destination passed through collision resolution; a resumed batch
   instead continues into the destination bound in its signed token
   COPY/RENAME: destination used as named; naming the source itself -> 400

Every failure comes back as a MutationError value; nothing raises across
this boundary.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from pathstore.config import DEFAULT_COLLISION_MAX_ATTEMPTS
from pathstore.core.collision import resolve_collision, with_suffix
from pathstore.core.errors import IllegalMoveError, InvalidRequestError, PathStoreError
from pathstore.core.forms import FormPayload
from pathstore.core.move_tokens import MoveTokenSigner, default_move_token_signer
from pathstore.core.plans import DestinationPlan, MutationError, MutationKind
from pathstore.paths import SEPARATOR, is_file_key, is_same_or_descendant, sanitize, split_org
from pathstore.storage.errors import ObjectStorageError

logger = logging.getLogger(__name__)

DESTINATION_FIELD = "destination"
CONTINUATION_TOKEN_FIELDS = ("continuation-token", "continuation_token")

FormReader = Callable[[], FormPayload | None]


def validate_mutation(
    read_form: FormReader,
    source_key: str,
    kind: MutationKind = MutationKind.MOVE,
    *,
    org: str | None = None,
    exists: Callable[[str], bool] | None = None,
    suffix_source: Callable[[], int] | None = None,
    max_attempts: int = DEFAULT_COLLISION_MAX_ATTEMPTS,
    move_tokens: MoveTokenSigner | None = None,
) -> DestinationPlan | MutationError | None:
    """Validate a structural mutation and compute its destination.

    Args:
        read_form: Returns the request payload, or None when the request
            carried none. May raise InvalidRequestError (or ValueError)
            when the payload cannot be parsed.
        source_key: Org-relative key being moved/copied/renamed.
        kind: Mutation being requested.
        org: Organization of the source. When given, destinations naming a
            different organization are rejected.
        exists: Existence check for collision resolution (MOVE only). The
            source key always counts as taken.
        suffix_source: Suffix generator forwarded to collision resolution.
        max_attempts: Collision resolution attempt budget.
        move_tokens: Verifies continuation tokens of resumed moves.
            Defaults to the process-wide signer.

    Returns:
        DestinationPlan on success, MutationError on failure, None for a
        request without payload.
    """
    try:
        return _plan(
            read_form,
            source_key,
            kind,
            org=org,
            exists=exists,
            suffix_source=suffix_source,
            max_attempts=max_attempts,
            move_tokens=move_tokens or default_move_token_signer(),
        )
    except PathStoreError as exc:
        logger.info(
            "Rejected %s of key=%s: code=%s message=%s",
            kind.value,
            source_key,
            exc.code,
            exc.message,
        )
        return MutationError.from_exception(exc)
    except ObjectStorageError as exc:
        logger.warning(
            "Existence check failed during %s of key=%s: %s", kind.value, source_key, exc
        )
        return MutationError(
            status=500,
            code="STORAGE_ERROR",
            message="Destination could not be checked",
        )


def _read_payload(read_form: FormReader) -> FormPayload | None:
    try:
        return read_form()
    except (ValueError, TypeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Request payload could not be parsed") from exc


def _plan(
    read_form: FormReader,
    source_key: str,
    kind: MutationKind,
    *,
    org: str | None,
    exists: Callable[[str], bool] | None,
    suffix_source: Callable[[], int] | None,
    max_attempts: int,
    move_tokens: MoveTokenSigner,
) -> DestinationPlan | None:
    form = _read_payload(read_form)
    if form is None:
        return None

    raw_destination = form.get(DESTINATION_FIELD)
    if raw_destination is None or not raw_destination.strip():
        raise InvalidRequestError("Missing destination")

    sanitized = sanitize(raw_destination)
    destination_org, destination = split_org(sanitized)
    if not destination:
        raise InvalidRequestError("Destination must name a path inside an organization")
    if any(segment in (".", "..") for segment in destination.split(SEPARATOR)):
        raise InvalidRequestError("Destination must not contain relative segments")

    if org is not None:
        if destination_org != org.lower():
            raise InvalidRequestError("Destination must be in the same organization as the source")
        same = destination.casefold() == source_key.casefold()
        inside = is_same_or_descendant(destination, source_key)
    else:
        # Without the org, the source may be given org-relative or org-qualified.
        same = source_key.casefold() in (destination.casefold(), sanitized.casefold())
        inside = is_same_or_descendant(destination, source_key) or is_same_or_descendant(
            sanitized, source_key
        )

    if inside and not same:
        raise IllegalMoveError("Destination cannot be inside the source")

    continuation_token = next(
        (token for field in CONTINUATION_TOKEN_FIELDS if (token := form.get(field))),
        None,
    )

    if continuation_token is not None and is_file_key(source_key):
        raise InvalidRequestError("Continuation tokens only apply to folders")

    if kind is MutationKind.MOVE and continuation_token is not None:
        resume = move_tokens.verify(continuation_token, source_key)
        if not _targets(destination, resume.destination):
            raise InvalidRequestError("Continuation token was issued for a different destination")
        destination = resume.destination
        continuation_token = resume.store_token
    elif kind is MutationKind.MOVE:
        destination = resolve_collision(
            destination,
            _taken(source_key, exists),
            suffix_source=suffix_source,
            max_attempts=max_attempts,
        )
    elif same:
        raise IllegalMoveError("Destination is the same as the source")

    return DestinationPlan(
        source=source_key,
        destination=destination,
        kind=kind,
        continuation_token=continuation_token,
    )


def _targets(requested: str, bound: str) -> bool:
    """True when bound is requested itself or its collision-suffixed form."""
    if bound == requested:
        return True
    head, _, tail = with_suffix(requested, "\0").partition("\0")
    return re.fullmatch(re.escape(head) + r"\d+" + re.escape(tail), bound) is not None


def _taken(source_key: str, exists: Callable[[str], bool] | None) -> Callable[[str], bool]:
    source_cf = source_key.casefold()

    def check(key: str) -> bool:
        if key.casefold() == source_cf:
            return True
        return exists(key) if exists is not None else False

    return check
