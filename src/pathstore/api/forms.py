"""Request payload snapshots for the validator.

Mutation validation is synchronous while starlette reads bodies
asynchronously, so routes read the body once up front and hand the
validator a PayloadSnapshot. Parse failures are captured and raised only
when the validator asks for the payload.
"""

import json
import logging
from typing import Any

from fastapi import Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from pathstore.core.errors import InvalidRequestError
from pathstore.core.forms import FormPayload, MappingFormPayload

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class PayloadSnapshot:
    """FormReader over an already-read request body.

    Calling the snapshot returns the payload, None for an empty body, or
    raises InvalidRequestError for a body that could not be parsed.
    """

    def __init__(
        self,
        payload: FormPayload | None = None,
        error: InvalidRequestError | None = None,
    ) -> None:
        self._payload = payload
        self._error = error

    def __call__(self) -> FormPayload | None:
        if self._error is not None:
            raise self._error
        return self._payload


def _parse_json(body: bytes) -> PayloadSnapshot:
    try:
        parsed: Any = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return PayloadSnapshot(error=InvalidRequestError("Request body is not valid JSON"))
    if not isinstance(parsed, dict):
        return PayloadSnapshot(error=InvalidRequestError("Request body must be a JSON object"))
    return PayloadSnapshot(MappingFormPayload(parsed))


async def snapshot_form(request: Request) -> PayloadSnapshot:
    """Read the request body into a PayloadSnapshot.

    JSON objects and url-encoded or multipart forms are accepted. Any other
    non-empty body is unparseable.
    """
    body = await request.body()
    if not body.strip():
        return PayloadSnapshot()

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type == JSON_CONTENT_TYPE:
        return _parse_json(body)

    if content_type in FORM_CONTENT_TYPES:
        try:
            form = await request.form()
        except (MultiPartException, StarletteHTTPException) as e:
            logger.debug("Form parse failed: %s", e)
            return PayloadSnapshot(error=InvalidRequestError("Request form could not be parsed"))
        return PayloadSnapshot(MappingFormPayload(form))

    return PayloadSnapshot(
        error=InvalidRequestError(f"Unsupported payload content type '{content_type}'")
    )
