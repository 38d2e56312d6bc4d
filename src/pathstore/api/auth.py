"""pathstore API authentication.

Callers identify themselves with an API key in the X-Pathstore-Api-Key
header. Keys are registered in PATHSTORE_API_KEYS_JSON:

    {"<api key>": {"user_id": "u-1", "email": "editor@example.com"}}

A request without the header runs as the anonymous user and is subject to
whatever the org's permission rules grant anonymous callers. A header that
does not match a registered key is rejected with 401.
"""

import hmac
import json
import logging
import os
from typing import Annotated

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError

from pathstore.acl import ANONYMOUS_USER, User
from pathstore.api.errors import PathStoreHttpError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Pathstore-Api-Key"
PATHSTORE_API_KEYS_ENV = "PATHSTORE_API_KEYS_JSON"


class ApiKeyRecord(BaseModel):
    """API key registry entry identifying the key holder."""

    user_id: str
    email: str


def _load_api_key_registry() -> dict[str, ApiKeyRecord]:
    """Load API key registry from environment variable.

    Returns:
        Dict mapping API key strings to ApiKeyRecord objects.
        Returns empty dict if env var missing or invalid JSON.
    """
    raw = os.environ.get(PATHSTORE_API_KEYS_ENV)
    if not raw:
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to parse %s; treating as empty registry", PATHSTORE_API_KEYS_ENV)
        return {}

    if not isinstance(parsed, dict):
        logger.warning("%s is not a dict; treating as empty registry", PATHSTORE_API_KEYS_ENV)
        return {}

    registry: dict[str, ApiKeyRecord] = {}
    for key, value in parsed.items():
        if not isinstance(key, str) or not isinstance(value, dict):
            continue
        try:
            registry[key] = ApiKeyRecord.model_validate(value)
        except ValidationError:
            continue

    return registry


def _constant_time_lookup(
    provided_key: str, registry: dict[str, ApiKeyRecord]
) -> ApiKeyRecord | None:
    """Look up an API key comparing against every entry in constant time."""
    matched_record: ApiKeyRecord | None = None
    provided_bytes = provided_key.encode("utf-8")

    for registered_key, record in registry.items():
        if hmac.compare_digest(provided_bytes, registered_key.encode("utf-8")):
            matched_record = record

    return matched_record


def authenticate_request(request: Request) -> User:
    """Resolve the calling user from the request headers.

    Raises:
        PathStoreHttpError: 401 if an API key is present but not registered.
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if not api_key:
        return ANONYMOUS_USER

    record = _constant_time_lookup(api_key, _load_api_key_registry())
    if record is None:
        raise PathStoreHttpError(
            status_code=401,
            code="UNAUTHORIZED",
            message="Invalid API key",
        )

    return User(user_id=record.user_id, email=record.email.lower())


async def get_current_user(request: Request) -> User:
    """FastAPI dependency resolving the calling user.

    The user is also stored on request.state.user for downstream use.
    """
    user = authenticate_request(request)
    request.state.user = user
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
