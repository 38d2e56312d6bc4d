"""Request ID middleware for the pathstore API.

Every request carries an ID that is echoed in the response and in every
error envelope, so log lines and client reports can be correlated.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware that attaches a request ID to every request.

    Behavior:
    - A non-blank X-Request-Id header of reasonable length is reused.
    - Otherwise a uuid4 is generated.
    - The ID is stored on request.state.request_id and returned in the
      X-Request-Id response header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Process the request and attach request ID."""
        incoming_request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip()

        if incoming_request_id and len(incoming_request_id) <= MAX_REQUEST_ID_LENGTH:
            request_id = incoming_request_id
        else:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        response: Response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        logger.debug(
            "%s %s -> %d request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
        )
        return response
