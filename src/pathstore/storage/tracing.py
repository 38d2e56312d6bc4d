"""pathstore Object Storage OpenTelemetry tracing integration.

Provides the tracing decorator applied to every backend operation.

Security:
    - Keys may embed customer document names; only their SHA256 is exported
    - No object bodies or credentials in any span attribute
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from pathstore.storage.models import ListPage, StoredObject, StoredObjectMetadata

logger = logging.getLogger(__name__)

PATHSTORE_OTEL_ENABLED_ENV = "PATHSTORE_OTEL_ENABLED"
TRACER_NAME = "pathstore.object_store"

F = TypeVar("F", bound=Callable[..., Any])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def is_tracing_enabled() -> bool:
    """Check if OpenTelemetry tracing of storage operations is enabled."""
    return _get_env_bool(PATHSTORE_OTEL_ENABLED_ENV, False)


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    The wrapped method must take (self, org, key_or_prefix, ...).

    Args:
        operation: Operation name (e.g., "put", "get", "list_objects").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, org: str, key: str, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, org, key, *args, **kwargs)

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"{TRACER_NAME}.{operation}") as span:
                span.set_attribute("pathstore.org", org)
                key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                span.set_attribute("pathstore.object_key_sha256", key_sha256)
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))

                try:
                    result = func(self, org, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add result-based attributes to span (sizes and counts only)."""
    metadata: StoredObjectMetadata | None = None

    if isinstance(result, StoredObjectMetadata):
        metadata = result
    elif isinstance(result, StoredObject):
        metadata = result.metadata

    if metadata is not None:
        span.set_attribute("pathstore.object_size_bytes", metadata.size_bytes)
        if metadata.content_type:
            span.set_attribute("pathstore.object_content_type", metadata.content_type)

    if isinstance(result, ListPage):
        span.set_attribute("pathstore.list_object_count", len(result.objects))
        span.set_attribute("pathstore.list_prefix_count", len(result.common_prefixes))
        span.set_attribute("pathstore.list_truncated", result.next_continuation_token is not None)
