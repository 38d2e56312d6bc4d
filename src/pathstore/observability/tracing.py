"""OpenTelemetry tracing configuration for pathstore.

Storage spans are emitted by pathstore.storage.tracing; this module installs
the SDK tracer provider they are exported through.

Environment Variables:
    PATHSTORE_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    PATHSTORE_OTEL_SERVICE_NAME: Service name for spans (default: "pathstore")
    PATHSTORE_OTEL_EXPORTER: "console" or "none" (default: "console")
    PATHSTORE_OTEL_RESOURCE_ATTRS: Comma-separated k=v pairs for resource attributes
    PATHSTORE_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_test_exporter: InMemorySpanExporter | None = None


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _parse_resource_attrs(attrs_str: str) -> dict[str, str]:
    """Parse comma-separated k=v resource attributes."""
    result: dict[str, str] = {}
    for pair in attrs_str.split(","):
        pair = pair.strip()
        if "=" in pair:
            k, v = pair.split("=", 1)
            result[k.strip()] = v.strip()
    return result


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for pathstore.

    Idempotent: the global tracer provider can only be installed once per
    process, later calls reuse it.

    Returns:
        True if tracing is enabled and configured, False otherwise.
    """
    global _tracer_provider, _test_exporter

    if not _get_env_bool("PATHSTORE_OTEL_ENABLED", False):
        logger.debug("OpenTelemetry tracing disabled (PATHSTORE_OTEL_ENABLED not set)")
        return False

    if _tracer_provider is not None:
        return True

    service_name = _get_env_str("PATHSTORE_OTEL_SERVICE_NAME", "pathstore")
    exporter_type = _get_env_str("PATHSTORE_OTEL_EXPORTER", "console")
    test_capture = _get_env_bool("PATHSTORE_OTEL_TEST_CAPTURE", False)

    resource_attrs: dict[str, Any] = {"service.name": service_name}
    resource_attrs.update(_parse_resource_attrs(_get_env_str("PATHSTORE_OTEL_RESOURCE_ATTRS")))
    provider = TracerProvider(resource=Resource.create(resource_attrs))

    if test_capture:
        _test_exporter = InMemorySpanExporter()
        provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
    elif exporter_type == "console":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer_provider = provider

    logger.info(
        "OpenTelemetry tracing configured: service=%s, exporter=%s",
        service_name,
        "in-memory" if test_capture else exporter_type,
    )
    return True


def get_current_trace_id() -> str | None:
    """Get the current trace ID for logging correlation.

    Returns:
        Hex string of current trace ID, or None if no active span.
    """
    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x")


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from in-memory exporter (for testing)."""
    if _test_exporter is None:
        return []
    return list(_test_exporter.get_finished_spans())


def clear_test_spans() -> None:
    """Clear captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None:
        _test_exporter.clear()
