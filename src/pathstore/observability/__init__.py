"""pathstore Observability module.

Provides the OpenTelemetry tracer provider setup.
"""

from pathstore.observability.tracing import configure_tracing, get_current_trace_id

__all__ = ["configure_tracing", "get_current_trace_id"]
