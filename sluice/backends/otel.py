"""OpenTelemetry tracing backend.

Requires ``opentelemetry-api`` (and an SDK to actually export spans).
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sluice._context import current_flow_id
from sluice.backends.base import TracingBackend

try:
    from opentelemetry import trace  # type: ignore[import-not-found]

    _HAS_OTEL = True
except ImportError:  # pragma: no cover
    _HAS_OTEL = False


class OTelBackend(TracingBackend):
    """Emits real OpenTelemetry spans for each flow and step.

    Nested flows and steps become child spans of the enclosing flow span.
    Raises :class:`RuntimeError` at construction time if
    ``opentelemetry-api`` is missing.
    """

    def __init__(
        self,
        tracer_name: str = "sluice",
        tracer_provider: Any = None,
    ) -> None:
        if not _HAS_OTEL:
            raise RuntimeError(
                "opentelemetry-api is required for OTelBackend. "
                "Install it with: pip install 'sluice[otel]'"
            )
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)

    @contextmanager
    def span(self, name: str, flow_name: str, **attrs: Any) -> Iterator[None]:
        attributes = {f"sluice.{k}": v for k, v in attrs.items() if v is not None}
        attributes["sluice.flow"] = flow_name
        cid = current_flow_id()
        if cid is not None:
            attributes["sluice.correlation_id"] = cid
        with self._tracer.start_as_current_span(name, attributes=attributes):
            yield

    def get_correlation_id(self) -> str:
        span = trace.get_current_span()
        ctx = span.get_span_context()
        if ctx is not None and ctx.trace_id:
            return format(ctx.trace_id, "032x")
        return current_flow_id() or ""
