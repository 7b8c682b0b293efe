"""Logging-based tracing backend (zero external dependencies)."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sluice._context import current_flow_id
from sluice.backends.base import TracingBackend

logger = logging.getLogger("sluice")


class LoggingBackend(TracingBackend):
    """Emits structured log records for each span start/end.

    Records are named ``<kind>.start`` / ``<kind>.end`` where *kind* is the
    ``kind`` attribute (``"step"`` when absent).  Failures are reported on
    the end record through ``status="error"`` and ``error``.
    """

    @contextmanager
    def span(self, name: str, flow_name: str, **attrs: Any) -> Iterator[None]:
        kind = attrs.pop("kind", "step")
        extra = {
            "flow": flow_name,
            kind: name,
            "correlation_id": self.get_correlation_id(),
            **attrs,
        }
        logger.info(f"{kind}.start", extra=extra)
        start = time.monotonic()
        status, error = "ok", None
        try:
            yield
        except BaseException as exc:
            status, error = "error", str(exc) or type(exc).__name__
            raise
        finally:
            duration_ms = (time.monotonic() - start) * 1000
            logger.info(
                f"{kind}.end",
                extra={
                    **extra,
                    "duration_ms": duration_ms,
                    "status": status,
                    "error": error,
                },
            )

    def get_correlation_id(self) -> str:
        return current_flow_id() or ""
