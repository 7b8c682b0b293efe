"""Global tracing backend configuration (thread-safe)."""

from __future__ import annotations

import os
import threading

from sluice.backends.base import TracingBackend

ENV_BACKEND = "SLUICE_TRACING_BACKEND"

_lock = threading.Lock()
_backend: TracingBackend | None = None
_configured = False


def configure(backend: TracingBackend | str = "auto") -> None:
    """Set the global tracing backend.

    *backend* can be:
    - A :class:`TracingBackend` instance
    - ``"logging"`` — use the built-in :class:`LoggingBackend`
    - ``"otel"`` — use :class:`OTelBackend` (requires ``opentelemetry-api``)
    - ``"auto"`` — try OTel, fall back to logging
    """
    global _backend, _configured
    with _lock:
        _backend = _resolve(backend)
        _configured = True


def get_backend() -> TracingBackend:
    """Return the configured backend.

    On first use without an explicit :func:`configure`, the backend named by
    the ``SLUICE_TRACING_BACKEND`` environment variable is used (``"auto"``
    when unset).
    """
    global _backend, _configured
    if _configured:
        assert _backend is not None
        return _backend
    with _lock:
        if _configured:
            assert _backend is not None
            return _backend
        _backend = _resolve(os.environ.get(ENV_BACKEND, "auto"))
        _configured = True
        return _backend


def reset() -> None:
    """Reset configuration to unconfigured state. Intended for testing."""
    global _backend, _configured
    with _lock:
        _backend = None
        _configured = False


def _resolve(backend: TracingBackend | str) -> TracingBackend:
    if isinstance(backend, TracingBackend):
        return backend
    if backend == "logging":
        from sluice.backends.logging import LoggingBackend

        return LoggingBackend()
    if backend == "otel":
        from sluice.backends.otel import OTelBackend

        return OTelBackend()
    if backend == "auto":
        return _auto_detect()
    raise ValueError(f"Unknown backend: {backend!r}")


def _auto_detect() -> TracingBackend:
    """Try to build an OTel backend; fall back to LoggingBackend."""
    try:
        from sluice.backends.otel import OTelBackend

        return OTelBackend()
    except RuntimeError:
        from sluice.backends.logging import LoggingBackend

        return LoggingBackend()
