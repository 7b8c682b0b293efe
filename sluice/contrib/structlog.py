"""structlog processor that injects the sluice flow ID into log entries.

Usage::

    import structlog
    from sluice.contrib.structlog import flow_processor

    structlog.configure(
        processors=[
            flow_processor,
            structlog.dev.ConsoleRenderer(),
        ]
    )

Every log entry emitted while a flow is running includes a ``flow_id`` key
with the invocation's correlation ID and, inside nested flows, a ``flow``
key naming the innermost running flow.
"""

from __future__ import annotations

from typing import Any

from sluice._context import get_flow_context


def flow_processor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor that adds ``flow_id`` (and ``flow``) to every event.

    When no flow is active the keys are omitted rather than set to ``None``,
    keeping logs clean outside of flow contexts.
    """
    ctx = get_flow_context()
    if ctx is None:
        return event_dict
    event_dict["flow_id"] = ctx.correlation_id
    if ctx.current_flow is not None:
        event_dict.setdefault("flow", ctx.current_flow)
    return event_dict
