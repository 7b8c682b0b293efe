"""Flow execution context propagated via contextvars."""

from __future__ import annotations

import copy
import time
import uuid
from collections.abc import Mapping
from contextvars import ContextVar, Token
from typing import Any

from sluice._errors import FlowCancelledError
from sluice._types import StepRecord


class FlowContext:
    """Carries everything owned by one flow invocation.

    That is the correlation ID, arbitrary metadata, the step trace,
    cancellation state and an optional replay seed.  A context belongs to
    exactly one invocation; nested flows share their parent's context so
    their steps land in the same trace.

    Task-safe via ``contextvars``.  Use :meth:`fork` to create a context for
    a new invocation that keeps the correlation ID but starts a fresh trace.
    """

    __slots__ = (
        "_cancel_reason",
        "_deadline",
        "_flow_stack",
        "_key_counts",
        "_metadata",
        "_replay",
        "_trace",
        "correlation_id",
    )

    def __init__(
        self,
        correlation_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        replay: Mapping[str, Any] | None = None,
    ) -> None:
        self.correlation_id: str = correlation_id or uuid.uuid4().hex
        self._metadata: dict[str, Any] = metadata if metadata is not None else {}
        self._deadline: float | None = (
            time.monotonic() + timeout if timeout is not None else None
        )
        self._replay: dict[str, Any] = dict(replay) if replay else {}
        self._trace: list[StepRecord] = []
        self._key_counts: dict[str, int] = {}
        self._flow_stack: list[str] = []
        self._cancel_reason: str | None = None

    # -- value helpers --------------------------------------------------------

    def get_value(self, key: str, default: Any = None) -> Any:
        """Return a metadata value, or *default* if the key is absent."""
        return self._metadata.get(key, default)

    def set_value(self, key: str, value: Any) -> None:
        """Set a metadata value."""
        self._metadata[key] = value

    def delete_value(self, key: str) -> None:
        """Remove a metadata key. Raises ``KeyError`` if absent."""
        del self._metadata[key]

    @property
    def metadata(self) -> dict[str, Any]:
        """Read-only snapshot of the current metadata."""
        return dict(self._metadata)

    # -- cancellation ---------------------------------------------------------

    def cancel(self, reason: str = "flow cancelled") -> None:
        """Mark the invocation as cancelled. The first reason wins."""
        if self._cancel_reason is None:
            self._cancel_reason = reason

    @property
    def cancelled(self) -> bool:
        if self._cancel_reason is not None:
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._cancel_reason = "deadline exceeded"
            return True
        return False

    @property
    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        """Raise :class:`FlowCancelledError` once cancellation is observed."""
        if self.cancelled:
            raise FlowCancelledError(self._cancel_reason or "flow cancelled")

    # -- trace ----------------------------------------------------------------

    @property
    def trace(self) -> tuple[StepRecord, ...]:
        """Steps recorded so far, in execution order."""
        return tuple(self._trace)

    def outputs(self) -> dict[str, Any]:
        """Return ``{step key: output}`` for every step that produced a value.

        Feeding the result into ``FlowContext(replay=...)`` lets a retried
        invocation skip the steps that already succeeded.
        """
        return {
            rec.key: rec.output for rec in self._trace if rec.status != "error"
        }

    @property
    def current_flow(self) -> str | None:
        return self._flow_stack[-1] if self._flow_stack else None

    def _push_flow(self, name: str) -> None:
        self._flow_stack.append(name)

    def _pop_flow(self) -> None:
        self._flow_stack.pop()

    def _next_step_key(self, name: str) -> str:
        # Outermost flow is implicit; nested flows prefix their steps.
        prefix = "/".join(self._flow_stack[1:])
        base = f"{prefix}/{name}" if prefix else name
        count = self._key_counts.get(base, 0) + 1
        self._key_counts[base] = count
        return base if count == 1 else f"{base}#{count}"

    def _lookup_replay(self, key: str) -> tuple[bool, Any]:
        if key in self._replay:
            return True, self._replay[key]
        return False, None

    def _record(self, record: StepRecord) -> None:
        self._trace.append(record)

    # -- forking --------------------------------------------------------------

    def fork(self) -> FlowContext:
        """Create a context for a new invocation sharing the correlation ID.

        Metadata is deep-copied so mutations in the child do not affect the
        parent (and vice-versa).  Trace and cancellation are not inherited.
        """
        return FlowContext(
            correlation_id=self.correlation_id,
            metadata=copy.deepcopy(self._metadata),
        )


# ---------------------------------------------------------------------------
# ContextVar holding the current FlowContext (None when outside a flow)
# ---------------------------------------------------------------------------

_flow_context_var: ContextVar[FlowContext | None] = ContextVar(
    "sluice_flow_context", default=None
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _set_context(ctx: FlowContext) -> Token[FlowContext | None]:
    """Make *ctx* the current FlowContext."""
    return _flow_context_var.set(ctx)


def _reset_context(token: Token[FlowContext | None] | None = None) -> None:
    """Restore the previous FlowContext (``None`` when no token is given)."""
    if token is not None:
        _flow_context_var.reset(token)
    else:
        _flow_context_var.set(None)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def current_flow_id() -> str | None:
    """Return the current correlation ID, or ``None`` if outside a flow."""
    ctx = _flow_context_var.get()
    return ctx.correlation_id if ctx is not None else None


def get_flow_context() -> FlowContext | None:
    """Return the current :class:`FlowContext`, or ``None``."""
    return _flow_context_var.get()


def get_flow_context_value(key: str, default: Any = None) -> Any:
    """Get a metadata value from the current flow context.

    Returns *default* if there is no active context or the key is absent.
    """
    ctx = _flow_context_var.get()
    if ctx is None:
        return default
    return ctx.get_value(key, default)
