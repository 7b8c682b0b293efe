"""Step runner: ``run_step(name, body)`` and the ``@step`` decorator."""

from __future__ import annotations

import asyncio
import functools
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, overload

from sluice._config import get_backend
from sluice._context import FlowContext, get_flow_context
from sluice._errors import FlowCancelledError, StepError
from sluice._types import P, StepRecord

T = TypeVar("T")


async def run_step(name: str, body: Callable[[], T | Awaitable[T]]) -> T:
    """Run *body* once as the traced step *name* of the current flow.

    *body* takes no arguments and may be a plain function or return an
    awaitable.  Its outcome is appended to the invocation's trace.  When the
    context was seeded with a replay value for this step's key, the recorded
    value is returned and *body* is not called.

    Raises :class:`StepError` (message preserved, cause chained) if *body*
    fails, and :class:`FlowCancelledError` if the invocation was cancelled
    before the step started or its deadline passed while an awaitable body
    was still running (the body is cancelled).
    """
    if not name:
        raise ValueError("Step name must be a non-empty string")
    ctx = get_flow_context()
    if ctx is None:
        raise RuntimeError(
            f"Step '{name}' run outside of a flow context. "
            "Steps can only run inside a flow body."
        )
    ctx.raise_if_cancelled()

    key = ctx._next_step_key(name)
    flow_name = ctx.current_flow or "<unknown>"

    replayed, value = ctx._lookup_replay(key)
    if replayed:
        ctx._record(
            StepRecord(
                key=key, name=name, flow_name=flow_name, status="replayed", output=value
            )
        )
        return value

    backend = get_backend()
    start = time.monotonic()
    try:
        with backend.span(name, flow_name, kind="step", key=key):
            result = body()
            if inspect.isawaitable(result):
                result = await _within_deadline(ctx, result)
    except (StepError, FlowCancelledError) as exc:
        ctx._record(_failed(key, name, flow_name, exc, start))
        raise
    except Exception as exc:
        ctx._record(_failed(key, name, flow_name, exc, start))
        raise StepError(name, exc) from exc

    ctx._record(
        StepRecord(
            key=key,
            name=name,
            flow_name=flow_name,
            status="ok",
            output=result,
            duration_ms=(time.monotonic() - start) * 1000,
        )
    )
    return result  # type: ignore[return-value]


async def _within_deadline(ctx: FlowContext, awaitable: Awaitable[T]) -> T:
    # Only awaitable bodies can be bounded; a sync body runs to completion.
    remaining = ctx.remaining
    if remaining is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=remaining)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if task not in done:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        ctx.cancel("deadline exceeded")
        ctx.raise_if_cancelled()
    return task.result()


def _failed(
    key: str, name: str, flow_name: str, exc: BaseException, start: float
) -> StepRecord:
    return StepRecord(
        key=key,
        name=name,
        flow_name=flow_name,
        status="error",
        error=str(exc),
        duration_ms=(time.monotonic() - start) * 1000,
    )


# ---------------------------------------------------------------------------
# @step
# ---------------------------------------------------------------------------


@overload
def step(fn: Callable[P, Any]) -> Callable[P, Awaitable[Any]]: ...


@overload
def step(
    *, name: str | None = ...
) -> Callable[[Callable[P, Any]], Callable[P, Awaitable[Any]]]: ...


def step(fn: Callable[..., Any] | None = None, *, name: str | None = None) -> Any:
    """Turn a function into a traced step.

    Can be used bare (``@step``) or with arguments (``@step(name="call-llm")``).
    The decorated function becomes a coroutine function; every call runs
    through :func:`run_step` under the step name.
    """
    if fn is not None:
        return _make_step(fn, name=None)

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        return _make_step(f, name=name)

    return decorator


def _make_step(fn: Callable[..., Any], *, name: str | None) -> Callable[..., Any]:
    step_name = name or fn.__name__

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await run_step(step_name, lambda: fn(*args, **kwargs))

    wrapper.__sluice_step__ = step_name  # type: ignore[attr-defined]
    return wrapper
