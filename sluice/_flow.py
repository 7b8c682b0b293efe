"""Flow definitions: synchronous and streaming flows."""

from __future__ import annotations

import inspect
import json
import typing
from collections.abc import Awaitable, Callable
from typing import Any, Generic

from pydantic import TypeAdapter, ValidationError

from sluice._config import get_backend
from sluice._context import FlowContext, _reset_context, _set_context, get_flow_context
from sluice._errors import FlowDefinitionError, FlowError, FlowValidationError
from sluice._streaming import EmitFn, FlowStream, discard_chunk
from sluice._types import C, FlowMode, I, O

FlowBody = Callable[[FlowContext, Any], Awaitable[Any]]
StreamingFlowBody = Callable[[FlowContext, Any, EmitFn], Awaitable[Any]]


class Flow(Generic[I, O]):
    """A named async callable with declared input and output shapes.

    The body is ``async def body(ctx, input) -> output``.  Shapes default to
    the body's annotations for its second parameter and its return value;
    pass *input_schema* / *output_schema* to override them.
    """

    mode = FlowMode.SYNC
    _arity = 2

    def __init__(
        self,
        name: str,
        body: Callable[..., Awaitable[O]],
        *,
        input_schema: Any = None,
        output_schema: Any = None,
    ) -> None:
        if not name or name.startswith("/") or any(ch.isspace() for ch in name):
            raise FlowDefinitionError(f"Invalid flow name: {name!r}")
        if not inspect.iscoroutinefunction(body):
            raise FlowDefinitionError(
                f"Flow '{name}' body must be an async function, got {body!r}"
            )
        params = _positional_params(body)
        if len(params) < self._arity:
            raise FlowDefinitionError(
                f"Flow '{name}' body must accept {self._arity} positional "
                f"arguments, got {len(params)}"
            )
        self.name = name
        self._body = body
        hints = _hints(name, body) if input_schema is None or output_schema is None else {}
        self.input_schema = (
            input_schema if input_schema is not None else hints.get(params[1], Any)
        )
        self.output_schema = (
            output_schema if output_schema is not None else hints.get("return", Any)
        )
        self._input_adapter: TypeAdapter[Any] = _adapter(name, self.input_schema)
        self._output_adapter: TypeAdapter[Any] = _adapter(name, self.output_schema)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    # -- invocation -----------------------------------------------------------

    async def run(self, input: I, *, ctx: FlowContext | None = None) -> O:
        """Invoke the flow and return its output.

        Called inside another flow (and without *ctx*), the parent's context
        is reused so this flow's steps join the parent's trace.  Otherwise a
        new context (or *ctx*) is bound for the duration of the call.
        """
        parent = get_flow_context()
        if ctx is None and parent is not None:
            return await self._execute(parent, input, discard_chunk)
        ctx = ctx if ctx is not None else FlowContext()
        token = _set_context(ctx)
        try:
            return await self._execute(ctx, input, discard_chunk)
        finally:
            _reset_context(token)

    async def _execute(self, ctx: FlowContext, input: Any, emit: EmitFn) -> O:
        ctx.raise_if_cancelled()
        ctx._push_flow(self.name)
        try:
            with get_backend().span(self.name, self.name, kind="flow"):
                output = await self._call_body(ctx, input, emit)
                ctx.raise_if_cancelled()
                return output
        finally:
            ctx._pop_flow()

    async def _call_body(self, ctx: FlowContext, input: Any, emit: EmitFn) -> O:
        return await self._body(ctx, input)

    # -- payload helpers ------------------------------------------------------

    def validate_input(self, raw: Any) -> I:
        """Validate decoded JSON against the input shape.

        Validation is strict and follows JSON rules: ``"3"``, ``true`` and
        ``2.0`` are not integers, but an object is accepted for a model.
        """
        try:
            return self._input_adapter.validate_json(json.dumps(raw), strict=True)
        except ValidationError as exc:
            raise FlowValidationError(
                f"Invalid input for flow '{self.name}'",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    def dump_output(self, value: O) -> Any:
        """Convert an output value into JSON-compatible data."""
        return self._output_adapter.dump_python(value, mode="json")


class StreamingFlow(Flow[I, O], Generic[I, O, C]):
    """A flow whose body also receives an ``emit`` coroutine for chunks.

    The body is ``async def body(ctx, input, emit) -> output`` and calls
    ``await emit(chunk)`` zero or more times before returning.  A failing
    ``emit`` must be allowed to propagate.
    """

    mode = FlowMode.STREAMING
    _arity = 3

    def __init__(
        self,
        name: str,
        body: Callable[..., Awaitable[O]],
        *,
        input_schema: Any = None,
        output_schema: Any = None,
        chunk_schema: Any = Any,
    ) -> None:
        super().__init__(
            name, body, input_schema=input_schema, output_schema=output_schema
        )
        self.chunk_schema = chunk_schema
        self._chunk_adapter: TypeAdapter[Any] = _adapter(name, chunk_schema)

    async def run(
        self,
        input: I,
        *,
        ctx: FlowContext | None = None,
        emit: EmitFn | None = None,
    ) -> O:
        """Invoke the flow in batch mode and return its output.

        Chunks are discarded unless *emit* is given, in which case they are
        forwarded to it (e.g. a parent streaming flow's emitter).
        """
        if emit is None:
            return await super().run(input, ctx=ctx)
        parent = get_flow_context()
        if ctx is None and parent is not None:
            return await self._execute(parent, input, emit)
        ctx = ctx if ctx is not None else FlowContext()
        token = _set_context(ctx)
        try:
            return await self._execute(ctx, input, emit)
        finally:
            _reset_context(token)

    def stream(self, input: I, *, ctx: FlowContext | None = None) -> FlowStream[C, O]:
        """Start a streaming invocation. See :class:`FlowStream`."""
        return FlowStream(self, input, ctx)

    async def _call_body(self, ctx: FlowContext, input: Any, emit: EmitFn) -> O:
        if self.chunk_schema is Any:
            return await self._body(ctx, input, emit)

        async def checked_emit(chunk: Any) -> None:
            await emit(self.validate_chunk(chunk))

        return await self._body(ctx, input, checked_emit)

    def validate_chunk(self, chunk: Any) -> C:
        """Check an emitted chunk against the chunk shape.

        Raises :class:`FlowError` (status 500) when it does not conform; the
        chunk is not delivered.
        """
        try:
            return self._chunk_adapter.validate_python(chunk)
        except ValidationError as exc:
            raise FlowError(
                f"Chunk does not match the chunk schema of flow '{self.name}'",
                details=[
                    {"loc": err["loc"], "msg": err["msg"], "type": err["type"]}
                    for err in exc.errors(include_url=False)
                ],
            ) from exc

    def dump_chunk(self, chunk: C) -> Any:
        """Convert a chunk into JSON-compatible data."""
        return self._chunk_adapter.dump_python(chunk, mode="json")


# ---------------------------------------------------------------------------
# Definition helpers
# ---------------------------------------------------------------------------


def define_flow(
    name: str,
    body: Callable[..., Awaitable[O]],
    *,
    input_schema: Any = None,
    output_schema: Any = None,
) -> Flow[Any, O]:
    """Create a synchronous flow that is not attached to any registry."""
    return Flow(name, body, input_schema=input_schema, output_schema=output_schema)


def define_streaming_flow(
    name: str,
    body: Callable[..., Awaitable[O]],
    *,
    input_schema: Any = None,
    output_schema: Any = None,
    chunk_schema: Any = Any,
) -> StreamingFlow[Any, O, Any]:
    """Create a streaming flow that is not attached to any registry."""
    return StreamingFlow(
        name,
        body,
        input_schema=input_schema,
        output_schema=output_schema,
        chunk_schema=chunk_schema,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _positional_params(body: Callable[..., Any]) -> list[str]:
    return [
        p.name
        for p in inspect.signature(body).parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]


def _hints(name: str, body: Callable[..., Any]) -> dict[str, Any]:
    try:
        return typing.get_type_hints(body)
    except (NameError, TypeError) as exc:
        raise FlowDefinitionError(
            f"Cannot resolve type hints of flow '{name}': {exc}. "
            "Pass input_schema/output_schema explicitly."
        ) from exc


def _adapter(name: str, schema: Any) -> TypeAdapter[Any]:
    try:
        return TypeAdapter(schema)
    except Exception as exc:
        raise FlowDefinitionError(
            f"Unsupported schema {schema!r} for flow '{name}': {exc}"
        ) from exc
