"""FastAPI application exposing each registered flow as ``POST /<name>``."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from sluice._context import FlowContext
from sluice._errors import FlowValidationError, SluiceError
from sluice._flow import Flow, StreamingFlow
from sluice._registry import FlowRegistry
from sluice._types import ChunkEvent, ErrorEvent, ResultEvent, StreamEvent
from sluice.http._wire import (
    ChunkMessage,
    ErrorMessage,
    ResultMessage,
    ResultResponse,
    error_body,
    error_payload,
    ndjson_line,
    status_for,
)

logger = logging.getLogger("sluice.http")

STREAM_MEDIA_TYPE = "application/x-ndjson"
CORRELATION_HEADER = "X-Correlation-ID"


def create_app(registry: FlowRegistry, *, title: str = "sluice") -> FastAPI:
    """Build the app. The registry is frozen and its route table fixed here."""
    registry.freeze()
    app = FastAPI(title=title)
    app.state.registry = registry
    for flow in registry.list_flows():
        app.add_api_route(
            f"/{flow.name}",
            _make_endpoint(flow),
            methods=["POST"],
            name=flow.name,
            response_model=None,
        )
    logger.info("routes.built", extra={"flows": registry.get_all_flow_names()})
    return app


def _make_endpoint(flow: Flow[Any, Any]) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        ctx = FlowContext(correlation_id=request.headers.get(CORRELATION_HEADER))
        headers = {CORRELATION_HEADER: ctx.correlation_id}
        try:
            value = flow.validate_input(await _read_data(request))
        except FlowValidationError as exc:
            logger.info(
                "request.rejected",
                extra={
                    "flow": flow.name,
                    "correlation_id": ctx.correlation_id,
                    "error": exc.message,
                },
            )
            return JSONResponse(error_payload(exc), status_code=400, headers=headers)

        if _wants_stream(request):
            return StreamingResponse(
                _ndjson(flow, value, ctx), media_type=STREAM_MEDIA_TYPE, headers=headers
            )

        try:
            output = await _run_until_disconnect(request, flow, value, ctx)
            payload = ResultResponse(result=flow.dump_output(output)).model_dump()
        except Exception as exc:
            _log_failure(flow, ctx, exc)
            return JSONResponse(
                error_payload(exc), status_code=status_for(exc), headers=headers
            )
        return JSONResponse(payload, headers=headers)

    endpoint.__name__ = f"run_{flow.name}"
    return endpoint


async def _run_until_disconnect(
    request: Request, flow: Flow[Any, Any], value: Any, ctx: FlowContext
) -> Any:
    """Run *flow*, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(flow.run(value, ctx=ctx))
    watcher = asyncio.ensure_future(_watch_disconnect(request, ctx, task))
    try:
        return await task
    except asyncio.CancelledError:
        if not task.cancelled() or not ctx.cancelled:
            raise
        ctx.raise_if_cancelled()
        raise
    finally:
        watcher.cancel()


async def _watch_disconnect(
    request: Request, ctx: FlowContext, task: asyncio.Future[Any]
) -> None:
    # The body has been read, so the next ASGI message is the disconnect.
    while (await request.receive())["type"] != "http.disconnect":
        pass
    logger.info(
        "client.disconnected",
        extra={"correlation_id": ctx.correlation_id},
    )
    ctx.cancel("client disconnected")
    task.cancel()


async def _read_data(request: Request) -> Any:
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise FlowValidationError("Request body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise FlowValidationError('Request body must be a JSON object like {"data": ...}')
    return body.get("data")


def _wants_stream(request: Request) -> bool:
    if request.query_params.get("stream", "").lower() in ("1", "true"):
        return True
    return STREAM_MEDIA_TYPE in request.headers.get("accept", "")


async def _ndjson(
    flow: Flow[Any, Any], value: Any, ctx: FlowContext
) -> AsyncIterator[str]:
    if not isinstance(flow, StreamingFlow):
        try:
            output = await flow.run(value, ctx=ctx)
            line = ndjson_line(ResultMessage(data=flow.dump_output(output)))
        except asyncio.CancelledError:
            ctx.cancel("client disconnected")
            raise
        except Exception as exc:
            _log_failure(flow, ctx, exc)
            line = ndjson_line(ErrorMessage(error=error_body(exc)))
        yield line
        return

    stream = flow.stream(value, ctx=ctx)
    try:
        async for event in stream.events():
            try:
                line = _encode_event(flow, event, ctx)
            except Exception as exc:
                _log_failure(flow, ctx, exc)
                yield ndjson_line(ErrorMessage(error=error_body(exc)))
                return
            yield line
    finally:
        await stream.aclose()


def _encode_event(
    flow: StreamingFlow[Any, Any, Any], event: StreamEvent, ctx: FlowContext
) -> str:
    if isinstance(event, ChunkEvent):
        return ndjson_line(ChunkMessage(data=flow.dump_chunk(event.data)))
    if isinstance(event, ResultEvent):
        return ndjson_line(ResultMessage(data=flow.dump_output(event.data)))
    if isinstance(event, ErrorEvent):
        _log_failure(flow, ctx, event.error)
        return ndjson_line(ErrorMessage(error=error_body(event.error)))
    raise TypeError(f"Unexpected stream event: {event!r}")


def _log_failure(flow: Flow[Any, Any], ctx: FlowContext, exc: BaseException) -> None:
    extra = {
        "flow": flow.name,
        "correlation_id": ctx.correlation_id,
        "error": str(exc),
    }
    if isinstance(exc, SluiceError):
        logger.warning("flow.failed", extra=extra)
    else:
        logger.exception("flow.failed", extra=extra, exc_info=exc)
