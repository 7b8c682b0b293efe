"""Demo: serve a handful of flows over HTTP.

Run this, then try::

    curl -X POST localhost:8080/basic -d '{"data": "socks"}'
    curl -X POST localhost:8080/complex -d '{"data": {"key": "a", "value": 1}}'
    curl -X POST 'localhost:8080/streamy?stream=true' -d '{"data": 5}'
    curl -X POST 'localhost:8080/streamyThrowy?stream=true' -d '{"data": 5}'
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from sluice import EmitFn, FlowContext, FlowRegistry, run_step
from sluice.http.server import serve

registry = FlowRegistry()


@registry.flow("basic")
async def basic(ctx: FlowContext, subject: str) -> str:
    foo = await run_step("call-llm", lambda: f"subject: {subject}")
    return await run_step("call-llm", lambda: f"foo: {foo}")


@registry.flow("parent")
async def parent(ctx: FlowContext, _: Any) -> str:
    return await basic.run("foo")


class Complex(BaseModel):
    key: str
    value: int


@registry.flow("complex")
async def complex_flow(ctx: FlowContext, c: Complex) -> str:
    return await run_step("call-llm", lambda: f"{c.key}: {c.value}")


@registry.flow("throwy")
async def throwy(ctx: FlowContext, err: str) -> str:
    raise RuntimeError(err)


class Chunk(BaseModel):
    count: int


@registry.streaming_flow("streamy", chunk_schema=Chunk)
async def streamy(ctx: FlowContext, count: int, emit: EmitFn) -> str:
    streamed = 0
    for i in range(count):
        await emit(Chunk(count=i))
        streamed += 1
    return f"done: {count}, streamed: {streamed} times"


@registry.streaming_flow("streamyThrowy", chunk_schema=Chunk)
async def streamy_throwy(ctx: FlowContext, count: int, emit: EmitFn) -> str:
    for i in range(count):
        if i == 3:
            raise RuntimeError("boom!")
        await emit(Chunk(count=i))
    return f"done: {count}, streamed: {count} times"


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    serve(registry)
