"""Chunk channel between a streaming flow body and its consumer."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic

from sluice._context import FlowContext, _set_context, get_flow_context
from sluice._errors import FlowCancelledError, StreamClosedError
from sluice._types import C, ChunkEvent, ErrorEvent, O, ResultEvent, StreamEvent

if TYPE_CHECKING:
    from sluice._flow import Flow

_END = object()


class ChunkChannel(Generic[C]):
    """Rendezvous channel carrying chunks from one producer to one consumer.

    :meth:`send` returns only once the consumer has taken the chunk, so a
    producer never runs ahead of what has been delivered.  The producer ends
    the sequence with :meth:`close`; the consumer gives up with
    :meth:`abort`.  Sending on a closed or aborted channel raises
    :class:`StreamClosedError`.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._closed = False
        self._aborted = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed or self._aborted

    async def send(self, chunk: C) -> None:
        if self.closed:
            raise StreamClosedError("chunk channel is closed")
        await self._queue.put(chunk)
        await self._queue.join()
        if self._aborted:
            raise StreamClosedError("consumer went away")

    async def close(self) -> None:
        """Mark the end of the sequence. Idempotent."""
        if self.closed:
            return
        self._closed = True
        await self._queue.put(_END)

    def abort(self) -> None:
        """Stop accepting chunks without signalling the end of the sequence."""
        self._aborted = True

    async def __aiter__(self) -> AsyncIterator[C]:
        while not self._finished:
            item = await self._queue.get()
            self._queue.task_done()
            if item is _END:
                self._finished = True
                return
            yield item


class FlowStream(Generic[C, O]):
    """Consumer side of one streaming flow invocation.

    The flow body runs in its own task, started on first use.  Iterate the
    stream for chunks, then ``await stream.output()`` for the final value;
    or iterate :meth:`events` for chunks followed by one terminal event.
    """

    def __init__(self, flow: Flow[Any, O], input: Any, ctx: FlowContext | None) -> None:
        self._flow = flow
        self._input = input
        self._ctx = ctx if ctx is not None else FlowContext()
        self._channel: ChunkChannel[C] = ChunkChannel()
        self._task: asyncio.Task[O] | None = None

    @property
    def context(self) -> FlowContext:
        return self._ctx

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    # -- producer -------------------------------------------------------------

    def _start(self) -> asyncio.Task[O]:
        if self._task is None:
            self._task = asyncio.create_task(
                self._produce(), name=f"sluice-stream:{self._flow.name}"
            )
        return self._task

    async def _produce(self) -> O:
        # The task runs in a copy of the caller's context; binding here is local.
        _set_context(self._ctx)
        try:
            return await self._flow._execute(self._ctx, self._input, self._emit)
        finally:
            await self._channel.close()

    async def _emit(self, chunk: C) -> None:
        self._ctx.raise_if_cancelled()
        await self._channel.send(chunk)

    # -- consumer -------------------------------------------------------------

    async def __aiter__(self) -> AsyncIterator[C]:
        self._start()
        async for chunk in self._channel:
            if self._ctx.cancelled:
                self._stop_producer()
                return
            yield chunk

    async def output(self) -> O:
        """Return the flow's final output, or raise its terminal error.

        Chunks not yet consumed are discarded.
        """
        task = self._start()
        if not task.done():
            async for _ in self:
                pass
        try:
            return await task
        except asyncio.CancelledError:
            if self._ctx.cancelled:
                raise FlowCancelledError(self._ctx._cancel_reason or "flow cancelled") from None
            raise

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield a :class:`ChunkEvent` per chunk, then one terminal event."""
        async for chunk in self:
            yield ChunkEvent(chunk)
        try:
            result = await self.output()
        except Exception as exc:
            yield ErrorEvent(exc)
        else:
            yield ResultEvent(result)

    def _stop_producer(self) -> None:
        self._channel.abort()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self, reason: str = "stream closed by consumer") -> None:
        """Cancel the invocation if it is still running and wait for it to stop."""
        if self._task is None or self._task.done():
            self._channel.abort()
            return
        self._ctx.cancel(reason)
        self._stop_producer()
        await asyncio.gather(self._task, return_exceptions=True)

    async def __aenter__(self) -> FlowStream[C, O]:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


EmitFn = Callable[[Any], Awaitable[None]]


async def discard_chunk(chunk: Any) -> None:
    """Emitter used when nobody consumes chunks: accepts and drops them."""
    ctx = get_flow_context()
    if ctx is not None:
        ctx.raise_if_cancelled()
