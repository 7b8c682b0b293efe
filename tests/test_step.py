"""Tests for sluice._step."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from sluice._context import FlowContext
from sluice._errors import FlowCancelledError, StepError
from sluice._flow import define_flow
from sluice._step import run_step, step


def _run(body: Callable[[], Awaitable[Any]], *, ctx: FlowContext | None = None) -> Any:
    """Run *body* as the only thing a flow does."""

    async def flow_body(ctx: FlowContext, _: Any) -> Any:
        return await body()

    return asyncio.run(define_flow("f", flow_body).run(None, ctx=ctx))


class TestRunStep:
    def test_outside_flow_raises(self) -> None:
        with pytest.raises(RuntimeError, match="outside of a flow context"):
            asyncio.run(run_step("s", lambda: 1))

    def test_empty_name_raises(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            _run(lambda: run_step("", lambda: 1))

    def test_returns_sync_result(self) -> None:
        assert _run(lambda: run_step("s", lambda: 41 + 1)) == 42

    def test_awaits_async_body(self) -> None:
        async def body() -> str:
            await asyncio.sleep(0)
            return "async"

        assert _run(lambda: run_step("s", body)) == "async"

    def test_invokes_body_once(self) -> None:
        calls: list[int] = []

        def body() -> int:
            calls.append(1)
            return len(calls)

        _run(lambda: run_step("s", body))
        assert calls == [1]

    def test_records_trace(self) -> None:
        ctx = FlowContext()

        async def body() -> str:
            first = await run_step("call-llm", lambda: "subject: socks")
            return await run_step("call-llm", lambda: f"foo: {first}")

        assert _run(body, ctx=ctx) == "foo: subject: socks"
        assert [(r.key, r.status, r.output) for r in ctx.trace] == [
            ("call-llm", "ok", "subject: socks"),
            ("call-llm#2", "ok", "foo: subject: socks"),
        ]
        assert all(r.flow_name == "f" for r in ctx.trace)
        assert all(r.duration_ms >= 0 for r in ctx.trace)


class TestStepFailure:
    def test_wraps_error_with_step_name(self) -> None:
        original = ValueError("model unavailable")

        def body() -> None:
            raise original

        with pytest.raises(StepError) as info:
            _run(lambda: run_step("call-llm", body))
        assert str(info.value) == "model unavailable"
        assert info.value.step == "call-llm"
        assert info.value.cause is original
        assert info.value.__cause__ is original

    def test_failure_is_traced(self) -> None:
        ctx = FlowContext()

        def body() -> None:
            raise ValueError("nope")

        with pytest.raises(StepError):
            _run(lambda: run_step("s", body), ctx=ctx)
        (record,) = ctx.trace
        assert record.status == "error"
        assert record.error == "nope"

    def test_aborts_flow_at_first_failure(self) -> None:
        ran: list[str] = []

        async def body() -> None:
            await run_step("a", lambda: ran.append("a"))
            await run_step("b", lambda: 1 / 0)
            await run_step("c", lambda: ran.append("c"))

        with pytest.raises(StepError, match="division by zero"):
            _run(body)
        assert ran == ["a"]

    def test_nested_step_error_not_rewrapped(self) -> None:
        async def inner() -> None:
            raise ValueError("deep")

        async def body() -> None:
            await run_step("outer", lambda: run_step("inner", inner))

        with pytest.raises(StepError) as info:
            _run(body)
        assert info.value.step == "inner"


class TestCancellation:
    def test_no_step_starts_after_cancel(self) -> None:
        ctx = FlowContext()
        ran: list[str] = []

        async def body() -> None:
            await run_step("a", lambda: ran.append("a"))
            ctx.cancel("stop")
            await run_step("b", lambda: ran.append("b"))

        with pytest.raises(FlowCancelledError, match="stop"):
            _run(body, ctx=ctx)
        assert ran == ["a"]
        assert [r.key for r in ctx.trace] == ["a"]

    def test_deadline_interrupts_running_step(self) -> None:
        ctx = FlowContext(timeout=0.05)
        ran: list[str] = []

        async def slow() -> str:
            await asyncio.sleep(1)
            ran.append("slow")
            return "finished"

        async def body() -> None:
            await run_step("slow", slow)
            await run_step("after", lambda: ran.append("after"))

        with pytest.raises(FlowCancelledError, match="deadline exceeded"):
            _run(body, ctx=ctx)
        assert ran == []
        assert [(r.key, r.status) for r in ctx.trace] == [("slow", "error")]
        assert ctx.cancelled

    def test_step_timeout_error_is_not_a_deadline(self) -> None:
        async def flaky() -> None:
            raise asyncio.TimeoutError("upstream timed out")

        with pytest.raises(StepError) as info:
            _run(lambda: run_step("flaky", flaky), ctx=FlowContext(timeout=60))
        assert isinstance(info.value.cause, asyncio.TimeoutError)

    def test_fast_step_within_deadline(self) -> None:
        async def quick() -> int:
            await asyncio.sleep(0)
            return 7

        assert _run(lambda: run_step("quick", quick), ctx=FlowContext(timeout=60)) == 7


class TestReplay:
    def test_replayed_step_skips_body(self) -> None:
        calls: list[str] = []

        def expensive() -> str:
            calls.append("called")
            return "fresh"

        async def body() -> str:
            first = await run_step("call-llm", expensive)
            second = await run_step("call-llm", expensive)
            return f"{first}/{second}"

        ctx = FlowContext(replay={"call-llm": "recorded"})
        assert _run(body, ctx=ctx) == "recorded/fresh"
        assert calls == ["called"]
        assert [r.status for r in ctx.trace] == ["replayed", "ok"]

    def test_outputs_seed_a_retry(self) -> None:
        attempts: list[str] = []

        def flaky() -> str:
            attempts.append("flaky")
            if len(attempts) == 1:
                raise ConnectionError("transient")
            return "ok"

        async def body() -> str:
            a = await run_step("a", lambda: "A")
            b = await run_step("b", flaky)
            return a + b

        first = FlowContext()
        with pytest.raises(StepError):
            _run(body, ctx=first)

        retry = FlowContext(replay=first.outputs())
        assert _run(body, ctx=retry) == "Aok"
        assert [r.status for r in retry.trace] == ["replayed", "ok"]


class TestStepDecorator:
    def test_bare_decorator_uses_function_name(self) -> None:
        ctx = FlowContext()

        @step
        def shout(text: str) -> str:
            return text.upper()

        assert _run(lambda: shout("hi"), ctx=ctx) == "HI"
        assert ctx.trace[0].name == "shout"

    def test_custom_name_and_async_function(self) -> None:
        ctx = FlowContext()

        @step(name="call-llm")
        async def call(prompt: str) -> str:
            return f"reply to {prompt}"

        assert _run(lambda: call("hello"), ctx=ctx) == "reply to hello"
        assert ctx.trace[0].key == "call-llm"
        assert call.__sluice_step__ == "call-llm"  # type: ignore[attr-defined]

    def test_outside_flow_raises(self) -> None:
        @step
        def process() -> None:
            pass

        with pytest.raises(RuntimeError, match="outside of a flow context"):
            asyncio.run(process())
