"""Core type definitions for sluice flows and traces."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Literal, ParamSpec, TypeVar, Union

P = ParamSpec("P")
R = TypeVar("R")
I = TypeVar("I")  # noqa: E741
O = TypeVar("O")  # noqa: E741
C = TypeVar("C")


class FlowMode(str, enum.Enum):
    """How a flow delivers its output."""

    SYNC = "sync"
    STREAMING = "streaming"


StepStatus = Literal["ok", "error", "replayed"]


@dataclass(frozen=True, slots=True)
class StepRecord:
    """One entry of an invocation's trace."""

    key: str
    name: str
    flow_name: str
    status: StepStatus
    output: Any = None
    error: str | None = None
    duration_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class ChunkEvent:
    """A chunk delivered by a streaming flow."""

    data: Any
    type: Literal["chunk"] = "chunk"


@dataclass(frozen=True, slots=True)
class ResultEvent:
    """Terminal success of a flow invocation."""

    data: Any
    type: Literal["result"] = "result"


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Terminal failure of a flow invocation."""

    error: BaseException
    type: Literal["error"] = "error"


StreamEvent = Union[ChunkEvent, ResultEvent, ErrorEvent]
