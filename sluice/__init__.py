"""sluice: registered async flows with traced steps, served over HTTP."""

from sluice._config import configure, get_backend, reset
from sluice._context import (
    FlowContext,
    current_flow_id,
    get_flow_context,
    get_flow_context_value,
)
from sluice._errors import (
    FlowCancelledError,
    FlowDefinitionError,
    FlowError,
    FlowRegistrationError,
    FlowValidationError,
    SluiceError,
    StepError,
    StreamClosedError,
)
from sluice._flow import Flow, StreamingFlow, define_flow, define_streaming_flow
from sluice._registry import FlowRegistry
from sluice._step import run_step, step
from sluice._streaming import ChunkChannel, EmitFn, FlowStream
from sluice._types import (
    ChunkEvent,
    ErrorEvent,
    FlowMode,
    ResultEvent,
    StepRecord,
    StreamEvent,
)

__all__ = [
    "ChunkChannel",
    "ChunkEvent",
    "EmitFn",
    "ErrorEvent",
    "Flow",
    "FlowCancelledError",
    "FlowContext",
    "FlowDefinitionError",
    "FlowError",
    "FlowMode",
    "FlowRegistrationError",
    "FlowRegistry",
    "FlowStream",
    "FlowValidationError",
    "ResultEvent",
    "SluiceError",
    "StepError",
    "StepRecord",
    "StreamClosedError",
    "StreamEvent",
    "StreamingFlow",
    "configure",
    "current_flow_id",
    "define_flow",
    "define_streaming_flow",
    "get_backend",
    "get_flow_context",
    "get_flow_context_value",
    "reset",
    "run_step",
    "step",
]
