"""Exception hierarchy for sluice flows and their HTTP exposure."""

from __future__ import annotations

from typing import Any


class SluiceError(Exception):
    """Base class for every error raised by sluice itself."""


# ---------------------------------------------------------------------------
# Startup-time configuration errors
# ---------------------------------------------------------------------------


class FlowDefinitionError(SluiceError, ValueError):
    """A flow or step was defined with an unusable body or schema."""


class FlowRegistrationError(SluiceError, ValueError):
    """A flow could not be added to a registry (duplicate name, frozen registry)."""


# ---------------------------------------------------------------------------
# Per-invocation errors
# ---------------------------------------------------------------------------


class FlowValidationError(SluiceError):
    """Request payload was malformed or did not match the flow's input shape."""

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class FlowError(SluiceError):
    """Application-level failure deliberately reported by a flow body.

    *status_code* is used by the HTTP adapter for synchronous responses.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class StepError(SluiceError):
    """A step body failed.

    The message is the cause's message; the step name is kept on
    :attr:`step` and the original exception on ``__cause__``.
    """

    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.step = step
        self.cause = cause
        self.__cause__ = cause


class StreamClosedError(SluiceError):
    """A chunk was emitted after the consumer went away or the flow finished."""


class FlowCancelledError(SluiceError):
    """The invocation's context was cancelled or its deadline passed."""

    def __init__(self, reason: str = "flow cancelled") -> None:
        super().__init__(reason)
        self.reason = reason
