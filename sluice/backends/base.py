"""Abstract base class for tracing backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


class TracingBackend(ABC):
    """Interface that all sluice tracing backends must implement.

    Flows open a span with ``kind="flow"`` around their body and steps open
    one with ``kind="step"``.
    """

    @abstractmethod
    @contextmanager
    def span(self, name: str, flow_name: str, **attrs: Any) -> Iterator[None]:
        """Open a tracing span for the duration of a flow or step."""

    @abstractmethod
    def get_correlation_id(self) -> str:
        """Return the current correlation ID, or ``""`` outside a flow."""
