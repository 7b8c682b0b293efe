"""Flow registry populated at startup and frozen before serving."""

from __future__ import annotations

import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sluice._errors import FlowRegistrationError
from sluice._flow import Flow, StreamingFlow

F = TypeVar("F", bound=Flow[Any, Any])


class FlowRegistry:
    """Maps flow names to flows.

    Registration is guarded by a lock; once :meth:`freeze` has been called
    (``create_app`` does this) the registry is read-only and lookups need no
    synchronization.  Create one registry per application; nothing is shared
    between instances.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flows: dict[str, Flow[Any, Any]] = {}
        self._frozen = False

    # -- registration ---------------------------------------------------------

    def register(self, flow: F) -> F:
        """Add *flow*. Raises :class:`FlowRegistrationError` on a duplicate name."""
        with self._lock:
            if self._frozen:
                raise FlowRegistrationError(
                    f"Cannot register flow '{flow.name}': registry is frozen"
                )
            if flow.name in self._flows:
                raise FlowRegistrationError(
                    f"Flow '{flow.name}' is already registered"
                )
            self._flows[flow.name] = flow
        return flow

    def define_flow(
        self,
        name: str,
        body: Callable[..., Awaitable[Any]],
        *,
        input_schema: Any = None,
        output_schema: Any = None,
    ) -> Flow[Any, Any]:
        """Create a synchronous flow and register it."""
        return self.register(
            Flow(name, body, input_schema=input_schema, output_schema=output_schema)
        )

    def define_streaming_flow(
        self,
        name: str,
        body: Callable[..., Awaitable[Any]],
        *,
        input_schema: Any = None,
        output_schema: Any = None,
        chunk_schema: Any = Any,
    ) -> StreamingFlow[Any, Any, Any]:
        """Create a streaming flow and register it."""
        return self.register(
            StreamingFlow(
                name,
                body,
                input_schema=input_schema,
                output_schema=output_schema,
                chunk_schema=chunk_schema,
            )
        )

    def flow(
        self, name: str | None = None, **options: Any
    ) -> Callable[[Callable[..., Awaitable[Any]]], Flow[Any, Any]]:
        """Decorator form of :meth:`define_flow`; the name defaults to the function's."""

        def decorator(body: Callable[..., Awaitable[Any]]) -> Flow[Any, Any]:
            return self.define_flow(name or body.__name__, body, **options)

        return decorator

    def streaming_flow(
        self, name: str | None = None, **options: Any
    ) -> Callable[[Callable[..., Awaitable[Any]]], StreamingFlow[Any, Any, Any]]:
        """Decorator form of :meth:`define_streaming_flow`."""

        def decorator(
            body: Callable[..., Awaitable[Any]],
        ) -> StreamingFlow[Any, Any, Any]:
            return self.define_streaming_flow(name or body.__name__, body, **options)

        return decorator

    # -- lookup ---------------------------------------------------------------

    def freeze(self) -> None:
        """Make the registry read-only. Idempotent."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get_flow(self, name: str) -> Flow[Any, Any]:
        """Return the flow named *name*. Raises KeyError if not found."""
        try:
            return self._flows[name]
        except KeyError:
            raise KeyError(f"Flow '{name}' not found") from None

    def list_flows(self) -> list[Flow[Any, Any]]:
        """Return all flows in registration order."""
        with self._lock:
            return list(self._flows.values())

    def get_all_flow_names(self) -> list[str]:
        """Return names of all registered flows."""
        with self._lock:
            return list(self._flows)

    def __contains__(self, name: object) -> bool:
        return name in self._flows

    def __len__(self) -> int:
        return len(self._flows)
