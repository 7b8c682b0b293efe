"""Thin uvicorn wrapper that serves a registry's flows."""

from __future__ import annotations

import logging
import os
from typing import Any

import uvicorn

from sluice._registry import FlowRegistry
from sluice.http._app import create_app

logger = logging.getLogger("sluice.http")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
ENV_HOST = "SLUICE_HOST"
ENV_PORT = "SLUICE_PORT"


def resolve_bind(host: str | None = None, port: int | None = None) -> tuple[str, int]:
    """Return the address to bind: arguments, then environment, then defaults."""
    resolved_host = host or os.environ.get(ENV_HOST) or DEFAULT_HOST
    if port is not None:
        return resolved_host, port
    raw_port = os.environ.get(ENV_PORT)
    if not raw_port:
        return resolved_host, DEFAULT_PORT
    try:
        return resolved_host, int(raw_port)
    except ValueError:
        raise ValueError(f"{ENV_PORT} must be an integer, got {raw_port!r}") from None


def build_config(
    registry: FlowRegistry,
    *,
    host: str | None = None,
    port: int | None = None,
    **uvicorn_options: Any,
) -> uvicorn.Config:
    """Freeze *registry*, build the app and wrap it in a uvicorn config."""
    bind_host, bind_port = resolve_bind(host, port)
    app = create_app(registry)
    logger.info(
        "server.configured",
        extra={
            "host": bind_host,
            "port": bind_port,
            "flows": registry.get_all_flow_names(),
        },
    )
    return uvicorn.Config(app, host=bind_host, port=bind_port, **uvicorn_options)


async def start(
    registry: FlowRegistry,
    *,
    host: str | None = None,
    port: int | None = None,
    **uvicorn_options: Any,
) -> None:
    """Serve until the surrounding task is cancelled or the server is stopped."""
    config = build_config(registry, host=host, port=port, **uvicorn_options)
    await uvicorn.Server(config).serve()


def serve(
    registry: FlowRegistry,
    *,
    host: str | None = None,
    port: int | None = None,
    **uvicorn_options: Any,
) -> None:
    """Blocking entry point for scripts."""
    config = build_config(registry, host=host, port=port, **uvicorn_options)
    uvicorn.Server(config).run()
