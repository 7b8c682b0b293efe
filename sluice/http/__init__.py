"""HTTP exposure of registered flows."""

from sluice.http._app import CORRELATION_HEADER, STREAM_MEDIA_TYPE, create_app

__all__ = ["CORRELATION_HEADER", "STREAM_MEDIA_TYPE", "create_app"]
