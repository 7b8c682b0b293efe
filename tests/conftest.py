"""Shared fixtures: every test starts with the logging backend and no context."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from sluice._config import configure, reset
from sluice._context import _reset_context


@pytest.fixture(autouse=True)
def _clean_state() -> Iterator[None]:
    configure("logging")
    yield
    reset()
    _reset_context()
