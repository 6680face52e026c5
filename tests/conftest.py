"""Pytest configuration shared across the suite."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Callable

import pytest
from jose import jwt

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def make_token() -> Callable[[float], str]:
    """Build an unsigned-for-our-purposes JWT expiring ``seconds`` from now."""

    def _make(seconds: float, **claims) -> str:
        payload = {"exp": int(time.time() + seconds), "sub": "tester", **claims}
        return jwt.encode(payload, "test-secret", algorithm="HS256")

    return _make


@pytest.fixture
def write_session(tmp_path: Path) -> Callable[..., Path]:
    """Write a browser storage-state style credential file."""

    def _write(records: list[dict], **extra) -> Path:
        path = tmp_path / "session.json"
        document = {"cookies": records, **extra}
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write
