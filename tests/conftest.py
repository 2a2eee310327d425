"""Pytest configuration for test isolation.

Settings are read from the environment (``RECON_*`` and ``DATABASE_URL``),
and a developer shell or a local ``.env`` may have them set. Database
engines are cached per URL for the process. Both leak across tests unless
reset, so an autouse fixture clears the variables and disposes the engines
around every test.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import reset_engine  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop recon settings from the environment and dispose cached engines."""

    for name in list(os.environ):
        if name.startswith("RECON_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()
