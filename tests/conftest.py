"""Pytest configuration for ghx tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`). This keeps CI and
local iteration fast and avoids polluting the environment when running tests
directly from a fresh clone.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    # Prepend so that 'python -m ghx' finds local package first
    sys.path.insert(0, str(SRC))

from fakes import FakeProjectService, make_handle  # noqa: E402

_TOKEN_VARS = (
    "GHX_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "GITHUB_ACCESS_TOKEN",
    "GH_ACCESS_TOKEN",
    "GITHUB_PAT",
    "GHX_QUIET",
    "GHX_RETRY_ATTEMPTS",
    "GHX_RETRY_BASE",
    "GHX_RETRY_MAX_SLEEP",
    "GHX_EXPORTED_BY",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep host tokens, .env files and ghx.config.yaml out of every test."""
    for var in _TOKEN_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    from ghx import logging as ghx_logging
    from ghx import ux

    monkeypatch.setattr(ux, "_QUIET", False)
    # fresh logger per test so handlers bind to the captured stderr
    monkeypatch.setattr(ghx_logging, "_GLOBAL", None)


@pytest.fixture
def fake_service() -> FakeProjectService:
    return FakeProjectService()


@pytest.fixture
def handle():
    return make_handle()
