"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths for the backend package and
    provider credentials so passes get past their configuration checks.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_TESTS_DIR = _THIS_FILE.parent

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)


@pytest.fixture(autouse=True)
def _provider_credentials(monkeypatch):
    from oddsleague.config import settings

    monkeypatch.setattr(settings, "ODDS_API_KEY", "test-odds-key")
    monkeypatch.setattr(settings, "FOOTBALL_DATA_API_KEY", "test-fd-key")
