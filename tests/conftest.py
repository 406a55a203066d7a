"""Pytest configuration for repository test runs."""

from __future__ import annotations

from datetime import datetime, timezone
import sys
from pathlib import Path

import pytest


def pytest_sessionstart() -> None:
    """Put the src directory on sys.path so tests import the packages directly."""
    src_path = Path(__file__).resolve().parent.parent / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture
def fixed_now() -> datetime:
    """Reference time shared by lifecycle tests."""
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
