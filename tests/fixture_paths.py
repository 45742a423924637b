"""Shared fixture path helpers for tests."""

from __future__ import annotations

from pathlib import Path


def fixture_path(relative_path: str) -> Path:
    """Resolve a path under tests/fixtures."""
    return Path(__file__).resolve().parent / "fixtures" / relative_path
