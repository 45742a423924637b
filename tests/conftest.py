# tests/conftest.py
# Shared fixtures and test doubles. Run with: pytest -q

from __future__ import annotations

import os
import sys
from datetime import date
from typing import Dict, Iterable, List, Tuple

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

import pytest  # noqa: E402

from marketanalytics.db import create_db_engine, init_db  # noqa: E402
from marketanalytics.errors import PriceServiceError, StorageError  # noqa: E402


class FakePriceSource:
    """In-memory PriceSource; records every fetch_prices call."""

    def __init__(self, index: Dict[str, str] | None = None, prices: Dict[str, float] | None = None, fail: bool = False):
        self.index = dict(index or {})
        self.prices = dict(prices or {})
        self.fail = fail
        self.calls: List[Tuple[List[str], date]] = []

    def build_index(self) -> Dict[str, str]:
        return dict(self.index)

    def fetch_prices(self, coin_ids: Iterable[str], day: date) -> Dict[str, float]:
        ids = list(coin_ids)
        self.calls.append((ids, day))
        if self.fail:
            raise PriceServiceError("received non-OK status code: 429")
        return {cid: self.prices.get(cid, 0.0) for cid in ids}


class FakeObjectStore:
    """Keeps uploaded objects in a dict keyed by object key."""

    def __init__(self, fail: bool = False):
        self.objects: Dict[str, bytes] = {}
        self.fail = fail

    def upload(self, key: str, data: bytes, content_type: str = "application/csv") -> None:
        if self.fail:
            raise StorageError(f"failed to upload '{key}'")
        self.objects[key] = data


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()
