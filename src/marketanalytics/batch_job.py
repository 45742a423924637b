# batch_job.py
"""
Idempotent daily price ingestion.

PriceBatchJob.run(coin_ids, day):
  1) refuse if token_prices already has rows for `day`      (PricesAlreadyIngestedError)
  2) fetch every price from the price source                (IngestionError on any hard error)
  3) append all rows to token_prices in one transaction      (IngestionError, nothing exported)
  4) upload prices-YYYY-MM-DD.csv to the object store        (IngestionError, token_prices already written)

Step 4 failing after step 3 leaves the object store stale. There is no
rollback; PriceBatchJob.reexport(day) rebuilds the file from token_prices.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .analytics_store import fetch_prices_for_date, has_prices_for_date, insert_prices
from .errors import IngestionError, PricesAlreadyIngestedError, PriceServiceError, StorageError
from .object_store import CSV_CONTENT_TYPE, ObjectStore
from .price_client import PriceSource
from .schemas import PriceTable

logger = logging.getLogger(__name__)

EXPORT_HEADER = ("token", "average_price_usd")
PRICE_DECIMAL_PLACES = 8


class BatchJobStatus(str, Enum):
    SUCCESS = "success"
    REFUSED = "refused"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchJobResult:
    day: date
    rows_written: int
    object_key: str


def export_key(day: date) -> str:
    """Object key for a day's export; re-running a day overwrites the same object."""
    return f"prices-{day.isoformat()}.csv"


def render_prices_csv(prices: PriceTable) -> bytes:
    """Header row + one row per id (sorted), prices with 8 decimal places."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for token in sorted(prices):
        writer.writerow([token, f"{prices[token]:.{PRICE_DECIMAL_PLACES}f}"])
    return buf.getvalue().encode("utf-8")


class PriceBatchJob:
    def __init__(self, price_source: PriceSource, engine: Engine, object_store: ObjectStore) -> None:
        self.price_source = price_source
        self.engine = engine
        self.object_store = object_store

    def run(self, coin_ids: Iterable[str], day: date) -> BatchJobResult:
        ids = list(dict.fromkeys(coin_ids))
        if not ids:
            raise IngestionError(f"no price ids to ingest for {day.isoformat()}")

        try:
            with self.engine.connect() as conn:
                already_ingested = has_prices_for_date(conn, day)
        except SQLAlchemyError as error:
            raise IngestionError(f"error checking existing prices for {day.isoformat()}: {error}") from error
        if already_ingested:
            raise PricesAlreadyIngestedError(
                f"prices for the date {day.isoformat()} already exist, skipping batch insertion"
            )

        try:
            prices = self.price_source.fetch_prices(ids, day)
        except PriceServiceError as error:
            raise IngestionError(f"error fetching prices: {error}") from error

        try:
            rows_written = insert_prices(self.engine, prices, day)
        except StorageError as error:
            raise IngestionError(f"error writing prices to the analytical store: {error}") from error
        logger.info("Stored %d token prices for %s", rows_written, day.isoformat())

        key = export_key(day)
        try:
            self.object_store.upload(key, render_prices_csv(prices), CSV_CONTENT_TYPE)
        except StorageError as error:
            raise IngestionError(
                f"prices for {day.isoformat()} were stored but the export '{key}' failed: {error}"
            ) from error

        return BatchJobResult(day=day, rows_written=rows_written, object_key=key)

    def reexport(self, day: date) -> str:
        """Rebuild and upload the export for `day` from token_prices. Returns the key."""
        prices = fetch_prices_for_date(self.engine, day)
        if not prices:
            raise IngestionError(f"no stored prices for {day.isoformat()}; run the ingestion first")
        key = export_key(day)
        self.object_store.upload(key, render_prices_csv(prices), CSV_CONTENT_TYPE)
        logger.info("Re-exported %d prices to '%s'", len(prices), key)
        return key
