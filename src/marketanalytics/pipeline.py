# pipeline.py
"""
End-to-end daily run.

  price index -> parse CSV -> tickers -> price ids -> PriceBatchJob
  -> stored prices (by ticker) -> aggregate -> marketplace_analytics

A refused or failed price ingestion does not stop the run: aggregation then
uses whatever prices token_prices already holds for the day. A failure to
build the price index, read stored prices or load aggregates does stop it.

Aggregates are loaded once per day: days that already have
marketplace_analytics rows are skipped, so a re-run never double counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.engine import Engine

from .aggregator import MarketplaceAggregator, TransactionAggregator, sort_records
from .analytics_store import aggregated_days, fetch_prices, load_aggregates
from .batch_job import BatchJobStatus, PriceBatchJob
from .config import PipelineConfig
from .csv_normalizer import parse_csv_file
from .errors import ConfigError, IngestionError, PricesAlreadyIngestedError
from .object_store import ObjectStore
from .price_client import PriceSource
from .schemas import AggregateRecord, PriceIndex, PriceTable, Transaction
from .symbols import normalize_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    day: date
    ingestion_status: Optional[BatchJobStatus]  # None when there was nothing to ingest
    records: List[AggregateRecord] = field(default_factory=list)
    transactions_read: int = 0
    transactions_skipped: int = 0
    parse_errors: int = 0
    records_loaded: int = 0


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def extract_unique_tokens(transactions: Iterable[Transaction]) -> List[str]:
    """Distinct currency tickers in first-seen order."""
    return list(dict.fromkeys(tx.currency_symbol for tx in transactions))


def map_tokens_to_ids(tokens: Iterable[str], index: PriceIndex) -> List[str]:
    coin_ids: List[str] = []
    for token in tokens:
        coin_id = index.get(normalize_symbol(token))
        if coin_id is None:
            logger.warning("No price id found for token: %s", token)
        elif coin_id not in coin_ids:
            coin_ids.append(coin_id)
    return coin_ids


def invert_index(index: PriceIndex) -> Dict[str, str]:
    """coin id -> ticker; if two tickers share an id the first one is kept."""
    inverted: Dict[str, str] = {}
    for symbol, coin_id in index.items():
        inverted.setdefault(coin_id, symbol)
    return inverted


def prices_by_symbol(prices: PriceTable, index: PriceIndex) -> PriceTable:
    id_to_symbol = invert_index(index)
    return {id_to_symbol[coin_id]: price for coin_id, price in prices.items() if coin_id in id_to_symbol}


def format_metrics_table(records: Sequence[AggregateRecord]) -> str:
    if not records:
        return "No metrics to display."

    header = ("Date", "Project ID", "Transaction Count", "Total Volume USD")
    rows = [
        (r.date.isoformat(), r.project_id, str(r.transaction_count), f"{r.total_volume_usd:.2f}")
        for r in records
    ]
    widths = [max(len(row[i]) for row in [header, *rows]) for i in range(len(header))]

    def fmt(row: Sequence[str]) -> str:
        return " | ".join(cell.ljust(w) for cell, w in zip(row, widths))

    sep = "-+-".join("-" * w for w in widths)
    lines = [f"Marketplace Analytics for {records[0].date.isoformat()}:", fmt(header), sep]
    lines.extend(fmt(row) for row in rows)
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def run_pipeline(
    config: PipelineConfig,
    engine: Engine,
    price_source: PriceSource,
    object_store: ObjectStore,
    aggregator: Optional[TransactionAggregator] = None,
    transactions: Optional[List[Transaction]] = None,
) -> PipelineResult:
    """
    Run one daily pass for config.ingest_date.

    `transactions` skips CSV parsing when the caller already has them.
    """
    day = config.ingest_date
    if day is None:
        raise ConfigError("No ingest date configured: set MARKET_ANALYTICS_INGEST_DATE or pass --date")

    index = price_source.build_index()

    parse_errors = 0
    if transactions is None:
        transactions, errors = parse_csv_file(config.csv_path)
        parse_errors = len(errors)
        for err in errors:
            logger.warning("Skipping CSV row %s: %s", err["row_number"], err["error"])
    logger.info("Read %d transactions", len(transactions))

    coin_ids = map_tokens_to_ids(extract_unique_tokens(transactions), index)
    if not coin_ids:
        logger.info("No valid price ids found, nothing to ingest")
        return PipelineResult(
            day=day,
            ingestion_status=None,
            transactions_read=len(transactions),
            parse_errors=parse_errors,
        )

    job = PriceBatchJob(price_source, engine, object_store)
    try:
        job.run(coin_ids, day)
        status = BatchJobStatus.SUCCESS
        logger.info("Daily batch job completed successfully")
    except PricesAlreadyIngestedError as error:
        status = BatchJobStatus.REFUSED
        logger.warning("Daily batch job refused: %s", error)
    except IngestionError as error:
        status = BatchJobStatus.FAILED
        logger.error("Error running daily batch job: %s", error)

    symbol_prices = prices_by_symbol(fetch_prices(engine, coin_ids, day), index)

    agg = aggregator or MarketplaceAggregator()
    records = sort_records(agg.aggregate(transactions, symbol_prices))

    done = aggregated_days(engine, (r.date for r in records))
    for done_day in sorted(done):
        logger.warning("Aggregates for %s already exist, skipping load", done_day.isoformat())
    loaded = load_aggregates(engine, [r for r in records if r.date not in done])

    counted = sum(r.transaction_count for r in records)
    logger.info("Loaded %d aggregate rows for %s", loaded, day.isoformat())
    return PipelineResult(
        day=day,
        ingestion_status=status,
        records=records,
        transactions_read=len(transactions),
        transactions_skipped=len(transactions) - counted,
        parse_errors=parse_errors,
        records_loaded=loaded,
    )
