# aggregator.py
"""
Daily per-project aggregation of marketplace transactions.

Input:  parsed transactions + a {ticker: usd_price} table for the day.
Output: one AggregateRecord per (UTC calendar day, project_id) with the
        transaction count and total USD volume.

Per transaction:
  1) key = (start of the UTC day, project_id)
  2) parse the base-unit amount as a Decimal, scale by 10^18
  3) price = prices[ticker], else prices[normalize_symbol(ticker)]
  4) volume += amount * price, count += 1

A transaction whose amount does not parse or whose ticker has no price is
logged and skipped; it never creates or changes a record.

Records come out of a dict, so their order is not meaningful. Use
sort_records() when a stable order is needed.

This module is pure logic (no DB or network calls).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timezone
from decimal import Decimal, DecimalException, localcontext
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .schemas import AggregateRecord, PriceTable, Transaction
from .symbols import normalize_symbol

logger = logging.getLogger(__name__)

BASE_UNIT_DECIMALS = 18
BASE_UNITS_PER_TOKEN = Decimal(10) ** BASE_UNIT_DECIMALS


class TransactionAggregator(Protocol):
    def aggregate(self, transactions: Iterable[Transaction], prices: PriceTable) -> List[AggregateRecord]: ...


@dataclass
class _Bucket:
    day: date
    project_id: str
    transaction_count: int = 0
    total_volume_usd: float = 0.0


def day_of(tx: Transaction) -> date:
    """UTC calendar day of the transaction."""
    ts = tx.timestamp
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.date()


def parse_currency_value(raw: str) -> Decimal:
    """
    Convert a base-unit amount string to display units.

    "1316777549196586000" -> Decimal("1.316777549196586")
    Raises ValueError for anything that is not a finite number or whose
    display amount does not fit in a float.
    """
    try:
        value = Decimal(raw.strip())
        if not value.is_finite():
            raise ValueError(f"invalid currency value {raw!r}")
        with localcontext() as ctx:
            ctx.prec = 60
            amount = value / BASE_UNITS_PER_TOKEN
    except (DecimalException, AttributeError) as error:
        raise ValueError(f"invalid currency value {raw!r}") from error
    if not math.isfinite(float(amount)):
        raise ValueError(f"currency value {raw!r} is out of range")
    return amount


def resolve_price(symbol: str, prices: PriceTable) -> Optional[float]:
    """Exact ticker first, then its normalized form; None when neither is priced."""
    if symbol in prices:
        return prices[symbol]
    return prices.get(normalize_symbol(symbol))


def aggregate_transactions(
    transactions: Iterable[Transaction],
    prices: PriceTable,
) -> Tuple[List[AggregateRecord], List[str]]:
    """
    Aggregate transactions into daily per-project records.

    Returns (records, warnings); one warning per skipped transaction.
    """
    buckets: Dict[Tuple[date, str], _Bucket] = {}
    warnings: List[str] = []

    for tx in transactions:
        key = (day_of(tx), tx.project_id)

        try:
            amount = parse_currency_value(tx.currency_value_decimal)
        except ValueError as error:
            msg = f"Skipping transaction at {tx.timestamp.isoformat()}: {error}"
            logger.warning(msg)
            warnings.append(msg)
            continue

        price = resolve_price(tx.currency_symbol, prices)
        if price is None:
            msg = f"Skipping transaction at {tx.timestamp.isoformat()}: no price for {tx.currency_symbol!r}"
            logger.warning(msg)
            warnings.append(msg)
            continue

        volume = float(amount) * price
        if not math.isfinite(volume):
            msg = f"Skipping transaction at {tx.timestamp.isoformat()}: USD volume out of range"
            logger.warning(msg)
            warnings.append(msg)
            continue

        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = _Bucket(day=key[0], project_id=key[1])
        bucket.transaction_count += 1
        bucket.total_volume_usd += volume

    records = [
        AggregateRecord(
            date=b.day,
            project_id=b.project_id,
            transaction_count=b.transaction_count,
            total_volume_usd=b.total_volume_usd,
        )
        for b in buckets.values()
    ]
    return records, warnings


def sort_records(records: Iterable[AggregateRecord]) -> List[AggregateRecord]:
    return sorted(records, key=lambda r: (r.date, r.project_id))


class MarketplaceAggregator:
    """Default TransactionAggregator; skips are only visible in the logs."""

    def aggregate(self, transactions: Iterable[Transaction], prices: PriceTable) -> List[AggregateRecord]:
        records, _ = aggregate_transactions(transactions, prices)
        return records
