# analytics_store.py
"""
Reads and writes against the analytical store (token_prices, marketplace_analytics).

Every write is one INSERT inside one transaction: either all rows of a batch
land or none do. Nothing here updates or deletes existing rows.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Set

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .db import db_session
from .errors import StorageError
from .models import MarketplaceAnalytics, TokenPrice
from .schemas import AggregateRecord, PriceTable


# -----------------------------------------------------------------------------
# token_prices
# -----------------------------------------------------------------------------

def has_prices_for_date(conn: Connection, day: date) -> bool:
    """True when any price row exists for `day` (the day was already ingested)."""
    count = conn.execute(
        select(func.count()).select_from(TokenPrice).where(TokenPrice.date == day)
    ).scalar_one()
    return count > 0


def insert_prices(engine: Engine, prices: PriceTable, day: date) -> int:
    """Append one (token, date, price) row per id in a single transaction."""
    rows = [
        {"token": coin_id, "date": day, "average_price_usd": price}
        for coin_id, price in sorted(prices.items())
    ]
    if not rows:
        return 0
    try:
        with engine.begin() as conn:
            conn.execute(insert(TokenPrice), rows)
    except SQLAlchemyError as error:
        raise StorageError(f"error inserting {len(rows)} price rows for {day.isoformat()}: {error}") from error
    return len(rows)


def fetch_prices(engine: Engine, coin_ids: Iterable[str], day: date) -> PriceTable:
    """Stored prices for the given ids on `day`; ids without a row are absent."""
    ids = list(coin_ids)
    if not ids:
        return {}
    stmt = select(TokenPrice.token, TokenPrice.average_price_usd).where(
        TokenPrice.token.in_(ids), TokenPrice.date == day
    )
    try:
        with engine.connect() as conn:
            return {token: price for token, price in conn.execute(stmt)}
    except SQLAlchemyError as error:
        raise StorageError(f"error reading prices for {day.isoformat()}: {error}") from error


def fetch_prices_for_date(engine: Engine, day: date) -> PriceTable:
    """Every stored price for `day`."""
    stmt = select(TokenPrice.token, TokenPrice.average_price_usd).where(TokenPrice.date == day)
    try:
        with engine.connect() as conn:
            return {token: price for token, price in conn.execute(stmt)}
    except SQLAlchemyError as error:
        raise StorageError(f"error reading prices for {day.isoformat()}: {error}") from error


# -----------------------------------------------------------------------------
# marketplace_analytics
# -----------------------------------------------------------------------------

def aggregated_days(engine: Engine, days: Iterable[date]) -> Set[date]:
    """The subset of `days` that already has marketplace_analytics rows."""
    wanted = set(days)
    if not wanted:
        return set()
    stmt = select(MarketplaceAnalytics.date).where(MarketplaceAnalytics.date.in_(wanted)).distinct()
    try:
        with engine.connect() as conn:
            return set(conn.execute(stmt).scalars())
    except SQLAlchemyError as error:
        raise StorageError(f"error checking existing aggregates: {error}") from error


def load_aggregates(engine: Engine, records: Iterable[AggregateRecord]) -> int:
    """Append aggregate rows in a single transaction."""
    rows = [
        {
            "date": r.date,
            "project_id": r.project_id,
            "transaction_count": r.transaction_count,
            "total_volume_usd": r.total_volume_usd,
        }
        for r in records
    ]
    if not rows:
        return 0
    try:
        with engine.begin() as conn:
            conn.execute(insert(MarketplaceAnalytics), rows)
    except SQLAlchemyError as error:
        raise StorageError(f"error loading {len(rows)} aggregate rows: {error}") from error
    return len(rows)


def fetch_metrics(engine: Engine, day: date) -> List[AggregateRecord]:
    """
    Aggregates for `day`, one per project, ordered by project id.

    Rows appended by separate runs for the same key are summed.
    """
    stmt = (
        select(
            MarketplaceAnalytics.date,
            MarketplaceAnalytics.project_id,
            func.sum(MarketplaceAnalytics.transaction_count),
            func.sum(MarketplaceAnalytics.total_volume_usd),
        )
        .where(MarketplaceAnalytics.date == day)
        .group_by(MarketplaceAnalytics.date, MarketplaceAnalytics.project_id)
        .order_by(MarketplaceAnalytics.project_id)
    )
    try:
        with db_session(engine) as session:
            rows = session.execute(stmt).all()
    except SQLAlchemyError as error:
        raise StorageError(f"error fetching metrics for {day.isoformat()}: {error}") from error
    return [
        AggregateRecord(
            date=row_date,
            project_id=project_id,
            transaction_count=int(count),
            total_volume_usd=float(volume),
        )
        for row_date, project_id, count, volume in rows
    ]
