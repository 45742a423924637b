from __future__ import annotations

"""
Pydantic schemas shared by the parser, the aggregation engine and the API.

- Transaction: one parsed marketplace event (read-only input to aggregation).
- AggregateRecord: one (day, project) aggregate, stored and served by /metrics.
- CoinInfo: one entry of the price service's coin listing.

ORM tables live in models.py; these classes never touch the database.
"""

import datetime as _dt
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ticker -> external price id
PriceIndex = Dict[str, str]
# price id (or ticker) -> USD price for one date; 0.0 means "no market data"
PriceTable = Dict[str, float]


class Transaction(BaseModel):
    """
    Normalized marketplace transaction.

    Fields:
      timestamp: when the event happened (UTC; naive values are taken as UTC).
      event: event name from the source feed (e.g. "BUY_ITEMS").
      project_id: marketplace project the sale belongs to.
      currency_symbol: ticker the sale was paid in, as reported ("USDC.E").
      chain_id: chain the sale happened on.
      currency_value_decimal: amount paid in base units (18-decimal fixed point),
        kept as the raw string so the aggregator decides how to parse it.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    event: str = ""
    project_id: str = ""
    currency_symbol: str = ""
    chain_id: str = ""
    currency_value_decimal: str = ""
    collection_address: Optional[str] = None
    currency_address: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class AggregateRecord(BaseModel):
    """Daily totals for one project; unique per (date, project_id)."""

    model_config = ConfigDict(from_attributes=True)

    date: _dt.date
    project_id: str
    transaction_count: int = Field(..., ge=0)
    total_volume_usd: float


class CoinInfo(BaseModel):
    """One row of the price service's coin listing."""

    id: str
    symbol: str
    name: str = ""
