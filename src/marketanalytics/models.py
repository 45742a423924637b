from __future__ import annotations

import datetime

from sqlalchemy import BigInteger, Date, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------- Base ----------
class Base(DeclarativeBase):
    pass


# ---------- ORM models ----------
class TokenPrice(Base):
    """One USD price per (price id, day). Any row for a day marks that day as ingested."""

    __tablename__ = "token_prices"
    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    date: Mapped[datetime.date] = mapped_column(Date, primary_key=True)
    average_price_usd: Mapped[float] = mapped_column(Float, nullable=False)


Index("idx_token_prices_date", TokenPrice.date)


class MarketplaceAnalytics(Base):
    """Append-only aggregate rows; readers SUM per (date, project_id)."""

    __tablename__ = "marketplace_analytics"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    transaction_count: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), nullable=False)
    total_volume_usd: Mapped[float] = mapped_column(Float, nullable=False)
