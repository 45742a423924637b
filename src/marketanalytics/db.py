from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import PipelineConfig

# ---------- Engine / Session ----------

def create_db_engine(db_url: str) -> Engine:
    """
    Build the engine shared by the ingestion pipeline and the API.

    An Engine is safe to share across threads; each caller checks out its own
    connection. In-memory SQLite gets a single shared connection so every
    caller sees the same database.
    """
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(db_url, echo=False, pool_pre_ping=True)


def engine_from_config(config: PipelineConfig) -> Engine:
    return create_db_engine(config.db_url)


# ---------- Init helpers ----------

def init_db(engine: Engine) -> None:
    """Create token_prices and marketplace_analytics if missing (no-op otherwise)."""
    # Import models here to avoid circular imports
    from .models import Base

    Base.metadata.create_all(bind=engine)


@contextmanager
def db_session(engine: Engine) -> Iterator[Session]:
    db = sessionmaker(bind=engine, autoflush=False, future=True)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
