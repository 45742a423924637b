# app.py
"""
Read-side FastAPI application.

Endpoints:
  GET /health                   -> liveness check
  GET /version                  -> app version metadata
  GET /metrics?date=YYYY-MM-DD  -> aggregated marketplace metrics for that day

The engine is shared with the ingestion pipeline when both run in one
process; SQLAlchemy engines are safe for concurrent callers.

Command to start the server: marketanalytics serve
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from sqlalchemy.engine import Engine

from .__about__ import __title__, __version__
from .analytics_store import fetch_metrics
from .db import init_db
from .errors import StorageError
from .schemas import AggregateRecord

logger = logging.getLogger(__name__)


def create_app(engine: Engine) -> FastAPI:
    app = FastAPI(title=__title__, version=__version__)

    @app.on_event("startup")
    def on_startup() -> None:
        """Ensure the analytics tables exist (idempotent)."""
        init_db(engine)

    # -------------------------------------------------------------------------
    # Health + version endpoints
    # -------------------------------------------------------------------------
    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/version")
    def version() -> Dict[str, str]:
        return {"name": __title__, "version": __version__}

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------
    @app.get("/metrics", response_model=List[AggregateRecord])
    def metrics(date: Optional[str] = Query(None, description="Day to report, YYYY-MM-DD")) -> List[AggregateRecord]:
        """Aggregated transaction count and USD volume per project for one day."""
        if not date:
            raise HTTPException(status_code=400, detail="Missing 'date' query parameter")
        try:
            day = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")

        try:
            return fetch_metrics(engine, day)
        except StorageError as e:
            logger.error("Error calculating metrics: %s", e)
            raise HTTPException(status_code=500, detail="Internal Server Error")

    return app
