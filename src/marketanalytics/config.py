# config.py
"""
Runtime configuration.

All environment reads live here. The rest of the code receives a
PipelineConfig instance instead of calling os.getenv itself, so a test or an
embedding process can build one by hand.

A .env file in the project root is loaded first (if python-dotenv finds one);
real environment variables still win.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PREFIX = "MARKET_ANALYTICS_"

DEFAULT_DB_URL = "sqlite:///./marketanalytics.db"
DEFAULT_PRICE_API_URL = "https://api.coingecko.com/api/v3"
DEFAULT_S3_ENDPOINT_URL = "http://localhost:9001"
DEFAULT_S3_BUCKET = "currency-data"
DEFAULT_CSV_PATH = "data/sample.csv"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Validated settings for one process.

    ingest_date is optional here because the API server does not need it;
    the pipeline entry point checks it is present.
    """

    db_url: str = DEFAULT_DB_URL
    price_api_url: str = DEFAULT_PRICE_API_URL
    http_timeout: float = 15.0
    s3_endpoint_url: Optional[str] = DEFAULT_S3_ENDPOINT_URL
    s3_access_key: str = "minioadmin"
    s3_secret_key: str = "minioadmin"
    s3_bucket: str = DEFAULT_S3_BUCKET
    s3_region: Optional[str] = None
    ingest_date: Optional[date] = None
    csv_path: Path = Path(DEFAULT_CSV_PATH)
    api_host: str = "127.0.0.1"
    api_port: int = 8080

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "PipelineConfig":
        """Build a config from MARKET_ANALYTICS_* environment variables."""
        load_dotenv(env_file or PROJECT_ROOT / ".env")

        raw_date = _env("INGEST_DATE")
        return cls(
            db_url=_env("DB_URL", DEFAULT_DB_URL),
            price_api_url=_env("PRICE_API_URL", DEFAULT_PRICE_API_URL).rstrip("/"),
            http_timeout=_parse_float("HTTP_TIMEOUT", _env("HTTP_TIMEOUT", "15")),
            s3_endpoint_url=_env("S3_ENDPOINT_URL", DEFAULT_S3_ENDPOINT_URL) or None,
            s3_access_key=_env("S3_ACCESS_KEY", "minioadmin"),
            s3_secret_key=_env("S3_SECRET_KEY", "minioadmin"),
            s3_bucket=_env("S3_BUCKET", DEFAULT_S3_BUCKET),
            s3_region=_env("S3_REGION") or None,
            ingest_date=parse_date(raw_date) if raw_date else None,
            csv_path=Path(_env("CSV_PATH", DEFAULT_CSV_PATH)),
            api_host=_env("API_HOST", "127.0.0.1"),
            api_port=_parse_int("API_PORT", _env("API_PORT", "8080")),
        )


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string, raising ConfigError on anything else."""
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError as error:
        raise ConfigError(f"Invalid date {value!r}: expected YYYY-MM-DD") from error


def configure_logging(level: str = "INFO") -> None:
    """Send pipeline logs to stderr with timestamps. Safe to call twice."""
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)
    root.setLevel(level.upper())


def _env(name: str, default: str = "") -> str:
    return os.getenv(ENV_PREFIX + name, default).strip()


def _parse_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as error:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}={raw!r}: expected a number") from error
    if value <= 0:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}={raw!r}: must be positive")
    return value


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as error:
        raise ConfigError(f"Invalid {ENV_PREFIX}{name}={raw!r}: expected an integer") from error
