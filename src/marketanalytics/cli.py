# cli.py
"""
Command line entry point.

  marketanalytics run [--date YYYY-MM-DD] [--csv PATH]   daily pipeline + metrics table
  marketanalytics serve                                  start the /metrics API
  marketanalytics reexport --date YYYY-MM-DD             re-upload a day's price export
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .analytics_store import fetch_metrics
from .batch_job import PriceBatchJob
from .config import PipelineConfig, configure_logging, parse_date
from .db import engine_from_config, init_db
from .errors import ConfigError, MarketAnalyticsError
from .object_store import S3ObjectStore
from .pipeline import format_metrics_table, run_pipeline
from .price_client import CoinGeckoClient

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="marketanalytics", description="Marketplace analytics pipeline.")
    parser.add_argument("--env-file", help="Optional .env file (defaults to the project root .env).")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Ingest prices, aggregate transactions and print the metrics.")
    run.add_argument("--date", help="Day to ingest, YYYY-MM-DD (overrides MARKET_ANALYTICS_INGEST_DATE).")
    run.add_argument("--csv", help="Transactions CSV (overrides MARKET_ANALYTICS_CSV_PATH).")

    serve = sub.add_parser("serve", help="Serve GET /metrics.")
    serve.add_argument("--host", help="Bind address (overrides MARKET_ANALYTICS_API_HOST).")
    serve.add_argument("--port", type=int, help="Port (overrides MARKET_ANALYTICS_API_PORT).")

    reexport = sub.add_parser("reexport", help="Rebuild the object store export from stored prices.")
    reexport.add_argument("--date", required=True, help="Day to re-export, YYYY-MM-DD.")
    return parser.parse_args(argv)


def _cmd_run(config: PipelineConfig, args: argparse.Namespace) -> int:
    overrides = {}
    if args.date:
        overrides["ingest_date"] = parse_date(args.date)
    if args.csv:
        overrides["csv_path"] = Path(args.csv)
    config = dataclasses.replace(config, **overrides)
    if config.ingest_date is None:
        raise ConfigError("No ingest date configured: set MARKET_ANALYTICS_INGEST_DATE or pass --date")

    engine = engine_from_config(config)
    init_db(engine)
    store = S3ObjectStore.from_config(config)
    store.ensure_bucket()

    result = run_pipeline(config, engine, CoinGeckoClient.from_config(config), store)
    logger.info(
        "Pipeline finished: ingestion=%s records=%d skipped=%d",
        result.ingestion_status.value if result.ingestion_status else "none",
        len(result.records),
        result.transactions_skipped,
    )
    print(format_metrics_table(fetch_metrics(engine, result.day)))
    return 0


def _cmd_serve(config: PipelineConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from .app import create_app

    app = create_app(engine_from_config(config))
    uvicorn.run(app, host=args.host or config.api_host, port=args.port or config.api_port)
    return 0


def _cmd_reexport(config: PipelineConfig, args: argparse.Namespace) -> int:
    engine = engine_from_config(config)
    store = S3ObjectStore.from_config(config)
    store.ensure_bucket()
    job = PriceBatchJob(CoinGeckoClient.from_config(config), engine, store)
    key = job.reexport(parse_date(args.date))
    print(f"Uploaded {key}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    commands = {"run": _cmd_run, "serve": _cmd_serve, "reexport": _cmd_reexport}
    try:
        config = PipelineConfig.from_env(Path(args.env_file) if args.env_file else None)
        return commands[args.command](config, args)
    except MarketAnalyticsError as error:
        logger.error("%s", error)
        print(f"error: {error}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
