import os
from datetime import date
from pathlib import Path

import pytest

from marketanalytics.config import PipelineConfig, parse_date
from marketanalytics.errors import ConfigError


def test_from_env_defaults(monkeypatch, tmp_path):
    for name in ("DB_URL", "INGEST_DATE", "HTTP_TIMEOUT", "API_PORT", "S3_REGION", "S3_BUCKET"):
        monkeypatch.delenv(f"MARKET_ANALYTICS_{name}", raising=False)
    cfg = PipelineConfig.from_env(tmp_path / "missing.env")
    assert cfg.db_url == "sqlite:///./marketanalytics.db"
    assert cfg.ingest_date is None
    assert cfg.http_timeout == 15.0
    assert cfg.s3_bucket == "currency-data"
    assert cfg.s3_region is None


def test_from_env_reads_values(monkeypatch, tmp_path):
    monkeypatch.setenv("MARKET_ANALYTICS_INGEST_DATE", "2024-04-02")
    monkeypatch.setenv("MARKET_ANALYTICS_PRICE_API_URL", "http://localhost:8000/api/")
    monkeypatch.setenv("MARKET_ANALYTICS_API_PORT", "9090")
    monkeypatch.setenv("MARKET_ANALYTICS_CSV_PATH", "data/other.csv")
    cfg = PipelineConfig.from_env(tmp_path / "missing.env")
    assert cfg.ingest_date == date(2024, 4, 2)
    assert cfg.price_api_url == "http://localhost:8000/api"
    assert cfg.api_port == 9090
    assert cfg.csv_path == Path("data/other.csv")


def test_from_env_loads_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.delenv("MARKET_ANALYTICS_S3_BUCKET", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("MARKET_ANALYTICS_S3_BUCKET=prices-test\n")
    try:
        cfg = PipelineConfig.from_env(env_file)
    finally:
        os.environ.pop("MARKET_ANALYTICS_S3_BUCKET", None)
    assert cfg.s3_bucket == "prices-test"


@pytest.mark.parametrize("name, value", [("HTTP_TIMEOUT", "soon"), ("HTTP_TIMEOUT", "-1"), ("API_PORT", "http"), ("INGEST_DATE", "02/04/2024")])
def test_from_env_rejects_invalid(monkeypatch, tmp_path, name, value):
    monkeypatch.setenv(f"MARKET_ANALYTICS_{name}", value)
    with pytest.raises(ConfigError):
        PipelineConfig.from_env(tmp_path / "missing.env")


def test_parse_date():
    assert parse_date(" 2024-04-02 ") == date(2024, 4, 2)
    with pytest.raises(ConfigError):
        parse_date("2024-4-2x")
