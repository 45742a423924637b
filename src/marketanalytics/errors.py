# errors.py
"""
Exception types raised across the pipeline.

Callers catch MarketAnalyticsError to handle any pipeline failure, or a
subclass when they need to react to one stage (e.g. a refused ingestion).
"""

from __future__ import annotations


class MarketAnalyticsError(Exception):
    """Base class for all pipeline failures."""


class ConfigError(MarketAnalyticsError):
    """Invalid runtime configuration value."""


class PriceServiceError(MarketAnalyticsError):
    """The external price service failed or returned an unusable payload."""


class IngestionError(MarketAnalyticsError):
    """The daily price ingestion job could not complete."""


class PricesAlreadyIngestedError(IngestionError):
    """Prices for the requested date are already stored; nothing was written."""


class StorageError(MarketAnalyticsError):
    """A write or read against the analytical store or object store failed."""
