"""
Valuation Sources Package - Upstream data providers for the cycle tracker.

Provides fail-safe sources that each reduce one provider's payload to a
single typed Observation.

Features:
- Isolated, replaceable providers (FRED CSV, Shiller workbook, scraped pages)
- Time-bounded fetches that never raise
- Per-indicator priority with automatic fallback
- Health monitoring with incident logging

Quick Start:
    from valuation_sources import (
        SourceRegistry,
        MultplCapeSource,
        ShillerWorkbookSource,
    )

    async def latest_cape():
        async with SourceRegistry() as registry:
            registry.register("cape", MultplCapeSource())
            registry.register("cape", ShillerWorkbookSource())

            result = await registry.fetch("cape")
            if result.ok:
                print(result.observation.value, result.observation.date)

Adding New Providers:
    1. Create class extending BaseValuationSource
    2. Implement: fetch_raw(), parse(), metadata()
    3. Register with SourceRegistry under an indicator key
"""

from valuation_sources.base import BaseValuationSource, parse_finite
from valuation_sources.config import SourceConfig
from valuation_sources.exceptions import (
    ConfigurationError,
    DataSourceError,
    NetworkFailure,
    NoDataFailure,
    ParseFailure,
)
from valuation_sources.models import (
    FetchResult,
    Observation,
    SourceHealth,
    SourceIncident,
    SourceKind,
    SourceMetadata,
    SourceStatus,
)
from valuation_sources.providers import (
    BuffettIndicatorSource,
    FredSeriesSource,
    MultplCapeSource,
    ShillerWorkbookSource,
    YahooQuoteSource,
)
from valuation_sources.registry import SourceRegistry


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseValuationSource",
    "parse_finite",
    "SourceConfig",

    # Models
    "FetchResult",
    "Observation",
    "SourceHealth",
    "SourceIncident",
    "SourceKind",
    "SourceMetadata",
    "SourceStatus",

    # Exceptions
    "DataSourceError",
    "NetworkFailure",
    "ParseFailure",
    "NoDataFailure",
    "ConfigurationError",

    # Providers
    "BuffettIndicatorSource",
    "FredSeriesSource",
    "MultplCapeSource",
    "ShillerWorkbookSource",
    "YahooQuoteSource",

    # Registry
    "SourceRegistry",
]
