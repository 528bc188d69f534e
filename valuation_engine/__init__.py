"""
Valuation Engine Package - Percentiles, caching and the composite score.

Quick Start:
    from valuation_engine import build_aggregator, IndicatorKey

    async def main():
        async with build_aggregator() as aggregator:
            cape = await aggregator.get_indicator(IndicatorKey.CAPE)
            snapshot = await aggregator.get_all_indicators()
            print(cape.percentile, snapshot.score)
"""

from valuation_engine.aggregator import ValuationAggregator, composite_score
from valuation_engine.cache import IndicatorCache
from valuation_engine.config import CacheTTLConfig, EngineConfig, StaticDefaults, load_config
from valuation_engine.constants import (
    BUFFETT_ALL_TIME_HIGH_THRESHOLD,
    DEFAULT_STATIC_VALUES,
    DEFAULT_TTL_SECONDS,
    REQUIRED_INDICATORS,
)
from valuation_engine.factory import build_aggregator, build_registry
from valuation_engine.models import (
    CacheEntry,
    CompositeResult,
    IndicatorKey,
    IndicatorResult,
    PercentileBreakpoint,
    ResultOrigin,
)
from valuation_engine.percentile import (
    DEFAULT_BREAKPOINTS,
    PercentileTable,
    interpolate,
    round_half_away,
)


__all__ = [
    # Aggregation
    "ValuationAggregator",
    "composite_score",
    "build_aggregator",
    "build_registry",

    # Cache
    "IndicatorCache",

    # Config
    "CacheTTLConfig",
    "EngineConfig",
    "StaticDefaults",
    "load_config",

    # Constants
    "BUFFETT_ALL_TIME_HIGH_THRESHOLD",
    "DEFAULT_STATIC_VALUES",
    "DEFAULT_TTL_SECONDS",
    "REQUIRED_INDICATORS",

    # Models
    "CacheEntry",
    "CompositeResult",
    "IndicatorKey",
    "IndicatorResult",
    "PercentileBreakpoint",
    "ResultOrigin",

    # Percentiles
    "DEFAULT_BREAKPOINTS",
    "PercentileTable",
    "interpolate",
    "round_half_away",
]
