"""
Wiring - builds the source registry and aggregator from configuration.
"""

import logging
from typing import Optional

from valuation_engine.cache import IndicatorCache
from valuation_engine.config import EngineConfig, load_config
from valuation_engine.models import IndicatorKey
from valuation_engine.aggregator import ValuationAggregator
from valuation_engine.percentile import PercentileTable
from valuation_sources.config import SourceConfig
from valuation_sources.providers import (
    BuffettIndicatorSource,
    FredSeriesSource,
    MultplCapeSource,
    ShillerWorkbookSource,
    YahooQuoteSource,
)
from valuation_sources.registry import SourceRegistry


logger = logging.getLogger(__name__)


def build_registry(config: Optional[SourceConfig] = None) -> SourceRegistry:
    """
    Register every upstream under its indicator.

    Order per indicator:
    - cape:         multpl page, then Shiller workbook
    - buffett:      FRED market cap / FRED GDP
    - creditSpread: FRED BAA10Y
    - sp500:        Yahoo quote, then FRED SP500
    """
    config = config or SourceConfig()
    common = {
        "timeout": config.timeout_seconds,
        "max_retries": config.max_retries,
        "user_agent": config.user_agent,
    }

    def fred(series_id: str) -> FredSeriesSource:
        return FredSeriesSource(series_id, base_url=config.fred_csv_url, **common)

    registry = SourceRegistry()

    registry.register(IndicatorKey.CAPE.value, MultplCapeSource(url=config.multpl_cape_url, **common), priority=1)
    registry.register(
        IndicatorKey.CAPE.value,
        ShillerWorkbookSource(url=config.shiller_workbook_url, **common),
        priority=2,
    )

    registry.register(
        IndicatorKey.BUFFETT.value,
        BuffettIndicatorSource(fred(config.market_cap_series), fred(config.gdp_series)),
        priority=1,
    )

    registry.register(IndicatorKey.CREDIT_SPREAD.value, fred(config.credit_spread_series), priority=1)

    registry.register(
        IndicatorKey.SP500.value,
        YahooQuoteSource(symbol=config.sp500_symbol, base_url=config.yahoo_chart_url, **common),
        priority=1,
    )
    registry.register(IndicatorKey.SP500.value, fred(config.sp500_series), priority=2)

    return registry


def build_aggregator(config: Optional[EngineConfig] = None) -> ValuationAggregator:
    """Build a fully wired aggregator (loads configuration when none is given)."""
    config = config or load_config()

    aggregator = ValuationAggregator(
        registry=build_registry(config.sources),
        cache=IndicatorCache(config.cache_ttl.as_mapping()),
        percentiles=PercentileTable(),
        static_values=config.static_defaults.as_mapping(),
        buffett_all_time_high=config.buffett_all_time_high,
    )
    logger.info(f"Aggregator ready with TTLs {config.cache_ttl.to_dict()}")
    return aggregator
