"""
Valuation Engine Constants.

Static defaults are the last link of the fallback chain: they are served
only when every live source failed and nothing was ever cached.
"""

from types import MappingProxyType
from typing import Mapping

from valuation_engine.models import IndicatorKey


# =============================================================
# COMPOSITE
# =============================================================

# Indicators averaged into the composite score. Credit spread and the raw
# index level are informational only.
REQUIRED_INDICATORS: tuple[IndicatorKey, ...] = (IndicatorKey.CAPE, IndicatorKey.BUFFETT)
INFORMATIONAL_INDICATORS: tuple[IndicatorKey, ...] = (IndicatorKey.CREDIT_SPREAD, IndicatorKey.SP500)

# Market cap / GDP (%) at or above which the Buffett indicator is flagged
BUFFETT_ALL_TIME_HIGH_THRESHOLD = 240.0


# =============================================================
# STATIC FALLBACK
# =============================================================

STATIC_SOURCE = "static"
STATIC_DATE = "static"

DEFAULT_STATIC_VALUES: Mapping[IndicatorKey, float] = MappingProxyType({
    IndicatorKey.CAPE: 38.0,
    IndicatorKey.BUFFETT: 200.0,
    IndicatorKey.CREDIT_SPREAD: 1.8,
    IndicatorKey.SP500: 6000.0,
})

# Served for the index level when no 52-week range is known
NEUTRAL_PERCENTILE = 50


# =============================================================
# CACHE TTLs (seconds)
# =============================================================

HOUR = 60 * 60
DAY = 24 * HOUR

DEFAULT_TTL_SECONDS: Mapping[IndicatorKey, float] = MappingProxyType({
    IndicatorKey.CREDIT_SPREAD: HOUR,
    IndicatorKey.SP500: HOUR,
    IndicatorKey.COMPOSITE_SNAPSHOT: HOUR,
    IndicatorKey.CAPE: DAY,
    IndicatorKey.BUFFETT: DAY,
})
