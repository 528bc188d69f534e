"""
Providers package - Upstream valuation source implementations.
"""

from valuation_sources.providers.buffett import BuffettIndicatorSource
from valuation_sources.providers.fred import FredSeriesSource
from valuation_sources.providers.multpl import MultplCapeSource
from valuation_sources.providers.shiller import ShillerWorkbookSource
from valuation_sources.providers.yahoo import YahooQuoteSource


__all__ = [
    "BuffettIndicatorSource",
    "FredSeriesSource",
    "MultplCapeSource",
    "ShillerWorkbookSource",
    "YahooQuoteSource",
]
