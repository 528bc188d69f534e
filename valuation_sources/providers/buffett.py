"""
Buffett Indicator Source - Total market cap over GDP, in percent.

Composed from two FRED series fetched concurrently. Either input failing
fails the whole indicator; there is no partial Buffett value.
"""

import asyncio
import logging
from typing import Any

from valuation_sources.base import BaseValuationSource
from valuation_sources.exceptions import DataSourceError, ParseFailure
from valuation_sources.models import Observation, SourceKind, SourceMetadata
from valuation_sources.providers.fred import FredSeriesSource


logger = logging.getLogger(__name__)

# The Wilshire 5000 full-cap index tracks total US market cap in billions
# closely but not exactly; 1.05 scales index points to dollars of market cap.
WILSHIRE_TO_MARKET_CAP_FACTOR = 1.05


class BuffettIndicatorSource(BaseValuationSource):
    """Market capitalization to GDP ratio built from FRED inputs."""

    def __init__(
        self,
        market_cap_source: FredSeriesSource,
        gdp_source: FredSeriesSource,
        market_cap_factor: float = WILSHIRE_TO_MARKET_CAP_FACTOR,
    ) -> None:
        # Inner sources enforce their own time bounds; the outer one is a backstop.
        timeout = max(market_cap_source.timeout, gdp_source.timeout) + 1.0
        super().__init__(timeout=timeout, max_retries=1)
        self._market_cap_source = market_cap_source
        self._gdp_source = gdp_source
        self._market_cap_factor = market_cap_factor

    @property
    def name(self) -> str:
        return "buffett_indicator"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="Buffett Indicator (FRED)",
            kind=SourceKind.FRED,
            base_url=FredSeriesSource.BASE_URL,
            documentation_url="https://fred.stlouisfed.org/",
            payload_format="csv",
            priority=1,
            tags=["fred", "derived"],
        )

    async def fetch_raw(self) -> tuple[Observation, Observation]:
        """Fetch market cap and GDP concurrently."""
        market_cap_result, gdp_result = await asyncio.gather(
            self._market_cap_source.fetch(),
            self._gdp_source.fetch(),
        )

        for result, label in ((market_cap_result, "market cap"), (gdp_result, "GDP")):
            if not result.ok:
                raise DataSourceError(
                    message=f"{label} input unavailable",
                    source_name=self.name,
                    original_error=result.error,
                )

        return market_cap_result.observation, gdp_result.observation

    def parse(self, raw_data: Any) -> Observation:
        """Combine the two inputs into a percent of GDP."""
        market_cap_obs, gdp_obs = raw_data

        if gdp_obs.value <= 0:
            raise ParseFailure(
                message=f"Non-positive GDP value {gdp_obs.value}",
                source_name=self.name,
                field_name="gdp",
            )

        market_cap = market_cap_obs.value * self._market_cap_factor
        gdp = gdp_obs.value
        ratio = round(market_cap / gdp * 100, 1)

        return Observation(
            value=ratio,
            date=market_cap_obs.date,
            source=SourceKind.FRED,
            source_name=self.name,
            details={
                "marketCap": market_cap,
                "gdp": gdp,
                "gdpDate": gdp_obs.date,
            },
        )

    async def close(self) -> None:
        """Close the underlying FRED sources."""
        await self._market_cap_source.close()
        await self._gdp_source.close()
        await super().close()
