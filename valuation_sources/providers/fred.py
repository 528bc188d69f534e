"""
FRED Series Source - St. Louis Fed time series adapter.

Reads the public `fredgraph.csv` download, which needs no API key and
returns the whole history of one series as two columns (date, value).
Missing observations are published as a literal "." and are skipped.
"""

import io
import logging
from typing import Optional

import aiohttp
import numpy as np
import pandas as pd

from valuation_sources.base import BaseValuationSource
from valuation_sources.exceptions import NoDataFailure, ParseFailure
from valuation_sources.models import Observation, SourceKind, SourceMetadata


logger = logging.getLogger(__name__)


TRAILING_RANGE_DAYS = 365


class FredSeriesSource(BaseValuationSource):
    """
    Latest observation of a single FRED series.

    Series used by the tracker:
    - BAA10Y         Moody's Baa corporate yield minus 10Y Treasury (credit spread)
    - SP500          S&P 500 daily close (fallback for the index level)
    - WILL5000INDFC  Wilshire 5000 full cap index (market cap input)
    - GDP            Nominal GDP, billions SAAR (Buffett denominator)
    """

    BASE_URL = "https://fred.stlouisfed.org/graph/fredgraph.csv"

    def __init__(
        self,
        series_id: str,
        base_url: str = BASE_URL,
        timeout: float = BaseValuationSource.DEFAULT_TIMEOUT,
        max_retries: int = BaseValuationSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session, user_agent)
        self._series_id = series_id.upper()
        self._base_url = base_url

    @property
    def name(self) -> str:
        return f"fred_{self._series_id.lower()}"

    @property
    def series_id(self) -> str:
        return self._series_id

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name=f"FRED {self._series_id}",
            kind=SourceKind.FRED,
            base_url=self._base_url,
            documentation_url=f"https://fred.stlouisfed.org/series/{self._series_id}",
            payload_format="csv",
            priority=1,
            tags=["fred", "time_series"],
        )

    async def fetch_raw(self) -> str:
        """Download the series as CSV text."""
        return await self._make_request(
            self._base_url,
            params={"id": self._series_id},
            response_type="text",
        )

    def parse(self, raw_data: str) -> Observation:
        """Pick the most recent row carrying a finite value."""
        try:
            df = pd.read_csv(io.StringIO(raw_data), dtype=str)
        except (ValueError, pd.errors.ParserError) as e:
            raise ParseFailure(
                message=f"Unreadable CSV: {e}",
                source_name=self.name,
                raw_data=raw_data[:200],
                original_error=e,
            )

        if df.shape[1] < 2:
            raise ParseFailure(
                message=f"Expected date and value columns, got {list(df.columns)}",
                source_name=self.name,
                raw_data=raw_data[:200],
            )

        dates = df.iloc[:, 0].astype(str).str.strip()
        # "." and other placeholders coerce to NaN
        values = pd.to_numeric(df.iloc[:, 1], errors="coerce")
        valid = values.notna() & np.isfinite(values)

        if not valid.any():
            raise NoDataFailure(
                message=f"No numeric observations for {self._series_id}",
                source_name=self.name,
                rows_scanned=len(df),
            )

        last_index = valid[valid].index[-1]
        details = {"series_id": self._series_id}
        details.update(self._trailing_range(dates[valid], values[valid]))

        return Observation(
            value=float(values.loc[last_index]),
            date=dates.loc[last_index],
            source=SourceKind.FRED,
            source_name=self.name,
            details=details,
        )

    @staticmethod
    def _trailing_range(dates: pd.Series, values: pd.Series) -> dict[str, float]:
        """High / low over the year ending at the last observation."""
        stamps = pd.to_datetime(dates, errors="coerce")
        if stamps.isna().all():
            return {}
        window = stamps >= stamps.max() - pd.Timedelta(days=TRAILING_RANGE_DAYS)
        trailing = values[window]
        if trailing.empty:
            return {}
        return {"high52w": float(trailing.max()), "low52w": float(trailing.min())}
