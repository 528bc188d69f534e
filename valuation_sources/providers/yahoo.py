"""
Yahoo Quote Source - Index level from the public chart endpoint.

Endpoint used:
- /v8/finance/chart/{symbol}?interval=1d&range=5d

The chart metadata carries the live price plus 52-week range. When the
metadata block is missing the price, the last non-null close of the
returned bars is used instead.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from valuation_sources.base import BaseValuationSource, parse_finite
from valuation_sources.exceptions import NoDataFailure, ParseFailure
from valuation_sources.models import Observation, SourceKind, SourceMetadata


logger = logging.getLogger(__name__)


class YahooQuoteSource(BaseValuationSource):
    """Latest quote for an index symbol (default ^GSPC)."""

    BASE_URL = "https://query1.finance.yahoo.com/v8/finance/chart"

    def __init__(
        self,
        symbol: str = "^GSPC",
        base_url: str = BASE_URL,
        timeout: float = BaseValuationSource.DEFAULT_TIMEOUT,
        max_retries: int = BaseValuationSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session, user_agent)
        self._symbol = symbol
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "yahoo_quote"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name=f"Yahoo Finance {self._symbol}",
            kind=SourceKind.SCRAPED_QUOTE,
            base_url=self._base_url,
            payload_format="json",
            priority=1,
            tags=["scraped", "quote"],
        )

    def _get_default_headers(self) -> dict[str, str]:
        headers = super()._get_default_headers()
        headers["Accept"] = "application/json"
        return headers

    async def fetch_raw(self) -> dict[str, Any]:
        """Fetch the chart payload."""
        url = f"{self._base_url}/{self._symbol}"
        return await self._make_request(url, params={"interval": "1d", "range": "5d"})

    def parse(self, raw_data: dict[str, Any]) -> Observation:
        """Read the live price, falling back to the last close."""
        try:
            result = raw_data["chart"]["result"][0]
            meta = result.get("meta") or {}
        except (KeyError, IndexError, TypeError) as e:
            raise ParseFailure(
                message="Missing chart.result[0]",
                source_name=self.name,
                raw_data=raw_data,
                original_error=e,
            )

        details = {
            "symbol": self._symbol,
            "high52w": parse_finite(meta.get("fiftyTwoWeekHigh")),
            "low52w": parse_finite(meta.get("fiftyTwoWeekLow")),
        }

        price = parse_finite(meta.get("regularMarketPrice"))
        timestamp = meta.get("regularMarketTime")

        if price is None:
            price, timestamp = self._last_close(result)
            if price is None:
                raise NoDataFailure(
                    message=f"No price for {self._symbol} in metadata or bars",
                    source_name=self.name,
                )
            logger.info(f"[{self.name}] regularMarketPrice missing, using last close")

        return Observation(
            value=price,
            date=self._format_timestamp(timestamp),
            source=SourceKind.SCRAPED_QUOTE,
            source_name=self.name,
            details=details,
        )

    @staticmethod
    def _last_close(result: dict[str, Any]) -> tuple[Optional[float], Optional[int]]:
        """Last non-null close and its bar timestamp."""
        try:
            closes = result["indicators"]["quote"][0]["close"] or []
        except (KeyError, IndexError, TypeError):
            return None, None
        timestamps = result.get("timestamp") or []

        for i in range(len(closes) - 1, -1, -1):
            value = parse_finite(closes[i])
            if value is not None:
                return value, timestamps[i] if i < len(timestamps) else None
        return None, None

    @staticmethod
    def _format_timestamp(timestamp: Any) -> str:
        epoch = parse_finite(timestamp)
        if epoch is None:
            return datetime.now(timezone.utc).date().isoformat()
        return datetime.fromtimestamp(epoch, tz=timezone.utc).date().isoformat()
