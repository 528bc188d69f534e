"""
Multpl CAPE Source - Scraped current Shiller PE.

The page is HTML meant for people, so the value is located by pattern.
Two patterns are tried in order; if neither matches the fetch fails.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional

import aiohttp

from valuation_sources.base import BaseValuationSource, parse_finite
from valuation_sources.exceptions import ParseFailure
from valuation_sources.models import Observation, SourceKind, SourceMetadata


logger = logging.getLogger(__name__)


# "Current Shiller PE Ratio is <b>NN.NN</b>" style sentence
PRIMARY_PATTERN = re.compile(
    r"Current Shiller PE Ratio is[^<]*<[^>]*>\s*(\d+\.?\d*)",
    re.IGNORECASE,
)
# Large headline number in the page hero
FALLBACK_PATTERN = re.compile(r"<big[^>]*>\s*(\d+\.?\d*)\s*</big>", re.IGNORECASE)

SCRAPE_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("primary", PRIMARY_PATTERN),
    ("fallback", FALLBACK_PATTERN),
)


class MultplCapeSource(BaseValuationSource):
    """Current CAPE ratio from multpl.com."""

    URL = "https://www.multpl.com/shiller-pe"

    def __init__(
        self,
        url: str = URL,
        timeout: float = BaseValuationSource.DEFAULT_TIMEOUT,
        max_retries: int = BaseValuationSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        super().__init__(timeout, max_retries, session, user_agent)
        self._url = url

    @property
    def name(self) -> str:
        return "multpl_cape"

    def metadata(self) -> SourceMetadata:
        """Return provider metadata."""
        return SourceMetadata(
            name=self.name,
            display_name="multpl.com Shiller PE",
            kind=SourceKind.SCRAPED_CAPE,
            base_url=self._url,
            documentation_url=self._url,
            payload_format="html",
            priority=1,
            tags=["scraped", "cape"],
        )

    def _get_default_headers(self) -> dict[str, str]:
        headers = super()._get_default_headers()
        headers["Accept"] = "text/html,application/xhtml+xml"
        return headers

    async def fetch_raw(self) -> str:
        """Download the page HTML."""
        return await self._make_request(self._url, response_type="text")

    def parse(self, raw_data: str) -> Observation:
        """Apply the primary pattern, then the fallback."""
        for label, pattern in SCRAPE_PATTERNS:
            match = pattern.search(raw_data)
            if not match:
                continue

            value = parse_finite(match.group(1))
            if value is None:
                continue

            if label != "primary":
                logger.info(f"[{self.name}] Primary pattern missed, matched {label} pattern")

            # The page shows the live estimate; it carries no date of its own.
            return Observation(
                value=value,
                date=datetime.now(timezone.utc).date().isoformat(),
                source=SourceKind.SCRAPED_CAPE,
                source_name=self.name,
                details={"pattern": label},
            )

        raise ParseFailure(
            message="No CAPE value matched any pattern",
            source_name=self.name,
            raw_data=raw_data[:500],
        )
