"""
Valuation Sources - Configuration.

Endpoints, series identifiers and time bounds for every upstream.
Defaults work out of the box; each value can be overridden from the
environment or from the `sources` block of the YAML config file.
"""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict
import logging

from valuation_sources.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass
class SourceConfig:
    """Settings shared by all upstream sources."""

    timeout_seconds: float = 10.0
    max_retries: int = 1
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

    # Endpoints
    fred_csv_url: str = "https://fred.stlouisfed.org/graph/fredgraph.csv"
    multpl_cape_url: str = "https://www.multpl.com/shiller-pe"
    shiller_workbook_url: str = "http://www.econ.yale.edu/~shiller/data/ie_data.xls"
    yahoo_chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"

    # Series / symbols
    credit_spread_series: str = "BAA10Y"
    market_cap_series: str = "WILL5000INDFC"
    gdp_series: str = "GDP"
    sp500_series: str = "SP500"
    sp500_symbol: str = "^GSPC"

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive", config_key="timeout_seconds")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1", config_key="max_retries")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceConfig":
        """Build from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown source settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls) -> "SourceConfig":
        """Load from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            timeout_seconds=float(os.getenv("SOURCE_TIMEOUT_SECONDS", defaults.timeout_seconds)),
            max_retries=int(os.getenv("SOURCE_MAX_RETRIES", defaults.max_retries)),
            user_agent=os.getenv("SOURCE_USER_AGENT", defaults.user_agent),
            fred_csv_url=os.getenv("FRED_CSV_URL", defaults.fred_csv_url),
            multpl_cape_url=os.getenv("MULTPL_CAPE_URL", defaults.multpl_cape_url),
            shiller_workbook_url=os.getenv("SHILLER_WORKBOOK_URL", defaults.shiller_workbook_url),
            yahoo_chart_url=os.getenv("YAHOO_CHART_URL", defaults.yahoo_chart_url),
            credit_spread_series=os.getenv("CREDIT_SPREAD_SERIES", defaults.credit_spread_series),
            market_cap_series=os.getenv("MARKET_CAP_SERIES", defaults.market_cap_series),
            gdp_series=os.getenv("GDP_SERIES", defaults.gdp_series),
            sp500_series=os.getenv("SP500_SERIES", defaults.sp500_series),
            sp500_symbol=os.getenv("SP500_SYMBOL", defaults.sp500_symbol),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}
