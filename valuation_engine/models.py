"""
Valuation Engine Models - Indicator keys, cache entries and results.

Results serialize to the camelCase shapes the dashboard consumes.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union


class IndicatorKey(str, Enum):
    """Cache slots, one per indicator plus the assembled composite."""
    CREDIT_SPREAD = "creditSpread"
    BUFFETT = "buffett"
    CAPE = "cape"
    SP500 = "sp500"
    COMPOSITE_SNAPSHOT = "compositeSnapshot"

    @classmethod
    def indicators(cls) -> tuple["IndicatorKey", ...]:
        """Keys that map to a single indicator (everything but the composite)."""
        return (cls.SP500, cls.CAPE, cls.BUFFETT, cls.CREDIT_SPREAD)

    @classmethod
    def parse(cls, value: str) -> "IndicatorKey":
        """Look up a key by its wire name."""
        for key in cls:
            if key.value == value:
                return key
        raise ValueError(f"Unknown indicator: {value}")


class ResultOrigin(Enum):
    """Where a served value came from."""
    LIVE = "live"                 # fetched during this request
    CACHE = "cache"               # cached and within its TTL
    STALE_CACHE = "stale_cache"   # cached past its TTL, every source failed
    STATIC = "static"             # hardcoded default, nothing else available


@dataclass(frozen=True)
class PercentileBreakpoint:
    """One (value, percentile) point of a piecewise-linear table."""
    value: float
    percentile: int

    def __post_init__(self) -> None:
        if not 0 <= self.percentile <= 100:
            raise ValueError(f"Percentile must be within [0, 100], got {self.percentile}")


@dataclass(frozen=True)
class IndicatorResult:
    """A percentiled indicator value, ready to serve."""
    key: IndicatorKey
    value: float
    percentile: int
    date: str
    source: str
    origin: ResultOrigin
    updated_at: datetime
    source_name: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_live(self) -> bool:
        return self.origin in (ResultOrigin.LIVE, ResultOrigin.CACHE)

    def with_origin(self, origin: ResultOrigin) -> "IndicatorResult":
        """Copy carrying a different origin marker."""
        return replace(self, origin=origin)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the indicator response shape."""
        data: dict[str, Any] = {
            "value": self.value,
            "percentile": self.percentile,
            "date": self.date,
            "updatedAt": self.updated_at.isoformat(),
            "source": self.source,
            "isLive": self.is_live,
        }
        data.update(self.details)
        return data


@dataclass(frozen=True)
class CompositeResult:
    """All indicators plus the composite score."""
    score: int
    indicators: dict[IndicatorKey, IndicatorResult]
    is_live: bool
    updated_at: datetime
    error: Optional[str] = None

    def indicator(self, key: IndicatorKey) -> IndicatorResult:
        return self.indicators[key]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the composite response shape."""
        data: dict[str, Any] = {"score": self.score}
        for key in IndicatorKey.indicators():
            if key in self.indicators:
                data[key.value] = self.indicators[key].to_dict()
        data["isLive"] = self.is_live
        data["updatedAt"] = self.updated_at.isoformat()
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class CacheEntry:
    """
    One cached value. Entries are immutable; the cache swaps whole entries.

    `fetched_at` is on the cache clock (monotonic seconds) and drives TTLs;
    `stored_at` is wall-clock time for display.
    """
    key: IndicatorKey
    data: Union[IndicatorResult, CompositeResult]
    fetched_at: float
    stored_at: datetime
