"""
Percentile Table - Raw indicator value to historical percentile.

Each indicator has a piecewise-linear table of (value, percentile)
breakpoints, strictly increasing in value and non-decreasing in
percentile. Values at or below the first
breakpoint take its percentile; values at or above the last breakpoint
saturate at 100, so a new historical extreme always reads as the top of
the range even though the table's last bucket may sit below 100.

Tables are validated once at construction and never change afterwards.
"""

import math
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence, Union

from valuation_engine.models import IndicatorKey, PercentileBreakpoint


BreakpointLike = Union[PercentileBreakpoint, tuple[float, int]]

SATURATED_PERCENTILE = 100


# Approximate historical distributions.
# CAPE: monthly Shiller data since 1881 (median ~16, dot-com peak 44.2).
CAPE_BREAKPOINTS = (
    (6.6, 0), (10.0, 10), (15.0, 25), (17.0, 40), (20.0, 55),
    (25.0, 75), (30.0, 90), (35.0, 95), (40.0, 98), (44.2, 99),
)

# Buffett indicator: total market cap as % of GDP since 1950.
BUFFETT_BREAKPOINTS = (
    (35.0, 0), (50.0, 10), (70.0, 25), (85.0, 40), (100.0, 55), (120.0, 70),
    (140.0, 80), (160.0, 88), (180.0, 93), (200.0, 97), (240.0, 99),
)

# Baa minus 10Y Treasury, percentage points, daily since 1986.
CREDIT_SPREAD_BREAKPOINTS = (
    (1.2, 0), (1.6, 10), (1.9, 25), (2.3, 50),
    (2.8, 75), (3.5, 90), (4.5, 97), (6.2, 99),
)

DEFAULT_BREAKPOINTS: Mapping[IndicatorKey, Sequence[tuple[float, int]]] = MappingProxyType({
    IndicatorKey.CAPE: CAPE_BREAKPOINTS,
    IndicatorKey.BUFFETT: BUFFETT_BREAKPOINTS,
    IndicatorKey.CREDIT_SPREAD: CREDIT_SPREAD_BREAKPOINTS,
})


def round_half_away(value: float) -> int:
    """Round to nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _coerce(point: BreakpointLike) -> PercentileBreakpoint:
    if isinstance(point, PercentileBreakpoint):
        return point
    value, percentile = point
    return PercentileBreakpoint(value=float(value), percentile=int(percentile))


def build_breakpoints(points: Iterable[BreakpointLike]) -> tuple[PercentileBreakpoint, ...]:
    """Validate and freeze a breakpoint sequence."""
    breakpoints = tuple(_coerce(p) for p in points)
    if not breakpoints:
        raise ValueError("A percentile table needs at least one breakpoint")

    for prev, curr in zip(breakpoints, breakpoints[1:]):
        if curr.value <= prev.value:
            raise ValueError(
                f"Breakpoint values must be strictly increasing ({prev.value} then {curr.value})"
            )
        if curr.percentile < prev.percentile:
            raise ValueError(
                f"Breakpoint percentiles must not decrease ({prev.percentile} then {curr.percentile})"
            )
    for point in breakpoints:
        if not math.isfinite(point.value):
            raise ValueError(f"Breakpoint value must be finite, got {point.value}")
    return breakpoints


def interpolate(breakpoints: Sequence[PercentileBreakpoint], value: float) -> int:
    """
    Piecewise-linear percentile of `value` over validated breakpoints.

    Always returns an int within [0, 100].
    """
    first, last = breakpoints[0], breakpoints[-1]

    if value <= first.value:
        return first.percentile
    if value >= last.value:
        return SATURATED_PERCENTILE

    for lower, upper in zip(breakpoints, breakpoints[1:]):
        if value <= upper.value:
            fraction = (value - lower.value) / (upper.value - lower.value)
            percentile = lower.percentile + round_half_away(
                fraction * (upper.percentile - lower.percentile)
            )
            return max(0, min(100, percentile))

    return SATURATED_PERCENTILE


def range_position(value: float, low: Optional[float], high: Optional[float]) -> Optional[int]:
    """
    Percentile of `value` within a [low, high] range (e.g. 52-week range).

    Returns None when the range is missing or degenerate.
    """
    if low is None or high is None or not high > low:
        return None
    return interpolate(build_breakpoints(((low, 0), (high, 100))), value)


class PercentileTable:
    """Immutable per-indicator breakpoint tables."""

    def __init__(
        self,
        tables: Optional[Mapping[IndicatorKey, Iterable[BreakpointLike]]] = None,
    ) -> None:
        source = DEFAULT_BREAKPOINTS if tables is None else tables
        self._tables: Mapping[IndicatorKey, tuple[PercentileBreakpoint, ...]] = MappingProxyType({
            key: build_breakpoints(points) for key, points in source.items()
        })

    def __contains__(self, key: object) -> bool:
        return key in self._tables

    def keys(self) -> tuple[IndicatorKey, ...]:
        return tuple(self._tables)

    def breakpoints(self, key: IndicatorKey) -> tuple[PercentileBreakpoint, ...]:
        return self._tables[key]

    def percentile_of(self, key: IndicatorKey, value: float) -> int:
        """Historical percentile of `value` for an indicator."""
        return interpolate(self._tables[key], value)
