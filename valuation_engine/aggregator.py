"""
Valuation Aggregator - Cache-first indicator resolution and composite scoring.

Fallback chain, per indicator:
    fresh cache -> live sources (in priority order) -> stale cache -> static default

The composite fans out every indicator concurrently and averages the CAPE
and Buffett percentiles. It never raises for upstream failures: when a
required indicator has neither a live nor a cached value the whole
response degrades to the static snapshot with an error message.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from valuation_engine.cache import IndicatorCache
from valuation_engine.constants import (
    BUFFETT_ALL_TIME_HIGH_THRESHOLD,
    DEFAULT_STATIC_VALUES,
    NEUTRAL_PERCENTILE,
    REQUIRED_INDICATORS,
    STATIC_DATE,
    STATIC_SOURCE,
)
from valuation_engine.models import (
    CompositeResult,
    IndicatorKey,
    IndicatorResult,
    ResultOrigin,
)
from valuation_engine.percentile import PercentileTable, range_position, round_half_away
from valuation_sources.exceptions import DataSourceError
from valuation_sources.models import FetchResult, Observation
from valuation_sources.registry import SourceRegistry


logger = logging.getLogger(__name__)


def composite_score(cape_percentile: int, buffett_percentile: int) -> int:
    """Average of the CAPE and Buffett percentiles, halves rounded up."""
    return round_half_away((cape_percentile + buffett_percentile) / 2)


class ValuationAggregator:
    """
    Resolves indicators through cache, sources and fallbacks.

    Usage:
        aggregator = ValuationAggregator(registry, IndicatorCache(ttls))
        snapshot = await aggregator.get_all_indicators()
        print(snapshot.to_dict())
    """

    def __init__(
        self,
        registry: SourceRegistry,
        cache: IndicatorCache,
        percentiles: Optional[PercentileTable] = None,
        static_values: Optional[Mapping[IndicatorKey, float]] = None,
        buffett_all_time_high: float = BUFFETT_ALL_TIME_HIGH_THRESHOLD,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._percentiles = percentiles or PercentileTable()
        self._static_values = dict(DEFAULT_STATIC_VALUES)
        if static_values:
            self._static_values.update(static_values)
        self._buffett_all_time_high = buffett_all_time_high

        # One lock per key so concurrent identical requests share a fetch round
        self._locks: dict[IndicatorKey, asyncio.Lock] = {}

    @property
    def cache(self) -> IndicatorCache:
        return self._cache

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    # ─────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────

    async def get_indicator(self, key: IndicatorKey, force_refresh: bool = False) -> IndicatorResult:
        """
        Resolve one indicator.

        Raises:
            ValueError: For the composite key, which is not an indicator
        """
        if key not in IndicatorKey.indicators():
            raise ValueError(f"Not an indicator key: {key.value}")
        return await self._resolve(key, force_refresh)

    async def get_all_indicators(self, force_refresh: bool = False) -> CompositeResult:
        """Resolve every indicator concurrently and assemble the composite."""
        if not force_refresh:
            entry = self._cache.read_fresh(IndicatorKey.COMPOSITE_SNAPSHOT)
            if entry is not None and self._constituents_current(entry.data):
                logger.debug("[aggregator] Serving cached composite")
                return entry.data

        keys = IndicatorKey.indicators()
        outcomes = await asyncio.gather(
            *(self._resolve(key, force_refresh) for key in keys),
            return_exceptions=True,
        )

        resolved: dict[IndicatorKey, IndicatorResult] = {}
        for key, outcome in zip(keys, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"[aggregator] Unexpected error resolving {key.value}: {outcome}")
                resolved[key] = self._fallback(key, outcome)
            else:
                resolved[key] = outcome

        missing = [key for key in REQUIRED_INDICATORS if resolved[key].origin == ResultOrigin.STATIC]
        if missing:
            names = ", ".join(key.value for key in missing)
            logger.error(f"[aggregator] No live or cached data for {names}, serving static snapshot")
            return self.static_snapshot(error=f"Live data unavailable for: {names}")

        stale = [key for key in REQUIRED_INDICATORS if not resolved[key].is_live]
        error = None
        if stale:
            error = f"Serving cached data for: {', '.join(key.value for key in stale)}"

        composite = CompositeResult(
            score=composite_score(
                resolved[IndicatorKey.CAPE].percentile,
                resolved[IndicatorKey.BUFFETT].percentile,
            ),
            indicators=resolved,
            is_live=not stale,
            updated_at=datetime.now(timezone.utc),
            error=error,
        )

        if composite.is_live:
            self._cache.write(IndicatorKey.COMPOSITE_SNAPSHOT, composite)

        return composite

    async def refresh(self) -> CompositeResult:
        """Force a full fetch round. Existing entries remain as fallbacks."""
        logger.info("[aggregator] Forced refresh")
        return await self.get_all_indicators(force_refresh=True)

    def static_snapshot(self, error: Optional[str] = None) -> CompositeResult:
        """Composite built purely from static defaults."""
        indicators = {key: self._static_result(key) for key in IndicatorKey.indicators()}
        return CompositeResult(
            score=composite_score(
                indicators[IndicatorKey.CAPE].percentile,
                indicators[IndicatorKey.BUFFETT].percentile,
            ),
            indicators=indicators,
            is_live=False,
            updated_at=datetime.now(timezone.utc),
            error=error,
        )

    def cache_freshness(self) -> dict[str, str]:
        return self._cache.freshness()

    def source_health(self) -> dict[str, Any]:
        return self._registry.get_stats()

    async def close(self) -> None:
        """Close all sources."""
        await self._registry.close()

    async def __aenter__(self) -> "ValuationAggregator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ─────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────

    def _lock_for(self, key: IndicatorKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _constituents_current(self, composite: CompositeResult) -> bool:
        """True while every indicator in the snapshot is still the fresh cache entry."""
        for key, result in composite.indicators.items():
            entry = self._cache.read(key)
            if entry is None or not self._cache.is_fresh(key):
                return False
            if entry.data.with_origin(result.origin) != result:
                return False
        return True

    def _cached(self, key: IndicatorKey) -> Optional[IndicatorResult]:
        if not self._cache.is_fresh(key):
            return None
        entry = self._cache.read(key)
        if entry is None:
            return None
        logger.debug(f"[aggregator] Cache hit for {key.value}")
        return entry.data.with_origin(ResultOrigin.CACHE)

    async def _resolve(self, key: IndicatorKey, force_refresh: bool) -> IndicatorResult:
        if not force_refresh:
            cached = self._cached(key)
            if cached is not None:
                return cached

        async with self._lock_for(key):
            # Another request may have refreshed the key while we waited
            if not force_refresh:
                cached = self._cached(key)
                if cached is not None:
                    return cached

            try:
                fetched = await self._registry.fetch(key.value)
            except Exception as e:
                logger.error(f"[aggregator] Registry error for {key.value}: {e}")
                fetched = FetchResult.failure(
                    DataSourceError(message=str(e), original_error=e, context={"indicator": key.value})
                )

            if not fetched.ok:
                return self._fallback(key, fetched.error)

            result = self._build_result(key, fetched.observation)
            self._cache.write(key, result)
            logger.info(
                f"[aggregator] {key.value} = {result.value} "
                f"(p{result.percentile}) from {fetched.observation.source_name}"
            )
            return result

    def _fallback(self, key: IndicatorKey, error: Optional[Exception]) -> IndicatorResult:
        """Cached entry if any (fresh or stale), else the static default."""
        entry = self._cache.read(key)
        if entry is not None:
            if self._cache.is_fresh(key):
                # Forced refresh failed but the entry is still within its TTL
                logger.warning(f"[aggregator] Keeping cached {key.value} after failure: {error}")
                return entry.data.with_origin(ResultOrigin.CACHE)
            logger.warning(f"[aggregator] Serving stale {key.value} after failure: {error}")
            return entry.data.with_origin(ResultOrigin.STALE_CACHE)

        logger.error(f"[aggregator] Serving static {key.value} after failure: {error}")
        return self._static_result(key)

    # ─────────────────────────────────────────────────────────────
    # Result building
    # ─────────────────────────────────────────────────────────────

    def _build_result(self, key: IndicatorKey, observation: Observation) -> IndicatorResult:
        return IndicatorResult(
            key=key,
            value=observation.value,
            percentile=self._percentile(key, observation.value, observation.details),
            date=observation.date,
            source=observation.source.value,
            origin=ResultOrigin.LIVE,
            updated_at=datetime.now(timezone.utc),
            source_name=observation.source_name,
            details=self._extras(key, observation.value, observation.details),
        )

    def _static_result(self, key: IndicatorKey) -> IndicatorResult:
        value = self._static_values[key]
        return IndicatorResult(
            key=key,
            value=value,
            percentile=self._percentile(key, value, {}),
            date=STATIC_DATE,
            source=STATIC_SOURCE,
            origin=ResultOrigin.STATIC,
            updated_at=datetime.now(timezone.utc),
            source_name=STATIC_SOURCE,
            details=self._extras(key, value, {}),
        )

    def _percentile(self, key: IndicatorKey, value: float, details: Mapping[str, Any]) -> int:
        if key in self._percentiles:
            return self._percentiles.percentile_of(key, value)

        # Index level has no long-run table: position within the 52-week range
        position = range_position(value, details.get("low52w"), details.get("high52w"))
        return NEUTRAL_PERCENTILE if position is None else position

    def _extras(self, key: IndicatorKey, value: float, details: Mapping[str, Any]) -> dict[str, Any]:
        """Indicator-specific response fields."""
        if key == IndicatorKey.BUFFETT:
            extras: dict[str, Any] = {"isAllTimeHigh": value >= self._buffett_all_time_high}
            for field_name in ("marketCap", "gdp"):
                if field_name in details:
                    extras[field_name] = details[field_name]
            return extras

        if key == IndicatorKey.SP500:
            return {"high52w": details.get("high52w"), "low52w": details.get("low52w")}

        return {}
