"""
Tests for the indicator cache.

============================================================
TEST SCENARIOS
============================================================
1. Fresh within TTL, expired after it (per-key TTLs)
2. Expired entries stay readable as stale fallbacks
3. Writes replace the whole entry and reset its timestamp
4. Freshness report for the health endpoint
5. TTL validation at construction
============================================================
"""

from datetime import datetime, timezone

import pytest

from valuation_engine.cache import IndicatorCache
from valuation_engine.constants import DEFAULT_TTL_SECONDS
from valuation_engine.models import IndicatorKey, IndicatorResult, ResultOrigin


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def cache(clock):
    return IndicatorCache(DEFAULT_TTL_SECONDS, clock=clock)


def result(key=IndicatorKey.CAPE, value=37.5):
    return IndicatorResult(
        key=key,
        value=value,
        percentile=97,
        date="2024-01-02",
        source="ScrapedCAPE",
        origin=ResultOrigin.LIVE,
        updated_at=datetime.now(timezone.utc),
    )


# ============================================================
# TEST: FRESHNESS
# ============================================================

class TestFreshness:

    def test_empty_cache_is_not_fresh(self, cache):
        assert cache.is_fresh(IndicatorKey.CAPE) is False
        assert cache.read(IndicatorKey.CAPE) is None

    def test_fresh_until_ttl(self, cache, clock):
        cache.write(IndicatorKey.CAPE, result())

        clock.advance(DEFAULT_TTL_SECONDS[IndicatorKey.CAPE])
        assert cache.is_fresh(IndicatorKey.CAPE) is True

        clock.advance(1)
        assert cache.is_fresh(IndicatorKey.CAPE) is False

    def test_ttls_are_independent(self, cache, clock):
        cache.write(IndicatorKey.CAPE, result(IndicatorKey.CAPE))
        cache.write(IndicatorKey.CREDIT_SPREAD, result(IndicatorKey.CREDIT_SPREAD, 1.8))

        clock.advance(2 * 60 * 60)

        assert cache.is_fresh(IndicatorKey.CAPE) is True
        assert cache.is_fresh(IndicatorKey.CREDIT_SPREAD) is False

    def test_stale_entry_still_readable(self, cache, clock):
        cache.write(IndicatorKey.CREDIT_SPREAD, result(IndicatorKey.CREDIT_SPREAD, 1.8))
        clock.advance(10 * 60 * 60)

        entry = cache.read(IndicatorKey.CREDIT_SPREAD)
        assert entry is not None
        assert entry.data.value == 1.8
        assert cache.read_fresh(IndicatorKey.CREDIT_SPREAD) is None

    def test_write_replaces_and_resets_timestamp(self, cache, clock):
        cache.write(IndicatorKey.SP500, result(IndicatorKey.SP500, 4700.0))
        clock.advance(2 * 60 * 60)
        cache.write(IndicatorKey.SP500, result(IndicatorKey.SP500, 4800.0))

        entry = cache.read(IndicatorKey.SP500)
        assert entry.data.value == 4800.0
        assert cache.is_fresh(IndicatorKey.SP500) is True
        assert cache.age_seconds(IndicatorKey.SP500) == 0


# ============================================================
# TEST: REPORTING
# ============================================================

class TestReporting:

    def test_freshness_report(self, cache, clock):
        cache.write(IndicatorKey.CAPE, result())
        cache.write(IndicatorKey.SP500, result(IndicatorKey.SP500, 4700.0))
        clock.advance(2 * 60 * 60)

        report = cache.freshness()

        assert report["cape"] == "valid"
        assert report["sp500"] == "expired"
        assert report["compositeSnapshot"] == "expired"
        assert set(report) == {key.value for key in IndicatorKey}

    def test_stats_and_clear(self, cache):
        cache.write(IndicatorKey.CAPE, result())
        cache.is_fresh(IndicatorKey.CAPE)
        cache.is_fresh(IndicatorKey.BUFFETT)

        stats = cache.get_stats()
        assert stats["entries"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1

        cache.clear()
        assert cache.has_entries() is False


# ============================================================
# TEST: VALIDATION
# ============================================================

class TestValidation:

    def test_missing_ttl_rejected(self):
        ttls = dict(DEFAULT_TTL_SECONDS)
        del ttls[IndicatorKey.CAPE]
        with pytest.raises(ValueError):
            IndicatorCache(ttls)

    def test_non_positive_ttl_rejected(self):
        ttls = dict(DEFAULT_TTL_SECONDS)
        ttls[IndicatorKey.SP500] = 0
        with pytest.raises(ValueError):
            IndicatorCache(ttls)
