"""
Tests for the percentile table.

============================================================
PURPOSE
============================================================
1. Linear interpolation between breakpoints (CAPE 12.5 → 18)
2. Floor at or below the first breakpoint
3. Saturation to 100 at or above the last breakpoint
4. Monotonic over every default table
5. Half-away-from-zero rounding
6. Table validation
============================================================
"""

import pytest

from valuation_engine.models import IndicatorKey, PercentileBreakpoint
from valuation_engine.percentile import (
    DEFAULT_BREAKPOINTS,
    PercentileTable,
    build_breakpoints,
    interpolate,
    range_position,
    round_half_away,
)


@pytest.fixture
def table():
    return PercentileTable()


# ============================================================
# TEST: ROUNDING
# ============================================================

class TestRoundHalfAway:

    def test_halves_round_away_from_zero(self):
        assert round_half_away(0.5) == 1
        assert round_half_away(2.5) == 3
        assert round_half_away(17.5) == 18
        assert round_half_away(98.5) == 99
        assert round_half_away(-2.5) == -3

    def test_non_halves(self):
        assert round_half_away(0.49) == 0
        assert round_half_away(7.51) == 8
        assert round_half_away(99.0) == 99


# ============================================================
# TEST: LOOKUP
# ============================================================

class TestPercentileOf:
    """Tests for value → percentile lookup."""

    def test_cape_interpolates_between_breakpoints(self, table):
        # (10.0, 10) .. (15.0, 25): 10 + 0.5 * 15 = 17.5
        assert table.percentile_of(IndicatorKey.CAPE, 12.5) == 18

    def test_exact_breakpoint(self, table):
        assert table.percentile_of(IndicatorKey.CAPE, 40.0) == 98
        assert table.percentile_of(IndicatorKey.BUFFETT, 100.0) == 55
        assert table.percentile_of(IndicatorKey.CREDIT_SPREAD, 2.3) == 50

    def test_floor(self, table):
        assert table.percentile_of(IndicatorKey.CAPE, 6.6) == 0
        assert table.percentile_of(IndicatorKey.CAPE, 3.0) == 0
        assert table.percentile_of(IndicatorKey.BUFFETT, -10.0) == 0

    def test_saturates_at_last_breakpoint(self, table):
        assert table.percentile_of(IndicatorKey.CAPE, 44.2) == 100
        assert table.percentile_of(IndicatorKey.CAPE, 60.0) == 100
        assert table.percentile_of(IndicatorKey.BUFFETT, 240.0) == 100
        assert table.percentile_of(IndicatorKey.CREDIT_SPREAD, 9.0) == 100

    def test_just_below_last_breakpoint(self, table):
        # (200, 97) .. (240, 99): 97 + round(0.975 * 2) = 99
        assert table.percentile_of(IndicatorKey.BUFFETT, 239.0) == 99

    @pytest.mark.parametrize("key", list(DEFAULT_BREAKPOINTS))
    def test_monotonic_and_bounded(self, table, key):
        points = table.breakpoints(key)
        start, stop = points[0].value - 5, points[-1].value + 5
        steps = 400
        previous = -1
        for i in range(steps + 1):
            value = start + (stop - start) * i / steps
            percentile = table.percentile_of(key, value)
            assert 0 <= percentile <= 100
            assert percentile >= previous
            previous = percentile

    def test_sp500_has_no_fixed_table(self, table):
        assert IndicatorKey.SP500 not in table
        assert IndicatorKey.CAPE in table


# ============================================================
# TEST: VALIDATION
# ============================================================

class TestTableValidation:

    def test_rejects_non_increasing_values(self):
        with pytest.raises(ValueError):
            build_breakpoints([(1.0, 0), (1.0, 50)])
        with pytest.raises(ValueError):
            PercentileTable({IndicatorKey.CAPE: [(10.0, 0), (5.0, 50)]})

    def test_rejects_decreasing_percentiles(self):
        with pytest.raises(ValueError):
            build_breakpoints([(1.0, 60), (2.0, 40)])
        with pytest.raises(ValueError):
            PercentileTable({IndicatorKey.CAPE: [(10.0, 0), (20.0, 80), (30.0, 70)]})

    def test_flat_percentiles_allowed(self):
        points = build_breakpoints([(1.0, 50), (2.0, 50), (3.0, 90)])
        assert interpolate(points, 1.5) == 50

    def test_rejects_empty_table(self):
        with pytest.raises(ValueError):
            build_breakpoints([])

    def test_rejects_out_of_range_percentile(self):
        with pytest.raises(ValueError):
            PercentileBreakpoint(value=1.0, percentile=101)

    def test_accepts_breakpoint_objects(self):
        points = build_breakpoints([PercentileBreakpoint(0.0, 0), PercentileBreakpoint(10.0, 100)])
        assert interpolate(points, 2.5) == 25

    def test_custom_table(self):
        table = PercentileTable({IndicatorKey.CAPE: [(0.0, 20), (10.0, 60)]})
        assert table.percentile_of(IndicatorKey.CAPE, -1.0) == 20
        assert table.percentile_of(IndicatorKey.CAPE, 5.0) == 40
        assert table.keys() == (IndicatorKey.CAPE,)


# ============================================================
# TEST: RANGE POSITION
# ============================================================

class TestRangePosition:

    def test_position_within_range(self):
        assert range_position(5000.0, 4000.0, 6000.0) == 50
        assert range_position(5500.0, 4000.0, 6000.0) == 75

    def test_clamped_to_range(self):
        assert range_position(3000.0, 4000.0, 6000.0) == 0
        assert range_position(6100.0, 4000.0, 6000.0) == 100

    def test_missing_or_degenerate_range(self):
        assert range_position(5000.0, None, 6000.0) is None
        assert range_position(5000.0, 6000.0, 6000.0) is None
