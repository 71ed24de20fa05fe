"""
Tests for Order-Flow Analysis
"""

import pytest

from perpsniper.analysis.order_flow import (
    analyze_order_flow,
    buying_pressure,
    cvd_divergence,
    detect_stop_hunt,
    imbalance_ratio,
)
from perpsniper.models import Candle, Divergence, OrderFlowMetrics, StopHunt

from conftest import make_from_closes, make_uptrend


def flat_candles(n, low=100.0, high=110.0):
    """Bars ranging between low and high, closing mid-range"""
    mid = (low + high) / 2
    return [Candle(i * 60_000, mid, high, low, mid, 1000.0) for i in range(n)]


class TestNeutralDefault:
    """Short histories return the neutral result"""

    def test_short_candles(self):
        candles = make_uptrend(19)
        result = analyze_order_flow(candles, list(range(19)))
        assert result == OrderFlowMetrics(
            imbalance=0.0, divergence=Divergence.NONE, stop_hunt=StopHunt.NONE, pressure=50.0
        )

    def test_short_cvd_history(self):
        result = analyze_order_flow(make_uptrend(30), [1.0] * 19)
        assert result == OrderFlowMetrics.neutral()


class TestImbalance:
    """Test imbalance ratio"""

    def test_all_bullish(self):
        assert imbalance_ratio(make_uptrend(10)) == pytest.approx(0.4)

    def test_all_bearish(self):
        candles = make_uptrend(10, start=200.0, step=-1.0)
        assert imbalance_ratio(candles) == pytest.approx(-0.4)

    def test_mixed(self):
        """3 up, 2 down with equal volume: (2.7 - 2.3) / 5"""
        candles = make_from_closes([100, 101, 100, 101, 100, 101])
        assert imbalance_ratio(candles) == pytest.approx(0.08)

    def test_zero_volume(self):
        candles = make_from_closes([100, 101, 102, 103, 104], volume=0.0)
        assert imbalance_ratio(candles) == 0.0


class TestDivergence:
    """Test CVD/price divergence"""

    def test_bullish_absorption(self):
        """New price low while CVD holds above its earlier low"""
        candles = make_from_closes([120.0 - i for i in range(20)])
        cvd = [0.0] * 20
        cvd[5] = -100.0
        cvd[-1] = -10.0
        assert cvd_divergence(candles, cvd) == Divergence.BULLISH

    def test_bearish(self):
        candles = make_from_closes([100.0 + i for i in range(20)])
        cvd = [0.0] * 20
        cvd[5] = 100.0
        cvd[-1] = 50.0
        assert cvd_divergence(candles, cvd) == Divergence.BEARISH

    def test_confirmed_move_is_not_divergence(self):
        candles = make_from_closes([100.0 + i for i in range(20)])
        cvd = [float(i) for i in range(20)]
        assert cvd_divergence(candles, cvd) == Divergence.NONE

    def test_only_latest_bar_triggers(self):
        """An older price low with a lower CVD low is stale"""
        closes = [110.0] * 20
        closes[10] = 90.0
        candles = make_from_closes(closes)
        cvd = [0.0] * 20
        cvd[3] = -50.0
        assert cvd_divergence(candles, cvd) == Divergence.NONE


class TestStopHunt:
    """Test liquidity sweep detection"""

    def test_bullish_sweep(self):
        candles = flat_candles(11) + [Candle(11 * 60_000, 101.0, 104.0, 95.0, 102.0, 1000.0)]
        assert detect_stop_hunt(candles) == StopHunt.BULLISH_SWEEP

    def test_bearish_sweep(self):
        candles = flat_candles(11) + [Candle(11 * 60_000, 107.0, 115.0, 106.0, 108.0, 1000.0)]
        assert detect_stop_hunt(candles) == StopHunt.BEARISH_SWEEP

    def test_breakdown_is_not_sweep(self):
        """Closing below the reference low is a breakdown, not a sweep"""
        candles = flat_candles(11) + [Candle(11 * 60_000, 101.0, 101.0, 95.0, 96.0, 1000.0)]
        assert detect_stop_hunt(candles) == StopHunt.NONE

    def test_reference_excludes_last_two_bars(self):
        """A wick in the last two bars does not move the reference low"""
        candles = flat_candles(10)
        candles.append(Candle(10 * 60_000, 105.0, 106.0, 90.0, 105.0, 1000.0))
        candles.append(Candle(11 * 60_000, 101.0, 104.0, 95.0, 102.0, 1000.0))
        assert detect_stop_hunt(candles) == StopHunt.BULLISH_SWEEP


class TestBuyingPressure:
    """Test pressure score"""

    def test_base(self):
        assert buying_pressure(0.0, Divergence.NONE, StopHunt.NONE) == 50.0

    def test_clamped_high(self):
        assert buying_pressure(1.0, Divergence.BULLISH, StopHunt.BULLISH_SWEEP) == 100.0

    def test_clamped_low(self):
        assert buying_pressure(-1.0, Divergence.BEARISH, StopHunt.BEARISH_SWEEP) == 0.0

    def test_components(self):
        assert buying_pressure(0.4, Divergence.BEARISH, StopHunt.NONE) == pytest.approx(42.0)


class TestAnalyzeOrderFlow:
    """Test the combined analysis"""

    def test_uptrend(self):
        candles = make_uptrend(30)
        cvd = [float(i) for i in range(30)]
        result = analyze_order_flow(candles, cvd)

        assert result.imbalance == pytest.approx(0.4)
        assert result.divergence == Divergence.NONE
        assert result.stop_hunt == StopHunt.NONE
        assert result.pressure == pytest.approx(62.0)
