"""
Sniper Signal Detection
=======================

Trend-following entry/exit state machine run over a full candle history.

States (one position intent per run):
├── NONE
│   ├── close crosses above anchor EMA and RSI > 45 ──► LONG  (BUY, Trend Start)
│   └── close crosses below anchor EMA and RSI < 55 ──► SHORT (SELL, Trend Start)
├── LONG: close falls below anchor EMA
│   ├── RSI < 45 ──► SHORT (SELL, Trend Flip)
│   └── else     ──► NONE  (SELL, Take Profit)
└── SHORT: close rises above anchor EMA
    ├── RSI > 55 ──► LONG  (BUY, Trend Flip)
    └── else     ──► NONE  (BUY, Take Profit)

A cooldown of N bars after any emitted signal blocks new entries from NONE.
Exits and flips happen immediately and are never blocked.

The detector keeps no state between calls: the same history always yields
the same signal list, and extending the history only appends to it.
"""

import logging
from enum import Enum
from typing import Dict, List, Sequence

from ..indicators import ema_series
from ..models import Candle, ChartSignal, Divergence, SignalReason, SignalSide

logger = logging.getLogger(__name__)

MIN_CANDLES = 50
ANCHOR_EMA_PERIOD = 50
COOLDOWN_BARS = 8

LONG_RSI_FLOOR = 45.0
SHORT_RSI_CEILING = 55.0

PIVOT_WING = 2
DIVERGENCE_MAX_GAP = 20


class PositionState(Enum):
    NONE = "NONE"
    LONG = "LONG"
    SHORT = "SHORT"


def detect_signals(
    candles: Sequence[Candle],
    rsi_series: Sequence[float],
    anchor_period: int = ANCHOR_EMA_PERIOD,
    cooldown_bars: int = COOLDOWN_BARS
) -> List[ChartSignal]:
    """
    Derive BUY/SELL signals from a candle history.

    Args:
        candles: Candle history, oldest first
        rsi_series: RSI value per candle (same length as `candles`)
        anchor_period: Period of the trend-anchor EMA
        cooldown_bars: Bars after any signal during which entries are blocked

    Returns:
        Signals in chronological order; empty when fewer than 50 candles
    """
    if len(candles) < MIN_CANDLES:
        return []

    if len(rsi_series) != len(candles):
        logger.warning(
            f"RSI series length {len(rsi_series)} != candle count {len(candles)} - "
            f"no signals generated"
        )
        return []

    closes = [c.close for c in candles]
    anchor = ema_series(closes, anchor_period)

    signals: List[ChartSignal] = []
    state = PositionState.NONE
    last_signal_idx = None

    def cooled_down(i: int) -> bool:
        return last_signal_idx is None or (i - last_signal_idx) >= cooldown_bars

    def emit(i: int, side: SignalSide, reason: SignalReason):
        nonlocal last_signal_idx
        c = candles[i]
        signals.append(ChartSignal(time=c.time, type=side, price=c.close, reason=reason))
        last_signal_idx = i

    for i in range(1, len(candles)):
        close = closes[i]
        prev_close = closes[i - 1]
        ema_now = anchor[i]
        ema_prev = anchor[i - 1]
        rsi_now = rsi_series[i]

        if state == PositionState.LONG:
            if close < ema_now:
                if rsi_now < LONG_RSI_FLOOR:
                    emit(i, SignalSide.SELL, SignalReason.TREND_FLIP)
                    state = PositionState.SHORT
                else:
                    emit(i, SignalSide.SELL, SignalReason.TAKE_PROFIT)
                    state = PositionState.NONE
            continue

        if state == PositionState.SHORT:
            if close > ema_now:
                if rsi_now > SHORT_RSI_CEILING:
                    emit(i, SignalSide.BUY, SignalReason.TREND_FLIP)
                    state = PositionState.LONG
                else:
                    emit(i, SignalSide.BUY, SignalReason.TAKE_PROFIT)
                    state = PositionState.NONE
            continue

        if not cooled_down(i):
            continue

        crossed_up = prev_close <= ema_prev and close > ema_now
        crossed_down = prev_close >= ema_prev and close < ema_now

        if crossed_up and rsi_now > LONG_RSI_FLOOR:
            emit(i, SignalSide.BUY, SignalReason.TREND_START)
            state = PositionState.LONG
        elif crossed_down and rsi_now < SHORT_RSI_CEILING:
            emit(i, SignalSide.SELL, SignalReason.TREND_START)
            state = PositionState.SHORT

    return signals


def detect_rsi_divergences(
    candles: Sequence[Candle],
    rsi_series: Sequence[float],
    max_gap: int = DIVERGENCE_MAX_GAP
) -> Dict[int, Divergence]:
    """
    Mark RSI divergences at swing pivots for chart overlays.

    A pivot low/high is a bar whose low/high is strictly beyond the two bars
    on either side. Consecutive pivots of the same type less than `max_gap`
    bars apart are compared: lower low with higher RSI is BULLISH, higher
    high with lower RSI is BEARISH.

    Returns:
        {bar_index: Divergence} for the later pivot of each diverging pair
    """
    n = len(candles)
    if n != len(rsi_series):
        return {}

    pivots = []  # (index, is_low, price, rsi)
    for i in range(PIVOT_WING, n - PIVOT_WING):
        c = candles[i]
        neighbours = [candles[j] for j in range(i - PIVOT_WING, i + PIVOT_WING + 1) if j != i]

        if all(c.low < o.low for o in neighbours):
            pivots.append((i, True, c.low, rsi_series[i]))
        if all(c.high > o.high for o in neighbours):
            pivots.append((i, False, c.high, rsi_series[i]))

    divergences: Dict[int, Divergence] = {}
    for prev, curr in zip(pivots, pivots[1:]):
        if prev[1] != curr[1] or (curr[0] - prev[0]) >= max_gap:
            continue

        if curr[1]:
            if curr[2] < prev[2] and curr[3] > prev[3]:
                divergences[curr[0]] = Divergence.BULLISH
        elif curr[2] > prev[2] and curr[3] < prev[3]:
            divergences[curr[0]] = Divergence.BEARISH

    return divergences
