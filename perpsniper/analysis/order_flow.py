"""
Order-Flow Analysis
===================

Derives order-flow proxies for the latest bar of a candle window:
- Buy/sell imbalance ratio (last 5 bars)
- CVD / price divergence (absorption)
- Liquidity sweeps ("stop hunts")
- Composite buying-pressure score (0-100)

These are heuristics, not order-book ground truth. True book depth is not
available from a candle feed, so the imbalance ratio splits each bar's
volume 70/30 by candle direction; every metric built on it inherits that
accuracy ceiling.
"""

import logging
from typing import Sequence

import numpy as np

from ..indicators.volume_delta import PROXY_BUY_SHARE_DOWN, PROXY_BUY_SHARE_UP
from ..models import Candle, Divergence, OrderFlowMetrics, StopHunt

logger = logging.getLogger(__name__)

MIN_BARS = 20
IMBALANCE_BARS = 5
DIVERGENCE_LOOKBACK = 20
SWEEP_REFERENCE_BARS = 8
SWEEP_SKIP_BARS = 2

PRESSURE_BASE = 50.0
PRESSURE_IMBALANCE_WEIGHT = 30.0
PRESSURE_DIVERGENCE_BONUS = 20.0
PRESSURE_SWEEP_BONUS = 15.0


def imbalance_ratio(candles: Sequence[Candle], bars: int = IMBALANCE_BARS) -> float:
    """
    Buy/sell imbalance over the last `bars` candles, in [-1, 1].

    Every bar closing up gives +0.4: the 70/30 split bounds the ratio to
    [-0.4, 0.4] in practice.
    """
    window = candles[-bars:]
    buy_volume = 0.0
    sell_volume = 0.0

    for c in window:
        share = PROXY_BUY_SHARE_UP if c.is_bullish else PROXY_BUY_SHARE_DOWN
        buy_volume += c.volume * share
        sell_volume += c.volume * (1 - share)

    total = buy_volume + sell_volume
    if total <= 0:
        return 0.0

    return float(np.clip((buy_volume - sell_volume) / total, -1.0, 1.0))


def cvd_divergence(
    candles: Sequence[Candle],
    cvd_history: Sequence[float],
    lookback: int = DIVERGENCE_LOOKBACK
) -> Divergence:
    """
    Classify CVD/price divergence on the most recent bar.

    Bullish: the latest close is the lowest of the window, but CVD bottomed
    earlier and is now above that low (sellers absorbed). Bearish mirrors
    this with highs. Only the latest bar can trigger.
    """
    closes = np.array([c.close for c in candles[-lookback:]], dtype=float)
    cvd = np.asarray(cvd_history[-lookback:], dtype=float)
    last = len(closes) - 1

    if len(closes) < 2 or len(cvd) != len(closes):
        return Divergence.NONE

    price_low_idx = int(np.argmin(closes))
    cvd_low_idx = int(np.argmin(cvd))
    if price_low_idx == last and cvd_low_idx < last and cvd[-1] > cvd[cvd_low_idx]:
        return Divergence.BULLISH

    price_high_idx = int(np.argmax(closes))
    cvd_high_idx = int(np.argmax(cvd))
    if price_high_idx == last and cvd_high_idx < last and cvd[-1] < cvd[cvd_high_idx]:
        return Divergence.BEARISH

    return Divergence.NONE


def detect_stop_hunt(
    candles: Sequence[Candle],
    reference_bars: int = SWEEP_REFERENCE_BARS,
    skip_bars: int = SWEEP_SKIP_BARS
) -> StopHunt:
    """
    Detect a liquidity sweep on the latest bar.

    Reference window: the `reference_bars` bars before the last `skip_bars`.
    Bullish sweep: wick below the reference low, close back above it.
    """
    reference = candles[-(reference_bars + skip_bars):-skip_bars]
    if not reference:
        return StopHunt.NONE

    current = candles[-1]
    ref_low = min(c.low for c in reference)
    ref_high = max(c.high for c in reference)

    if current.low < ref_low and current.close > ref_low:
        return StopHunt.BULLISH_SWEEP
    if current.high > ref_high and current.close < ref_high:
        return StopHunt.BEARISH_SWEEP

    return StopHunt.NONE


def buying_pressure(imbalance: float, divergence: Divergence, stop_hunt: StopHunt) -> float:
    """Combine the order-flow tags into a 0-100 score"""
    score = PRESSURE_BASE + imbalance * PRESSURE_IMBALANCE_WEIGHT

    if divergence == Divergence.BULLISH:
        score += PRESSURE_DIVERGENCE_BONUS
    elif divergence == Divergence.BEARISH:
        score -= PRESSURE_DIVERGENCE_BONUS

    if stop_hunt == StopHunt.BULLISH_SWEEP:
        score += PRESSURE_SWEEP_BONUS
    elif stop_hunt == StopHunt.BEARISH_SWEEP:
        score -= PRESSURE_SWEEP_BONUS

    return float(min(max(score, 0.0), 100.0))


def analyze_order_flow(
    candles: Sequence[Candle],
    cvd_history: Sequence[float]
) -> OrderFlowMetrics:
    """
    Compute order-flow metrics for the latest bar.

    Args:
        candles: Candle window, oldest first
        cvd_history: CVD value per candle, aligned with the tail of `candles`

    Returns:
        OrderFlowMetrics; the neutral result when fewer than 20 candles or
        20 CVD points are available
    """
    if len(candles) < MIN_BARS or len(cvd_history) < MIN_BARS:
        return OrderFlowMetrics.neutral()

    imbalance = imbalance_ratio(candles)
    divergence = cvd_divergence(candles, cvd_history)
    stop_hunt = detect_stop_hunt(candles)
    pressure = buying_pressure(imbalance, divergence, stop_hunt)

    if divergence != Divergence.NONE or stop_hunt != StopHunt.NONE:
        logger.debug(
            f"Order flow @ {candles[-1].time}: divergence={divergence.value}, "
            f"stop_hunt={stop_hunt.value}, pressure={pressure:.1f}"
        )

    return OrderFlowMetrics(
        imbalance=imbalance,
        divergence=divergence,
        stop_hunt=stop_hunt,
        pressure=pressure,
    )
