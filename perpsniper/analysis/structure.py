"""
Price-Action Structure
======================

Bar-pattern classifiers used by the composite calculator:
- Market structure (higher highs / higher lows over a rolling window)
- Volume-price analysis of the current bar
- Fair value gap (3-candle imbalance) detection
"""

from typing import Optional, Sequence

from ..models import Candle, MarketStructure, VPAStatus

STRUCTURE_MIN_CANDLES = 20
STRUCTURE_WINDOW = 15
STRUCTURE_SPLIT = 7

VPA_HIGH_VOLUME = 1.5
VPA_LOW_VOLUME = 0.5
VPA_BODY_THRESHOLD = 0.0005  # body must exceed 0.05% of price

FVG_MIN_CANDLES = 6
FVG_SCAN_BARS = 3


def market_structure(candles: Sequence[Candle]) -> MarketStructure:
    """
    Swing-structure heuristic over the last 15 bars.

    Splits the window 7/8 and compares each half's max high and min low.
    Both higher -> BULLISH, both lower -> BEARISH, anything else RANGING.
    This is not pivot-based structure detection.
    """
    if len(candles) < STRUCTURE_MIN_CANDLES:
        return MarketStructure.RANGING

    recent = candles[-STRUCTURE_WINDOW:]
    first, second = recent[:STRUCTURE_SPLIT], recent[STRUCTURE_SPLIT:]

    first_high = max(c.high for c in first)
    second_high = max(c.high for c in second)
    first_low = min(c.low for c in first)
    second_low = min(c.low for c in second)

    if second_high > first_high and second_low > first_low:
        return MarketStructure.BULLISH
    if second_high < first_high and second_low < first_low:
        return MarketStructure.BEARISH
    return MarketStructure.RANGING


def vpa_status(candle: Candle, volume_sma: float) -> VPAStatus:
    """
    Classify whether volume confirms the current bar.

    High volume with a real body is STRONG; high volume with a tiny body is
    an ANOMALY (churn, possible reversal); low volume is WEAK.
    """
    if volume_sma <= 0:
        return VPAStatus.NEUTRAL

    if candle.volume > volume_sma * VPA_HIGH_VOLUME:
        if candle.body > candle.close * VPA_BODY_THRESHOLD:
            return VPAStatus.STRONG
        return VPAStatus.ANOMALY

    if candle.volume < volume_sma * VPA_LOW_VOLUME:
        return VPAStatus.WEAK

    return VPAStatus.NEUTRAL


def find_fair_value_gap(candles: Sequence[Candle]) -> Optional[float]:
    """
    Midpoint of the most recent fair value gap, or None.

    Scans the 3-bar windows ending at each of the last 3 candles, newest
    first. Bullish gap: middle bar closed up and bar 1's high is below bar
    3's low. Bearish gap mirrors it. Older gaps are not tracked.
    """
    if len(candles) < FVG_MIN_CANDLES:
        return None

    n = len(candles)
    for i in range(n - 1, n - 1 - FVG_SCAN_BARS, -1):
        c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]

        if c2.close > c2.open and c1.high < c3.low:
            return (c1.high + c3.low) / 2
        if c2.close < c2.open and c1.low > c3.high:
            return (c1.low + c3.high) / 2

    return None
