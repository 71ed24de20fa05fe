"""
30-day macro context from daily candles.
"""

from typing import Optional, Sequence

from ..models import Candle, MacroStats, Trend30d

TREND_THRESHOLD_PCT = 10.0


def compute_macro_stats(
    daily_candles: Sequence[Candle],
    price: Optional[float] = None
) -> Optional[MacroStats]:
    """
    Summarize the last 30 daily bars.

    Args:
        daily_candles: Daily candles, oldest first
        price: Live price to measure drawdown/pump against (defaults to the
            last daily close)

    Returns:
        MacroStats, or None when no daily data is available
    """
    if not daily_candles:
        return None

    window = daily_candles[-30:]
    high_30d = max(c.high for c in window)
    low_30d = min(c.low for c in window)
    first_close = window[0].close
    last_close = window[-1].close
    price = last_close if price is None else price

    change_pct = ((last_close - first_close) / first_close) * 100 if first_close else 0.0
    if change_pct > TREND_THRESHOLD_PCT:
        trend = Trend30d.UP
    elif change_pct < -TREND_THRESHOLD_PCT:
        trend = Trend30d.DOWN
    else:
        trend = Trend30d.SIDEWAYS

    return MacroStats(
        high_30d=high_30d,
        low_30d=low_30d,
        drawdown_from_high=((high_30d - price) / high_30d) * 100 if high_30d else 0.0,
        pump_from_low=((price - low_30d) / low_30d) * 100 if low_30d else 0.0,
        trend_30d=trend,
    )
