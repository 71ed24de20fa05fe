"""
Oscillator Indicators

Implements RSI (Wilder smoothing) and MACD as pure functions.
"""

from typing import NamedTuple, Sequence

import numpy as np

from .base import as_float_array, validate_period
from .moving_averages import ema_series

NEUTRAL_RSI = 50.0


class MACDSeries(NamedTuple):
    macd_line: np.ndarray
    signal_line: np.ndarray
    histogram: np.ndarray


def _seed_averages(deltas: np.ndarray, period: int):
    """Simple average gain/loss over the first `period` deltas"""
    seed = deltas[:period]
    avg_gain = float(np.clip(seed, 0, None).sum()) / period
    avg_loss = float(np.clip(-seed, 0, None).sum()) / period
    return avg_gain, avg_loss


def _wilder_step(avg: float, new: float, period: int) -> float:
    return (avg * (period - 1) + new) / period


def rsi(closes: Sequence[float], period: int = 14) -> float:
    """
    Relative Strength Index with Wilder smoothing.

    Range: 0-100. Returns 50 (neutral) when fewer than period + 1 closes
    are available, and 100 when the average loss is exactly zero.
    """
    period = validate_period(period)
    values = as_float_array(closes)

    if len(values) < period + 1:
        return NEUTRAL_RSI

    deltas = np.diff(values)
    avg_gain, avg_loss = _seed_averages(deltas, period)

    for change in deltas[period:]:
        avg_gain = _wilder_step(avg_gain, max(change, 0.0), period)
        avg_loss = _wilder_step(avg_loss, max(-change, 0.0), period)

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def rsi_series(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """
    Full RSI series, same length as the input.

    Indices before the warm-up point hold 50. From index `period` on, each
    value equals rsi(closes[:i + 1], period).
    """
    period = validate_period(period)
    values = as_float_array(closes)
    out = np.full(len(values), NEUTRAL_RSI)

    if len(values) <= period:
        return out

    deltas = np.diff(values)
    avg_gain, avg_loss = _seed_averages(deltas, period)

    for i in range(period, len(values)):
        if i > period:
            change = deltas[i - 1]
            avg_gain = _wilder_step(avg_gain, max(change, 0.0), period)
            avg_loss = _wilder_step(avg_loss, max(-change, 0.0), period)

        if avg_loss == 0:
            out[i] = 100.0
        elif avg_gain == 0:
            out[i] = 0.0
        else:
            rs = avg_gain / avg_loss
            out[i] = 100.0 - (100.0 / (1.0 + rs))

    return out


def macd_histogram(
    series: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> MACDSeries:
    """
    Moving Average Convergence Divergence.

    MACD line = fast EMA - slow EMA, signal line = EMA of the MACD line,
    histogram = MACD line - signal line. All three are full series.
    """
    values = as_float_array(series)

    if len(values) == 0:
        empty = np.array([], dtype=float)
        return MACDSeries(empty, empty, empty)

    macd_line = ema_series(values, fast) - ema_series(values, slow)
    signal_line = ema_series(macd_line, signal)
    histogram = macd_line - signal_line

    return MACDSeries(macd_line, signal_line, histogram)
