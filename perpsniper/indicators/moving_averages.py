"""
Moving Average Indicators

Implements SMA, EMA, and Bollinger Bands as pure functions over price
sequences. Every function degrades to a neutral value on short input
instead of raising, since a live feed cannot always guarantee warm-up length.
"""

import math
from typing import NamedTuple, Sequence

import numpy as np
import pandas as pd

from .base import as_float_array, validate_period


class Bands(NamedTuple):
    upper: float
    middle: float
    lower: float


def ema(series: Sequence[float], period: int) -> float:
    """
    Exponential Moving Average (trailing value).

    Seeds with the first sample (not an SMA seed) and applies
    k = 2 / (period + 1) forward, so early values lean toward the first
    sample. Supply at least `period` (ideally 3x) points of lookback.

    Returns the last value when fewer than `period` points are available,
    and 0.0 for empty input.
    """
    period = validate_period(period)
    values = as_float_array(series)

    if len(values) == 0:
        return 0.0
    if len(values) < period:
        return float(values[-1])

    k = 2.0 / (period + 1)
    ema_val = values[0]
    for v in values[1:]:
        ema_val = v * k + ema_val * (1 - k)
    return float(ema_val)


def ema_series(series: Sequence[float], period: int) -> np.ndarray:
    """
    Full EMA series, same length as the input.

    pandas' ewm(adjust=False) is exactly the first-sample-seeded recurrence
    used by ema().
    """
    period = validate_period(period)
    values = as_float_array(series)

    if len(values) == 0:
        return values

    return pd.Series(values).ewm(span=period, adjust=False).mean().to_numpy()


def sma(series: Sequence[float], period: int) -> float:
    """Simple Moving Average of the trailing window (shorter input averages what exists)"""
    period = validate_period(period)
    values = as_float_array(series)

    if len(values) == 0:
        return 0.0

    return float(values[-period:].mean())


def volume_sma_series(volumes: Sequence[float], period: int = 20) -> np.ndarray:
    """Rolling mean that expands until `period` samples exist"""
    period = validate_period(period)
    values = as_float_array(volumes)

    if len(values) == 0:
        return values

    return pd.Series(values).rolling(window=period, min_periods=1).mean().to_numpy()


def std_dev(series: Sequence[float], average: float) -> float:
    """Population standard deviation around a given average"""
    values = as_float_array(series)

    if len(values) == 0:
        return 0.0

    variance = float(np.mean((values - average) ** 2))
    return math.sqrt(variance)


def bollinger_bands(
    series: Sequence[float],
    period: int = 20,
    multiplier: float = 2.0
) -> Bands:
    """
    Bollinger Bands over the trailing window.

    Middle = SMA(period), upper/lower = middle +/- multiplier * population
    standard deviation. With fewer than `period` points the band collapses
    onto the last value.
    """
    period = validate_period(period)
    values = as_float_array(series)

    if len(values) == 0:
        return Bands(0.0, 0.0, 0.0)

    if len(values) < period:
        last = float(values[-1])
        return Bands(last, last, last)

    window = values[-period:]
    middle = float(window.mean())
    width = std_dev(window, middle) * abs(multiplier)

    return Bands(upper=middle + width, middle=middle, lower=middle - width)
