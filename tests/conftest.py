"""
Shared fixtures: synthetic candle series
"""

import numpy as np
import pytest

from perpsniper.models import Candle

MINUTE_MS = 60_000


def make_uptrend(n: int = 60, start: float = 100.0, step: float = 1.0,
                 volume: float = 1000.0, bar_ms: int = MINUTE_MS, t0: int = 0):
    """Each close = previous close + step, open = previous close"""
    candles = []
    for i in range(n):
        close = start + i * step
        open_ = close - step
        candles.append(Candle(
            time=t0 + i * bar_ms,
            open=open_,
            high=max(open_, close) + 0.5,
            low=min(open_, close) - 0.5,
            close=close,
            volume=volume,
        ))
    return candles


def make_from_closes(closes, volume: float = 1000.0, bar_ms: int = MINUTE_MS):
    """Candles whose open is the previous close"""
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        candles.append(Candle(
            time=i * bar_ms,
            open=prev,
            high=max(prev, close) + 0.1,
            low=min(prev, close) - 0.1,
            close=float(close),
            volume=volume,
        ))
        prev = close
    return candles


@pytest.fixture
def uptrend():
    """60-bar uptrend starting at 100, volume 1000"""
    return make_uptrend()


@pytest.fixture
def random_walk():
    """Seeded random-walk candles with varying volume"""
    np.random.seed(42)
    n = 300
    closes = np.cumsum(np.random.randn(n)) + 100
    candles = make_from_closes(closes)
    volumes = np.random.randint(500, 5000, n)
    return [
        Candle(c.time, c.open, c.high, c.low, c.close, float(v))
        for c, v in zip(candles, volumes)
    ]
