"""
Indicator Input Helpers

Parameter validation and conversion between candle objects and the OHLCV
DataFrame layout (columns: time, open, high, low, close, volume).
"""

import logging
from typing import List, Sequence

import numpy as np
import pandas as pd

from ..models import Candle

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ['time', 'open', 'high', 'low', 'close', 'volume']


def validate_period(period: int, min_period: int = 1) -> int:
    """Validate period parameter"""
    if isinstance(period, bool) or not isinstance(period, (int, np.integer)):
        raise ValueError(f"Period must be integer, got {type(period)}")

    if period < min_period:
        raise ValueError(f"Period must be >= {min_period}, got {period}")

    return int(period)


def validate_dataframe(df: pd.DataFrame) -> bool:
    """
    Validate that DataFrame has required columns.

    Args:
        df: DataFrame to validate

    Returns:
        True if valid

    Raises:
        ValueError if invalid
    """
    missing = [col for col in OHLCV_COLUMNS if col not in df.columns]

    if missing:
        raise ValueError(f"DataFrame missing required columns: {missing}")

    if df.empty:
        raise ValueError("DataFrame is empty")

    if not df['time'].is_monotonic_increasing or df['time'].duplicated().any():
        raise ValueError("DataFrame 'time' column must be strictly increasing")

    return True


def as_float_array(values: Sequence[float]) -> np.ndarray:
    """Coerce a numeric sequence (list, tuple, ndarray, Series) to a float array"""
    return np.asarray(values, dtype=float).reshape(-1)


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Convert candles to an OHLCV DataFrame"""
    return pd.DataFrame([c.to_dict() for c in candles], columns=OHLCV_COLUMNS)


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    """Convert a validated OHLCV DataFrame to candles (oldest first)"""
    validate_dataframe(df)
    return [
        Candle(
            time=int(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df[OHLCV_COLUMNS].itertuples(index=False)
    ]
