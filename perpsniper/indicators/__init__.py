"""
Series math for technical analysis
"""
from .base import (
    validate_period,
    validate_dataframe,
    candles_to_frame,
    frame_to_candles,
    OHLCV_COLUMNS,
)
from .moving_averages import (
    Bands,
    ema,
    ema_series,
    sma,
    volume_sma_series,
    std_dev,
    bollinger_bands,
)
from .oscillators import MACDSeries, NEUTRAL_RSI, rsi, rsi_series, macd_histogram
from .volume_delta import CumulativeVolumeDelta, bar_delta, estimate_taker_buy_volume

__all__ = [
    # Helpers
    'validate_period',
    'validate_dataframe',
    'candles_to_frame',
    'frame_to_candles',
    'OHLCV_COLUMNS',

    # Moving averages
    'Bands',
    'ema',
    'ema_series',
    'sma',
    'volume_sma_series',
    'std_dev',
    'bollinger_bands',

    # Oscillators
    'MACDSeries',
    'NEUTRAL_RSI',
    'rsi',
    'rsi_series',
    'macd_histogram',

    # Volume delta
    'CumulativeVolumeDelta',
    'bar_delta',
    'estimate_taker_buy_volume',
]
