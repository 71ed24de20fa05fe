"""
perpsniper - indicator and signal engine for crypto perpetual futures
"""
from .config import EngineConfig, load_config
from .feed import CandleFeed, HistoryBatch, StaticCandleFeed, load_candles_csv
from .models import (
    AdvancedMetrics,
    Candle,
    ChartSignal,
    IndicatorSnapshot,
    MarketState,
    SignalReason,
    SignalSide,
)
from .session import MarketSessionManager

__version__ = '0.1.0'

__all__ = [
    'EngineConfig',
    'load_config',
    'CandleFeed',
    'HistoryBatch',
    'StaticCandleFeed',
    'load_candles_csv',
    'AdvancedMetrics',
    'Candle',
    'ChartSignal',
    'IndicatorSnapshot',
    'MarketState',
    'SignalReason',
    'SignalSide',
    'MarketSessionManager',
]
