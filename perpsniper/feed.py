"""
Inbound Candle Feed Interface

The exchange connection lives outside the engine. The session manager only
needs a way to (re)fetch authoritative history per pair and timeframe; live
ticks are pushed in by the host through MarketSessionManager.apply_tick().
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .indicators.base import frame_to_candles, validate_dataframe
from .models import Candle

logger = logging.getLogger(__name__)

TIMEFRAMES = ['1m', '5m', '15m', '30m', '1h', '4h', '1d']

_UNIT_MS = {'m': 60_000, 'h': 3_600_000, 'd': 86_400_000}


def timeframe_to_ms(timeframe: str) -> int:
    """Bar period in milliseconds, e.g. '15m' -> 900000"""
    try:
        count = int(timeframe[:-1])
        unit = _UNIT_MS[timeframe[-1]]
    except (ValueError, KeyError, IndexError):
        raise ValueError(f"Invalid timeframe: {timeframe!r}") from None
    if count <= 0:
        raise ValueError(f"Invalid timeframe: {timeframe!r}")
    return count * unit


@dataclass
class HistoryBatch:
    """A backfill for one pair: candles oldest first, optional taker split"""
    candles: List[Candle]
    taker_buy_volumes: Optional[List[float]] = None


class CandleFeed(ABC):
    """Source of authoritative candle history"""

    @abstractmethod
    async def fetch_history(self, pair: str, timeframe: str, limit: int) -> HistoryBatch:
        """
        Fetch the most recent `limit` bars for a pair at a timeframe.

        Args:
            pair: Trading pair (e.g. 'BTC/USDT')
            timeframe: Bar size (e.g. '1m', '15m')
            limit: Maximum number of bars

        Returns:
            HistoryBatch with candles ordered oldest to newest
        """
        pass

    async def fetch_daily(self, pair: str, limit: int = 30) -> List[Candle]:
        """Daily bars for macro context. Feeds without them return []."""
        return []


@dataclass
class StaticCandleFeed(CandleFeed):
    """
    In-memory feed keyed by (pair, timeframe).

    Used for replays and tests.
    """
    history: Dict[Tuple[str, str], HistoryBatch] = field(default_factory=dict)
    daily: Dict[str, List[Candle]] = field(default_factory=dict)

    def add(
        self,
        pair: str,
        timeframe: str,
        candles: Sequence[Candle],
        taker_buy_volumes: Optional[Sequence[float]] = None
    ):
        self.history[(pair, timeframe)] = HistoryBatch(
            candles=list(candles),
            taker_buy_volumes=list(taker_buy_volumes) if taker_buy_volumes is not None else None,
        )

    async def fetch_history(self, pair: str, timeframe: str, limit: int) -> HistoryBatch:
        batch = self.history.get((pair, timeframe))
        if batch is None:
            logger.warning(f"[{pair}] No {timeframe} history available")
            return HistoryBatch(candles=[])

        taker = batch.taker_buy_volumes[-limit:] if batch.taker_buy_volumes is not None else None
        return HistoryBatch(candles=batch.candles[-limit:], taker_buy_volumes=taker)

    async def fetch_daily(self, pair: str, limit: int = 30) -> List[Candle]:
        return self.daily.get(pair, [])[-limit:]


def load_candles_csv(path: Union[str, Path]) -> HistoryBatch:
    """
    Load candles from CSV.

    Required columns: time (ms), open, high, low, close, volume. An optional
    taker_buy_volume column carries the taker split.

    Raises:
        ValueError if the file is missing required columns or is unordered
    """
    df = pd.read_csv(path)
    df = df.sort_values('time').reset_index(drop=True) if 'time' in df.columns else df
    validate_dataframe(df)

    taker = None
    if 'taker_buy_volume' in df.columns:
        taker = df['taker_buy_volume'].astype(float).tolist()

    candles = frame_to_candles(df)
    logger.info(f"Loaded {len(candles)} candles from {path}")
    return HistoryBatch(candles=candles, taker_buy_volumes=taker)
