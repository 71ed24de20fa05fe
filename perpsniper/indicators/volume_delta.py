"""
Cumulative Volume Delta

Running CVD (taker buy volume - taker sell volume) per pair, with a bounded
history aligned 1:1 with the candle series so divergence detection can
compare price and CVD bar by bar.

Exchange kline streams report the taker buy volume of the open bar as a
running total, so an update to the open bar *replaces* that bar's delta
instead of adding to it.

When the feed has no taker split, a bar's delta falls back to the same 70/30
proxy used by the order-flow imbalance ratio.
"""

import logging
from collections import deque
from typing import Deque, Optional, Sequence, Tuple

from ..models import Candle

logger = logging.getLogger(__name__)

PROXY_BUY_SHARE_UP = 0.7
PROXY_BUY_SHARE_DOWN = 0.3


def estimate_taker_buy_volume(candle: Candle) -> float:
    """Coarse taker-buy estimate for feeds without a taker split"""
    share = PROXY_BUY_SHARE_UP if candle.is_bullish else PROXY_BUY_SHARE_DOWN
    return candle.volume * share


def bar_delta(candle: Candle, taker_buy_volume: Optional[float] = None) -> float:
    """Delta for one bar: taker buys minus taker sells"""
    if taker_buy_volume is None:
        taker_buy_volume = estimate_taker_buy_volume(candle)
    taker_sell_volume = candle.volume - taker_buy_volume
    return taker_buy_volume - taker_sell_volume


class CumulativeVolumeDelta:
    """
    CVD state for a single pair.

    Tracks the running CVD, the delta of the bar currently open, and one CVD
    value per candle (the CVD as of that bar's latest update).
    """

    def __init__(self, max_history: int = 200):
        """
        Args:
            max_history: History length cap, equal to the candle series cap
        """
        self.max_history = max_history
        self.cumulative_delta: float = 0.0
        self.history: Deque[float] = deque(maxlen=max_history)

        self._current_bar_time: Optional[int] = None
        self._current_bar_delta: float = 0.0

    def reset(self):
        """Clear all state (used before a full history reload)"""
        self.cumulative_delta = 0.0
        self.history.clear()
        self._current_bar_time = None
        self._current_bar_delta = 0.0

    def seed(
        self,
        candles: Sequence[Candle],
        taker_buy_volumes: Optional[Sequence[Optional[float]]] = None
    ):
        """
        Rebuild CVD from a full candle backfill.

        Args:
            candles: Candles oldest first
            taker_buy_volumes: Optional taker buy volume per candle
        """
        self.reset()

        if taker_buy_volumes is not None and len(taker_buy_volumes) != len(candles):
            logger.warning(
                f"Taker volume count {len(taker_buy_volumes)} != candle count "
                f"{len(candles)} - falling back to volume proxy"
            )
            taker_buy_volumes = None

        for i, candle in enumerate(candles):
            taker_buy = taker_buy_volumes[i] if taker_buy_volumes is not None else None
            self.update(candle, taker_buy)

    def update(self, candle: Candle, taker_buy_volume: Optional[float] = None) -> float:
        """
        Apply a tick for `candle`.

        A tick for the open bar replaces that bar's delta; a tick for a new bar
        starts a new history slot. Returns the updated CVD.
        """
        delta = bar_delta(candle, taker_buy_volume)

        if self._current_bar_time is not None and candle.time == self._current_bar_time:
            self.cumulative_delta += delta - self._current_bar_delta
            self._current_bar_delta = delta
            if self.history:
                self.history[-1] = self.cumulative_delta
            else:
                self.history.append(self.cumulative_delta)
        else:
            self._current_bar_time = candle.time
            self._current_bar_delta = delta
            self.cumulative_delta += delta
            self.history.append(self.cumulative_delta)

        return self.cumulative_delta

    def snapshot(self) -> Tuple[float, ...]:
        """Immutable copy of the CVD history (oldest first)"""
        return tuple(self.history)

    def to_dict(self) -> dict:
        return {
            'cumulative_delta': self.cumulative_delta,
            'current_bar_delta': self._current_bar_delta,
            'history_length': len(self.history),
        }
