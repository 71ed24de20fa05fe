"""
Core Data Models

Value objects shared by the indicator, order-flow, signal and session layers.
Everything published to subscribers is frozen so a snapshot can be handed to
any consumer without copying.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

# Fallback BTC dominance (%) until a live market-wide source is wired in
DEFAULT_BTC_DOMINANCE = 54.2


# ═══════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════

class MarketStructure(Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    RANGING = "RANGING"


class VPAStatus(Enum):
    """Volume-price analysis classification of the current bar"""
    STRONG = "STRONG"
    WEAK = "WEAK"
    NEUTRAL = "NEUTRAL"
    ANOMALY = "ANOMALY"  # High volume, small body (churn)


class Divergence(Enum):
    NONE = "NONE"
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"


class StopHunt(Enum):
    NONE = "NONE"
    BULLISH_SWEEP = "BULLISH_SWEEP"
    BEARISH_SWEEP = "BEARISH_SWEEP"


class SignalSide(Enum):
    BUY = "BUY"
    SELL = "SELL"


class SignalReason(Enum):
    """Why the signal detector emitted a signal"""
    TREND_START = "TREND_START"
    TREND_FLIP = "TREND_FLIP"
    TAKE_PROFIT = "TAKE_PROFIT"

    @property
    def label(self) -> str:
        return _REASON_LABELS[self]


_REASON_LABELS = {
    SignalReason.TREND_START: "Trend Start",
    SignalReason.TREND_FLIP: "Trend Flip",
    SignalReason.TAKE_PROFIT: "Take Profit",
}


class Trend30d(Enum):
    UP = "UP"
    DOWN = "DOWN"
    SIDEWAYS = "SIDEWAYS"


# ═══════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. `time` is the bar open in epoch milliseconds."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    def validate(self) -> 'Candle':
        """
        Check OHLC ordering and non-negative volume.

        Raises:
            ValueError if the bar is malformed
        """
        if self.high < self.low:
            raise ValueError(f"Candle {self.time}: high {self.high} < low {self.low}")
        if self.low > min(self.open, self.close):
            raise ValueError(f"Candle {self.time}: low {self.low} above body")
        if self.high < max(self.open, self.close):
            raise ValueError(f"Candle {self.time}: high {self.high} below body")
        if self.volume < 0:
            raise ValueError(f"Candle {self.time}: negative volume {self.volume}")
        return self

    def to_dict(self) -> dict:
        return {
            'time': self.time,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
        }


@dataclass(frozen=True)
class OrderFlowMetrics:
    """Derived order-flow proxies for the latest bar"""
    imbalance: float = 0.0             # -1 (all selling) .. +1 (all buying)
    divergence: Divergence = Divergence.NONE
    stop_hunt: StopHunt = StopHunt.NONE
    pressure: float = 50.0             # 0..100 buying-pressure score

    @classmethod
    def neutral(cls) -> 'OrderFlowMetrics':
        return cls()


@dataclass(frozen=True)
class AdvancedMetrics:
    """
    Market-wide context fed into the composite calculator.

    Use AdvancedMetrics.neutral() when nothing is known yet; every field has
    a safe default so consumers never need presence checks.
    """
    cvd: float = 0.0
    open_interest: float = 0.0
    funding_rate: float = 0.0
    liquidation_heat: float = 0.0      # -1 (longs liquidated) .. 1 (shorts liquidated)
    btc_dominance: float = DEFAULT_BTC_DOMINANCE
    cvd_history: Tuple[float, ...] = ()

    @classmethod
    def neutral(cls, btc_dominance: float = DEFAULT_BTC_DOMINANCE) -> 'AdvancedMetrics':
        return cls(btc_dominance=btc_dominance)


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Everything derived from one candle series at one point in time"""
    # Trend / momentum
    ema20: float
    ema50: float
    ema200: float
    rsi: float
    macd: float
    volume_sma: float
    bollinger_upper: float
    bollinger_middle: float
    bollinger_lower: float

    # Structure
    market_structure: MarketStructure
    vpa_status: VPAStatus
    fvg_price: Optional[float]
    order_flow: OrderFlowMetrics

    # Strategy component scores (-1 .. 1)
    trend_score: float
    momentum_score: float
    smart_money_score: float
    liquidation_score: float
    funding_score: float
    oi_score: float

    # Weighted sum of the component scores (-1 .. 1)
    composite_score: float


@dataclass(frozen=True)
class ChartSignal:
    """A trade entry/exit event emitted by the signal detector"""
    time: int
    type: SignalSide
    price: float
    reason: SignalReason

    @property
    def label(self) -> str:
        return self.reason.label


@dataclass(frozen=True)
class MacroStats:
    """30-day context computed from daily candles"""
    high_30d: float
    low_30d: float
    drawdown_from_high: float  # % below the 30d high
    pump_from_low: float       # % above the 30d low
    trend_30d: Trend30d


@dataclass(frozen=True)
class MarketState:
    """Published per-pair snapshot. Replaced, never mutated."""
    pair: str
    price: float
    change_24h: float
    candles: Tuple[Candle, ...]
    metrics: AdvancedMetrics
    indicators: IndicatorSnapshot
    timeframe: str
    is_realtime: bool = True
    macro: Optional[MacroStats] = field(default=None)
