"""
Composite Indicator Calculator
==============================

Builds one IndicatorSnapshot from a candle series and the pair's advanced
metrics. The snapshot is recomputed wholesale on every call; nothing is
patched incrementally, so there is no accumulated drift between updates.

Composite score = sum(weight[f] * score[f]) over six factors, each scored
in [-1, 1]. The weight table is policy and lives in config.COMPOSITE_WEIGHTS.
"""

import logging
from typing import Dict, Mapping, Optional, Sequence

from ..config import EngineConfig
from ..indicators import bollinger_bands, ema, rsi, sma
from ..indicators.oscillators import NEUTRAL_RSI
from ..models import (
    AdvancedMetrics,
    Candle,
    IndicatorSnapshot,
    MarketStructure,
    OrderFlowMetrics,
    VPAStatus,
)
from .order_flow import analyze_order_flow
from .structure import find_fair_value_gap, market_structure, vpa_status

logger = logging.getLogger(__name__)

# Lookback multiples for the trend EMAs (EMA(n) is fed roughly 1.2-1.5x n closes)
EMA_LOOKBACK = {20: 30, 50: 60, 200: 250}

RSI_OVERBOUGHT = 70
RSI_OVERSOLD = 30

TREND_STEP = 0.5
MOMENTUM_EXTREME = 0.8
MOMENTUM_MILD = 0.2
SMART_MONEY_SCORE = 0.8
FUNDING_SCORE = 1.0
OI_SCORE = 0.5


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _lookback(period: int) -> int:
    return EMA_LOOKBACK.get(period, int(period * 1.25) + 10)


# ═══════════════════════════════════════════════════════════════════════════
# FACTOR SCORES
# ═══════════════════════════════════════════════════════════════════════════

def trend_score(price: float, ema_slow: float, ema_macro: float) -> float:
    score = 0.0
    if price > ema_macro:
        score += TREND_STEP
    elif price < ema_macro:
        score -= TREND_STEP
    if price > ema_slow:
        score += TREND_STEP
    elif price < ema_slow:
        score -= TREND_STEP
    return score


def momentum_score(rsi_value: float) -> float:
    """Contrarian at the extremes, trend-following in the middle"""
    if rsi_value > RSI_OVERBOUGHT:
        return -MOMENTUM_EXTREME
    if rsi_value < RSI_OVERSOLD:
        return MOMENTUM_EXTREME
    if rsi_value > 50:
        return MOMENTUM_MILD
    return -MOMENTUM_MILD


def smart_money_score(cvd: float) -> float:
    return SMART_MONEY_SCORE if cvd > 0 else -SMART_MONEY_SCORE


def funding_score(funding_rate: float) -> float:
    # Negative funding means shorts pay longs: crowded short, bullish
    return FUNDING_SCORE if funding_rate < 0 else -FUNDING_SCORE


def oi_score(open_interest: float) -> float:
    return OI_SCORE if open_interest > 0 else -OI_SCORE


def composite_score(scores: Dict[str, float], weights: Mapping[str, float]) -> float:
    """Weighted sum of factor scores; factors missing from `weights` count zero"""
    return sum(weights.get(name, 0.0) * value for name, value in scores.items())


# ═══════════════════════════════════════════════════════════════════════════
# SNAPSHOT
# ═══════════════════════════════════════════════════════════════════════════

def _neutral_snapshot(price: float = 0.0) -> IndicatorSnapshot:
    return IndicatorSnapshot(
        ema20=price,
        ema50=price,
        ema200=price,
        rsi=NEUTRAL_RSI,
        macd=0.0,
        volume_sma=0.0,
        bollinger_upper=price,
        bollinger_middle=price,
        bollinger_lower=price,
        market_structure=MarketStructure.RANGING,
        vpa_status=VPAStatus.NEUTRAL,
        fvg_price=None,
        order_flow=OrderFlowMetrics.neutral(),
        trend_score=0.0,
        momentum_score=0.0,
        smart_money_score=0.0,
        liquidation_score=0.0,
        funding_score=0.0,
        oi_score=0.0,
        composite_score=0.0,
    )


def compute_indicators(
    candles: Sequence[Candle],
    metrics: Optional[AdvancedMetrics] = None,
    config: Optional[EngineConfig] = None
) -> IndicatorSnapshot:
    """
    Compute a fresh IndicatorSnapshot.

    Args:
        candles: Candle series, oldest first
        metrics: Advanced metrics for the pair (neutral when omitted)
        config: Engine configuration (defaults when omitted)

    Returns:
        IndicatorSnapshot; a neutral snapshot for an empty series
    """
    config = config or EngineConfig()
    metrics = metrics or AdvancedMetrics.neutral(config.btc_dominance)

    if not candles:
        return _neutral_snapshot()

    closes = [c.close for c in candles]
    volumes = [c.volume for c in candles]
    current = candles[-1]
    price = current.close

    ema_fast = ema(closes[-_lookback(config.ema_fast):], config.ema_fast)
    ema_slow = ema(closes[-_lookback(config.ema_slow):], config.ema_slow)
    ema_macro = ema(closes[-_lookback(config.ema_macro):], config.ema_macro)
    rsi_value = rsi(closes, config.rsi_period)
    volume_sma = sma(volumes, config.volume_sma_period)
    bands = bollinger_bands(closes, config.bollinger_period, config.bollinger_multiplier)

    order_flow = analyze_order_flow(candles, metrics.cvd_history)

    scores = {
        'trend': trend_score(price, ema_slow, ema_macro),
        'momentum': momentum_score(rsi_value),
        'smart_money': smart_money_score(metrics.cvd),
        'liquidation': _clamp(metrics.liquidation_heat),
        'funding': funding_score(metrics.funding_rate),
        'oi': oi_score(metrics.open_interest),
    }

    return IndicatorSnapshot(
        ema20=ema_fast,
        ema50=ema_slow,
        ema200=ema_macro,
        rsi=rsi_value,
        macd=ema_fast - ema_slow,
        volume_sma=volume_sma,
        bollinger_upper=bands.upper,
        bollinger_middle=bands.middle,
        bollinger_lower=bands.lower,
        market_structure=market_structure(candles),
        vpa_status=vpa_status(current, volume_sma),
        fvg_price=find_fair_value_gap(candles),
        order_flow=order_flow,
        trend_score=scores['trend'],
        momentum_score=scores['momentum'],
        smart_money_score=scores['smart_money'],
        liquidation_score=scores['liquidation'],
        funding_score=scores['funding'],
        oi_score=scores['oi'],
        composite_score=composite_score(scores, config.composite_weights),
    )
