"""
Advisory Hookup
===============

Serializes a MarketState into the plain payload an external decision
service (e.g. an LLM) consumes, and provides the rule-based verdict the
host falls back to when that service is missing, slow or failing.

Fallback mapping from the composite score:
├── score >=  0.5 ──► STRONG_LONG  (GO LONG)
├── score >=  0.2 ──► WEAK_LONG    (WAIT)
├── score <= -0.5 ──► STRONG_SHORT (GO SHORT)
├── score <= -0.2 ──► WEAK_SHORT   (WAIT)
└── otherwise     ──► NEUTRAL      (WAIT)
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..models import IndicatorSnapshot, MarketState

logger = logging.getLogger(__name__)

STRONG_THRESHOLD = 0.5
WEAK_THRESHOLD = 0.2
MAX_CONFIDENCE = 99.0
DEFAULT_TIMEOUT_SECONDS = 15.0


class VerdictSignal(Enum):
    STRONG_LONG = "STRONG_LONG"
    WEAK_LONG = "WEAK_LONG"
    NEUTRAL = "NEUTRAL"
    WEAK_SHORT = "WEAK_SHORT"
    STRONG_SHORT = "STRONG_SHORT"


class VerdictAction(Enum):
    GO_LONG = "GO LONG"
    GO_SHORT = "GO SHORT"
    WAIT = "WAIT"


@dataclass(frozen=True)
class AdvisoryVerdict:
    """Structured recommendation for one pair"""
    signal: VerdictSignal
    action: VerdictAction
    confidence: float  # 0-100
    reasoning: str
    timestamp: int     # epoch ms
    source: str = "rules"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'signal': self.signal.value,
            'action': self.action.value,
            'confidence': round(self.confidence, 1),
            'reasoning': self.reasoning,
            'timestamp': self.timestamp,
            'source': self.source,
        }


class AdvisoryService(ABC):
    """External decision service (outside this engine)"""

    @abstractmethod
    async def evaluate(self, payload: Dict[str, Any]) -> AdvisoryVerdict:
        """Turn an advisory payload into a verdict"""
        pass


# ═══════════════════════════════════════════════════════════════════════════
# PAYLOAD
# ═══════════════════════════════════════════════════════════════════════════

def _format_indicators(snapshot: IndicatorSnapshot) -> Dict[str, Any]:
    flow = snapshot.order_flow
    return {
        'ema20': snapshot.ema20,
        'ema50': snapshot.ema50,
        'ema200': snapshot.ema200,
        'rsi': round(snapshot.rsi, 2),
        'macd': snapshot.macd,
        'volume_sma': snapshot.volume_sma,
        'bollinger': {
            'upper': snapshot.bollinger_upper,
            'middle': snapshot.bollinger_middle,
            'lower': snapshot.bollinger_lower,
        },
        'market_structure': snapshot.market_structure.value,
        'vpa_status': snapshot.vpa_status.value,
        'fvg_price': snapshot.fvg_price,
        'order_flow': {
            'imbalance': round(flow.imbalance, 3),
            'divergence': flow.divergence.value,
            'stop_hunt': flow.stop_hunt.value,
            'pressure': round(flow.pressure, 1),
        },
        'scores': {
            'trend': snapshot.trend_score,
            'momentum': snapshot.momentum_score,
            'smart_money': snapshot.smart_money_score,
            'liquidation': snapshot.liquidation_score,
            'funding': snapshot.funding_score,
            'oi': snapshot.oi_score,
            'composite': round(snapshot.composite_score, 4),
        },
    }


def build_advisory_payload(state: MarketState) -> Dict[str, Any]:
    """
    Flatten a MarketState into JSON-serializable primitives.

    The CVD history and candle list are left out; the service only needs the
    derived snapshot.
    """
    metrics = state.metrics
    payload = {
        'pair': state.pair,
        'price': state.price,
        'change_24h': round(state.change_24h, 3),
        'timeframe': state.timeframe,
        'is_realtime': state.is_realtime,
        'last_candle_time': state.candles[-1].time if state.candles else None,
        'indicators': _format_indicators(state.indicators),
        'metrics': {
            'cvd': metrics.cvd,
            'open_interest': metrics.open_interest,
            'funding_rate': metrics.funding_rate,
            'liquidation_heat': metrics.liquidation_heat,
            'btc_dominance': metrics.btc_dominance,
        },
        'macro': None,
    }

    if state.macro is not None:
        payload['macro'] = {
            'high_30d': state.macro.high_30d,
            'low_30d': state.macro.low_30d,
            'drawdown_from_high': round(state.macro.drawdown_from_high, 2),
            'pump_from_low': round(state.macro.pump_from_low, 2),
            'trend_30d': state.macro.trend_30d.value,
        }

    return payload


# ═══════════════════════════════════════════════════════════════════════════
# VERDICTS
# ═══════════════════════════════════════════════════════════════════════════

def rule_based_verdict(snapshot: IndicatorSnapshot, reason_prefix: str = "") -> AdvisoryVerdict:
    """Directional call from the composite score alone"""
    score = snapshot.composite_score

    if score >= STRONG_THRESHOLD:
        signal, action = VerdictSignal.STRONG_LONG, VerdictAction.GO_LONG
    elif score >= WEAK_THRESHOLD:
        signal, action = VerdictSignal.WEAK_LONG, VerdictAction.WAIT
    elif score <= -STRONG_THRESHOLD:
        signal, action = VerdictSignal.STRONG_SHORT, VerdictAction.GO_SHORT
    elif score <= -WEAK_THRESHOLD:
        signal, action = VerdictSignal.WEAK_SHORT, VerdictAction.WAIT
    else:
        signal, action = VerdictSignal.NEUTRAL, VerdictAction.WAIT

    confidence = 0.0 if action == VerdictAction.WAIT else min(MAX_CONFIDENCE, abs(score) * 100)

    reasoning = (
        f"{reason_prefix}Composite {score:+.2f} "
        f"(structure {snapshot.market_structure.value}, RSI {snapshot.rsi:.1f}, "
        f"flow pressure {snapshot.order_flow.pressure:.0f})"
    )

    return AdvisoryVerdict(
        signal=signal,
        action=action,
        confidence=confidence,
        reasoning=reasoning,
        timestamp=int(time.time() * 1000),
        source="rules",
    )


async def request_verdict(
    state: MarketState,
    service: Optional[AdvisoryService] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> AdvisoryVerdict:
    """
    Ask the external service for a verdict, falling back to the rules.

    The fallback only needs the snapshot, so it works whatever the service
    did.
    """
    if service is None:
        return rule_based_verdict(state.indicators)

    payload = build_advisory_payload(state)

    try:
        return await asyncio.wait_for(service.evaluate(payload), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[{state.pair}] Advisory service timed out after {timeout}s - using rules")
        return rule_based_verdict(state.indicators, reason_prefix="Advisory timeout. ")
    except Exception as e:
        logger.error(f"[{state.pair}] Advisory service failed: {e}", exc_info=True)
        return rule_based_verdict(state.indicators, reason_prefix="Advisory unavailable. ")
