"""
Tests for the Advisory Hookup and Macro Context
"""

import asyncio
import json
from dataclasses import replace

import pytest

from perpsniper.analysis.advisory import (
    AdvisoryService,
    AdvisoryVerdict,
    VerdictAction,
    VerdictSignal,
    build_advisory_payload,
    request_verdict,
    rule_based_verdict,
)
from perpsniper.analysis.macro import compute_macro_stats
from perpsniper.models import Trend30d
from perpsniper.session import MarketSessionManager
from perpsniper.feed import StaticCandleFeed

from conftest import make_uptrend

DAY_MS = 86_400_000


@pytest.fixture
def state(uptrend):
    manager = MarketSessionManager(StaticCandleFeed(), ['BTC/USDT'])
    daily = make_uptrend(30, start=100.0, bar_ms=DAY_MS)
    return manager.load_history('BTC/USDT', uptrend, daily_candles=daily)


def with_score(state, score):
    return replace(state, indicators=replace(state.indicators, composite_score=score))


class EchoService(AdvisoryService):
    async def evaluate(self, payload):
        return AdvisoryVerdict(
            signal=VerdictSignal.STRONG_SHORT,
            action=VerdictAction.GO_SHORT,
            confidence=77.0,
            reasoning=f"saw {payload['pair']}",
            timestamp=0,
            source="service",
        )


class BrokenService(AdvisoryService):
    async def evaluate(self, payload):
        raise RuntimeError("model overloaded")


class SlowService(AdvisoryService):
    async def evaluate(self, payload):
        await asyncio.sleep(10)


class TestPayload:
    """Test advisory payload serialization"""

    def test_json_serializable(self, state):
        payload = build_advisory_payload(state)
        decoded = json.loads(json.dumps(payload))

        assert decoded['pair'] == 'BTC/USDT'
        assert decoded['timeframe'] == '1m'
        assert decoded['indicators']['market_structure'] == 'BULLISH'
        assert decoded['macro']['trend_30d'] == 'UP'

    def test_heavy_fields_omitted(self, state):
        payload = build_advisory_payload(state)
        assert 'candles' not in payload
        assert 'cvd_history' not in payload['metrics']

    def test_macro_optional(self, state):
        payload = build_advisory_payload(replace(state, macro=None))
        assert payload['macro'] is None


class TestRuleBasedVerdict:
    """Test the composite-score fallback"""

    @pytest.mark.parametrize('score, signal, action', [
        (0.6, VerdictSignal.STRONG_LONG, VerdictAction.GO_LONG),
        (0.3, VerdictSignal.WEAK_LONG, VerdictAction.WAIT),
        (0.0, VerdictSignal.NEUTRAL, VerdictAction.WAIT),
        (-0.3, VerdictSignal.WEAK_SHORT, VerdictAction.WAIT),
        (-0.7, VerdictSignal.STRONG_SHORT, VerdictAction.GO_SHORT),
    ])
    def test_mapping(self, state, score, signal, action):
        verdict = rule_based_verdict(with_score(state, score).indicators)
        assert verdict.signal == signal
        assert verdict.action == action
        assert verdict.source == "rules"

    def test_confidence(self, state):
        assert rule_based_verdict(with_score(state, 0.6).indicators).confidence == pytest.approx(60.0)
        assert rule_based_verdict(with_score(state, 1.0).indicators).confidence == 99.0
        assert rule_based_verdict(with_score(state, 0.3).indicators).confidence == 0.0

    def test_to_dict(self, state):
        data = rule_based_verdict(with_score(state, -0.7).indicators).to_dict()
        assert data['signal'] == 'STRONG_SHORT'
        assert data['action'] == 'GO SHORT'


class TestRequestVerdict:
    """Test service call with fallback"""

    def test_no_service_uses_rules(self, state):
        verdict = asyncio.run(request_verdict(state))
        assert verdict.source == "rules"

    def test_service_result_passed_through(self, state):
        verdict = asyncio.run(request_verdict(state, EchoService()))
        assert verdict.source == "service"
        assert verdict.reasoning == "saw BTC/USDT"

    def test_failure_falls_back(self, state):
        verdict = asyncio.run(request_verdict(state, BrokenService()))
        assert verdict.source == "rules"
        assert verdict.reasoning.startswith("Advisory unavailable.")

    def test_timeout_falls_back(self, state):
        verdict = asyncio.run(request_verdict(state, SlowService(), timeout=0.01))
        assert verdict.source == "rules"
        assert verdict.reasoning.startswith("Advisory timeout.")


class TestMacroStats:
    """Test 30-day context"""

    def test_empty(self):
        assert compute_macro_stats([]) is None

    def test_uptrend(self):
        stats = compute_macro_stats(make_uptrend(30, start=100.0, bar_ms=DAY_MS))

        assert stats.high_30d == 129.5
        assert stats.low_30d == 98.5
        assert stats.trend_30d == Trend30d.UP
        assert stats.drawdown_from_high == pytest.approx((129.5 - 129.0) / 129.5 * 100)

    def test_sideways_against_live_price(self):
        daily = make_uptrend(30, start=100.0, step=0.1, bar_ms=DAY_MS)
        stats = compute_macro_stats(daily, price=110.0)

        assert stats.trend_30d == Trend30d.SIDEWAYS
        assert stats.pump_from_low == pytest.approx((110.0 - stats.low_30d) / stats.low_30d * 100)

    def test_only_last_thirty_days(self):
        daily = make_uptrend(30, start=500.0, step=-10.0, bar_ms=DAY_MS)
        daily += make_uptrend(30, start=100.0, step=0.0, bar_ms=DAY_MS, t0=30 * DAY_MS)
        stats = compute_macro_stats(daily)

        assert stats.high_30d == pytest.approx(100.5)
        assert stats.trend_30d == Trend30d.SIDEWAYS
