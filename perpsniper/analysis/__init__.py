"""
Market Analysis Package
=======================

Order flow, structure, composite scoring, signal detection and advisory
payloads for crypto perpetuals.
"""

from .order_flow import analyze_order_flow, imbalance_ratio, cvd_divergence, detect_stop_hunt, buying_pressure
from .structure import market_structure, vpa_status, find_fair_value_gap
from .composite import compute_indicators, composite_score
from .signals import detect_signals, detect_rsi_divergences, PositionState
from .macro import compute_macro_stats
from .advisory import (
    AdvisoryService,
    AdvisoryVerdict,
    VerdictAction,
    VerdictSignal,
    build_advisory_payload,
    request_verdict,
    rule_based_verdict,
)

__all__ = [
    'analyze_order_flow',
    'imbalance_ratio',
    'cvd_divergence',
    'detect_stop_hunt',
    'buying_pressure',
    'market_structure',
    'vpa_status',
    'find_fair_value_gap',
    'compute_indicators',
    'composite_score',
    'detect_signals',
    'detect_rsi_divergences',
    'PositionState',
    'compute_macro_stats',
    'AdvisoryService',
    'AdvisoryVerdict',
    'VerdictAction',
    'VerdictSignal',
    'build_advisory_payload',
    'request_verdict',
    'rule_based_verdict',
]
