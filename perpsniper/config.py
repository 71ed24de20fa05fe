"""
Engine Configuration

Named, overridable defaults for every tunable in the engine. Values can be
overlaid from a YAML file (see config.yaml at the repository root).
"""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .models import DEFAULT_BTC_DOMINANCE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'config.yaml'

# Composite score weights (must sum to 1.0 to keep the score within [-1, 1])
COMPOSITE_WEIGHTS: Dict[str, float] = {
    'trend': 0.30,
    'momentum': 0.20,
    'smart_money': 0.15,
    'liquidation': 0.10,
    'funding': 0.10,
    'oi': 0.15,
}


@dataclass(frozen=True)
class EngineConfig:
    """All engine tunables. Frozen; derive variants with dataclasses.replace()."""
    # Candle series
    max_candles: int = 200
    history_limit: int = 200

    # Indicator periods
    rsi_period: int = 14
    ema_fast: int = 20
    ema_slow: int = 50
    ema_macro: int = 200
    bollinger_period: int = 20
    bollinger_multiplier: float = 2.0
    volume_sma_period: int = 20

    # Signal detector
    signal_anchor_period: int = 50
    signal_cooldown_bars: int = 8

    # Metric proxies
    btc_dominance: float = DEFAULT_BTC_DOMINANCE

    # Validate every incoming candle (off in production)
    debug: bool = False

    # Read-only view; excluded from hash() but still compared by ==
    composite_weights: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(dict(COMPOSITE_WEIGHTS)), hash=False
    )

    def __post_init__(self):
        object.__setattr__(
            self, 'composite_weights', MappingProxyType(dict(self.composite_weights))
        )

    def with_overrides(self, **overrides) -> 'EngineConfig':
        return replace(self, **overrides)


def config_from_dict(raw: Optional[Dict[str, Any]]) -> EngineConfig:
    """
    Build an EngineConfig from a plain dict, ignoring unknown keys.

    Composite weights are merged over the defaults so a partial table only
    changes the named factors.
    """
    raw = dict(raw or {})
    known = {f.name for f in fields(EngineConfig)}

    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {unknown}")

    values = {key: raw[key] for key in known if key in raw}

    if 'composite_weights' in values:
        weights = dict(COMPOSITE_WEIGHTS)
        bad = sorted(set(values['composite_weights']) - set(weights))
        if bad:
            raise ValueError(f"Unknown composite weight factors: {bad}")
        weights.update({k: float(v) for k, v in values['composite_weights'].items()})
        total = sum(weights.values())
        if abs(total - 1.0) > 1e-6:
            logger.warning(f"Composite weights sum to {total:.4f}, not 1.0")
        values['composite_weights'] = weights

    return EngineConfig(**values)


def load_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load configuration from YAML.

    The engine settings live under an `engine:` section. A missing file
    yields the defaults.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.info(f"No config file at {config_path}, using defaults")
        return EngineConfig()

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    config = config_from_dict(raw.get('engine', {}))
    logger.info(f"Loaded configuration from {config_path}")
    return config
