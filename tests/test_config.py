"""
Tests for Configuration Loading and the Candle Feed
"""

import asyncio

import pandas as pd
import pytest

from perpsniper.config import COMPOSITE_WEIGHTS, EngineConfig, config_from_dict, load_config
from perpsniper.feed import StaticCandleFeed, load_candles_csv, timeframe_to_ms
from perpsniper.indicators import candles_to_frame
from perpsniper.models import AdvancedMetrics

from conftest import make_uptrend


class TestConfig:
    """Test YAML configuration"""

    def test_defaults(self):
        config = EngineConfig()
        assert config.max_candles == 200
        assert config.signal_cooldown_bars == 8
        assert config.composite_weights == COMPOSITE_WEIGHTS

    def test_weights_read_only(self):
        config = EngineConfig()
        with pytest.raises(TypeError):
            config.composite_weights['trend'] = 0.0
        assert COMPOSITE_WEIGHTS['trend'] == 0.30

    def test_passed_weights_copied(self):
        weights = dict(COMPOSITE_WEIGHTS)
        config = EngineConfig(composite_weights=weights)
        weights['trend'] = 0.0
        assert config.composite_weights['trend'] == 0.30

    def test_hashable(self):
        config = EngineConfig()
        assert hash(config) == hash(EngineConfig())
        assert len({config, EngineConfig(), config.with_overrides(rsi_period=7)}) == 2

    def test_overrides_keep_weights_read_only(self):
        config = EngineConfig().with_overrides(max_candles=50)
        assert config.composite_weights == COMPOSITE_WEIGHTS
        with pytest.raises(TypeError):
            config.composite_weights['oi'] = 1.0

    def test_btc_dominance_default_matches_neutral_metrics(self):
        assert AdvancedMetrics.neutral().btc_dominance == EngineConfig().btc_dominance
        assert AdvancedMetrics().btc_dominance == EngineConfig().btc_dominance

    def test_load_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text(
            "engine:\n"
            "  rsi_period: 7\n"
            "  debug: true\n"
            "  composite_weights:\n"
            "    trend: 0.40\n"
            "    momentum: 0.10\n"
        )
        config = load_config(path)

        assert config.rsi_period == 7
        assert config.debug is True
        assert config.composite_weights['trend'] == 0.40
        assert config.composite_weights['oi'] == 0.15

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_config(tmp_path / 'absent.yaml') == EngineConfig()

    def test_repository_config(self):
        """The shipped config.yaml matches the defaults"""
        assert load_config() == EngineConfig()

    def test_unknown_keys_ignored(self):
        config = config_from_dict({'rsi_period': 21, 'colour': 'red'})
        assert config.rsi_period == 21

    def test_unknown_weight_factor_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({'composite_weights': {'sentiment': 0.5}})

    def test_with_overrides(self):
        config = EngineConfig().with_overrides(max_candles=50)
        assert config.max_candles == 50
        assert EngineConfig().max_candles == 200


class TestFeed:
    """Test the static feed and CSV loading"""

    def test_timeframe_to_ms(self):
        assert timeframe_to_ms('1m') == 60_000
        assert timeframe_to_ms('15m') == 900_000
        assert timeframe_to_ms('4h') == 14_400_000
        assert timeframe_to_ms('1d') == 86_400_000

    @pytest.mark.parametrize('bad', ['', 'm', '0m', '5x', 'fifteen'])
    def test_invalid_timeframe(self, bad):
        with pytest.raises(ValueError):
            timeframe_to_ms(bad)

    def test_static_feed_limit(self):
        feed = StaticCandleFeed()
        candles = make_uptrend(50)
        feed.add('ETH/USDT', '5m', candles, taker_buy_volumes=[1.0] * 50)

        batch = asyncio.run(feed.fetch_history('ETH/USDT', '5m', 20))

        assert batch.candles == candles[-20:]
        assert len(batch.taker_buy_volumes) == 20

    def test_static_feed_missing(self):
        batch = asyncio.run(StaticCandleFeed().fetch_history('ETH/USDT', '5m', 20))
        assert batch.candles == []
        assert asyncio.run(StaticCandleFeed().fetch_daily('ETH/USDT')) == []

    def test_load_csv(self, tmp_path):
        candles = make_uptrend(10)
        df = candles_to_frame(candles)
        df['taker_buy_volume'] = 600.0
        path = tmp_path / 'candles.csv'
        df.iloc[::-1].to_csv(path, index=False)

        batch = load_candles_csv(path)

        assert batch.candles == candles
        assert batch.taker_buy_volumes == [600.0] * 10

    def test_load_csv_missing_columns(self, tmp_path):
        path = tmp_path / 'bad.csv'
        pd.DataFrame({'time': [1, 2], 'close': [1.0, 2.0]}).to_csv(path, index=False)

        with pytest.raises(ValueError):
            load_candles_csv(path)
