#!/usr/bin/env python
"""
perpsniper replay - run a CSV candle file through the session manager

The first --warmup bars are loaded as history, the rest are replayed one by
one as closed-bar ticks. Prints the final indicator snapshot, the signal
list and the rule-based verdict.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import yaml

from perpsniper.analysis.advisory import request_verdict
from perpsniper.config import load_config
from perpsniper.feed import StaticCandleFeed, load_candles_csv
from perpsniper.session import MarketSessionManager

logger = logging.getLogger('perpsniper.replay')

DEFAULT_CONFIG = Path(__file__).parent / 'config.yaml'


def load_replay_settings(config_path: Path) -> dict:
    """Read the `replay:` section of config.yaml"""
    if not config_path.exists():
        return {}

    with open(config_path, 'r') as f:
        return (yaml.safe_load(f) or {}).get('replay', {}) or {}


def print_summary(state, signals, verdict):
    """Print the final state of the replay"""
    snap = state.indicators
    print("\n" + "=" * 70)
    print(f"  {state.pair} ({state.timeframe}) | Price: {state.price:.2f} | "
          f"Change: {state.change_24h:+.2f}%")
    print("=" * 70)
    print(f"  EMA 20/50/200:    {snap.ema20:.2f} / {snap.ema50:.2f} / {snap.ema200:.2f}")
    print(f"  RSI:              {snap.rsi:.1f}")
    print(f"  Bollinger:        {snap.bollinger_lower:.2f} - {snap.bollinger_upper:.2f}")
    print(f"  Structure:        {snap.market_structure.value}")
    print(f"  VPA:              {snap.vpa_status.value}")
    print(f"  FVG:              {snap.fvg_price if snap.fvg_price is not None else '-'}")
    print(f"  Order flow:       pressure {snap.order_flow.pressure:.0f}, "
          f"divergence {snap.order_flow.divergence.value}, "
          f"stop hunt {snap.order_flow.stop_hunt.value}")
    print(f"  CVD:              {state.metrics.cvd:.2f}")
    print(f"  Composite score:  {snap.composite_score:+.3f}")

    print(f"\n  Signals ({len(signals)}):")
    for signal in signals:
        print(f"    {signal.time}  {signal.type.value:<4}  {signal.price:.2f}  {signal.label}")

    print(f"\n  Verdict: {verdict.signal.value} -> {verdict.action.value} "
          f"({verdict.confidence:.0f}%)")
    print(f"  {verdict.reasoning}")
    print("=" * 70 + "\n")


async def replay(args, config) -> int:
    batch = load_candles_csv(args.csv)
    if not batch.candles:
        logger.error(f"No candles in {args.csv}")
        return 1

    warmup = max(1, min(args.warmup, len(batch.candles)))
    taker = batch.taker_buy_volumes

    feed = StaticCandleFeed()
    feed.add(
        args.pair,
        args.timeframe,
        batch.candles[:warmup],
        taker[:warmup] if taker is not None else None,
    )

    manager = MarketSessionManager(feed, [args.pair], config=config, timeframe=args.timeframe)
    await manager.start()

    for i in range(warmup, len(batch.candles)):
        manager.apply_tick(
            args.pair,
            batch.candles[i],
            taker_buy_volume=taker[i] if taker is not None else None,
            is_closed=True,
        )

    state = manager.get_market_state(args.pair)
    if state is None:
        logger.error(f"[{args.pair}] No state published")
        return 1

    verdict = await request_verdict(state)
    print_summary(state, manager.detect_signals(args.pair), verdict)
    logger.info(f"Replay statistics: {manager.get_statistics()}")
    return 0


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Replay a candle CSV through the perpsniper engine'
    )
    parser.add_argument(
        'csv',
        type=str,
        help='CSV with time, open, high, low, close, volume[, taker_buy_volume]'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=str(DEFAULT_CONFIG),
        help='Path to config.yaml'
    )
    parser.add_argument(
        '--pair',
        type=str,
        help='Override pair from config'
    )
    parser.add_argument(
        '--timeframe',
        type=str,
        help='Override timeframe from config'
    )
    parser.add_argument(
        '--warmup',
        type=int,
        default=50,
        help='Bars loaded as history before replaying ticks'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        help='Override log level from config'
    )

    args = parser.parse_args()

    config_path = Path(args.config)
    try:
        settings = load_replay_settings(config_path)
        config = load_config(config_path)
    except Exception as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    args.pair = args.pair or settings.get('pair', 'BTC/USDT')
    args.timeframe = args.timeframe or settings.get('timeframe', '1m')
    log_level = args.log_level or settings.get('log_level', 'info')

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        sys.exit(asyncio.run(replay(args, config)))
    except KeyboardInterrupt:
        print("\n\nReplay interrupted")
    except ValueError as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
