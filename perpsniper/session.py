"""
Market Session Manager

Owns the per-pair candle series and CVD state, merges live ticks into them,
recomputes the indicator snapshot and publishes a fresh MarketState to every
subscriber.

The manager is an explicit instance created by the host; nothing here is a
module-level global. Pair state lives in a dict keyed by pair.

Timeframe switches refetch full history at the new granularity into staged
sessions and swap them in only once every pair is loaded. A switch that is
superseded by a newer one before it completes is discarded.

States for a pair are built, cached and broadcast while that pair's session
lock is held, so subscribers see them in the order they were built. The lock
is reentrant: a subscriber may apply another tick from inside a callback.
"""

import asyncio
import logging
import threading
from collections import deque
from contextlib import ExitStack
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Sequence

import numpy as np
import pytz

from .analysis.composite import compute_indicators
from .analysis.macro import compute_macro_stats
from .analysis.signals import detect_signals as run_signal_detector
from .config import EngineConfig
from .feed import CandleFeed, timeframe_to_ms
from .indicators import CumulativeVolumeDelta, rsi_series
from .models import AdvancedMetrics, Candle, ChartSignal, MarketState

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, MarketState], None]

VOLATILITY_BARS = 20
LIQUIDATION_HEAT_OFFSET = 20.0
LIQUIDATION_HEAT_SCALE = 50.0
OPEN_INTEREST_PER_BPS = 1000.0
FUNDING_PER_PCT_CHANGE = 0.001
DAILY_LIMIT = 30


def volatility_bps(candles: Sequence[Candle], bars: int = VOLATILITY_BARS) -> float:
    """Mean (high - low) / close over the last `bars` candles, in basis points"""
    window = [c for c in candles[-bars:] if c.close > 0]
    if not window:
        return 0.0
    ranges = np.array([(c.high - c.low) / c.close for c in window], dtype=float)
    return float(ranges.mean() * 10_000)


def series_change_pct(candles: Sequence[Candle]) -> float:
    """First-to-last close change of the held series, in percent"""
    if len(candles) < 2 or candles[0].close == 0:
        return 0.0
    return (candles[-1].close - candles[0].close) / candles[0].close * 100


def derive_metrics(
    candles: Sequence[Candle],
    cvd: CumulativeVolumeDelta,
    change_pct: float,
    btc_dominance: float
) -> AdvancedMetrics:
    """
    Build AdvancedMetrics from the series alone.

    Without a derivatives feed, open interest, funding and liquidation heat
    are proxies derived from bar volatility and the series change.
    """
    vol = volatility_bps(candles)
    heat = (vol - LIQUIDATION_HEAT_OFFSET) / LIQUIDATION_HEAT_SCALE

    return AdvancedMetrics(
        cvd=cvd.cumulative_delta,
        open_interest=vol * OPEN_INTEREST_PER_BPS,
        funding_rate=change_pct * FUNDING_PER_PCT_CHANGE,
        liquidation_heat=max(-1.0, min(1.0, heat)),
        btc_dominance=btc_dominance,
        cvd_history=cvd.snapshot(),
    )


class PairSession:
    """Candle series, CVD and daily context for one pair at one timeframe"""

    def __init__(self, pair: str, timeframe: str, max_candles: int):
        self.pair = pair
        self.timeframe = timeframe
        self.candles: Deque[Candle] = deque(maxlen=max_candles)
        self.cvd = CumulativeVolumeDelta(max_history=max_candles)
        self.daily_candles: List[Candle] = []
        self.is_realtime = False
        self.lock = threading.RLock()

    def load(
        self,
        candles: Sequence[Candle],
        taker_buy_volumes: Optional[Sequence[Optional[float]]] = None
    ):
        """Replace the series with a backfill (caller holds the lock)"""
        self.candles.clear()
        self.candles.extend(candles)
        self.cvd.seed(candles, taker_buy_volumes)
        self.is_realtime = False

    def merge(self, candle: Candle, taker_buy_volume: Optional[float] = None) -> Optional[bool]:
        """
        Merge one tick (caller holds the lock).

        Returns:
            True for a new bar, False for an update of the last bar, None when
            the tick is older than the last bar and was ignored
        """
        last = self.candles[-1] if self.candles else None

        if last is not None and candle.time < last.time:
            return None

        is_new_bar = last is None or candle.time > last.time
        if is_new_bar:
            self.candles.append(candle)
        else:
            self.candles[-1] = candle

        self.cvd.update(candle, taker_buy_volume)
        self.is_realtime = True
        return is_new_bar


class MarketSessionManager:
    """
    Per-pair market state and subscriber fan-out.

    Usage:
        manager = MarketSessionManager(feed, ['BTC/USDT', 'ETH/USDT'])
        unsubscribe = manager.subscribe(on_state)
        await manager.start()
        manager.apply_tick('BTC/USDT', candle)
    """

    def __init__(
        self,
        feed: CandleFeed,
        pairs: Sequence[str],
        config: Optional[EngineConfig] = None,
        timeframe: str = '1m'
    ):
        """
        Args:
            feed: Source of authoritative history
            pairs: Pairs to track
            config: Engine configuration (defaults when omitted)
            timeframe: Initial bar size
        """
        timeframe_to_ms(timeframe)

        self.feed = feed
        self.pairs = list(pairs)
        self.config = config or EngineConfig()
        self.timeframe = timeframe

        self._sessions: Dict[str, PairSession] = {
            pair: self._new_session(pair, timeframe) for pair in self.pairs
        }
        self._states: Dict[str, MarketState] = {}
        self._subscribers: List[Subscriber] = []
        self._lock = threading.RLock()
        self._generation = 0

        self.stats = {
            'ticks_applied': 0,
            'ticks_ignored': 0,
            'bars_completed': 0,
            'states_published': 0,
            'switches_applied': 0,
            'switches_discarded': 0,
        }

        logger.info(
            f"MarketSessionManager initialized ({len(self.pairs)} pairs, timeframe: {timeframe})"
        )

    def _new_session(self, pair: str, timeframe: str) -> PairSession:
        return PairSession(pair, timeframe, self.config.max_candles)

    # ═══════════════════════════════════════════════════════════════════════
    # SUBSCRIBERS
    # ═══════════════════════════════════════════════════════════════════════

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback receiving (pair, MarketState).

        Returns:
            A callable that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Subscriber):
        """Remove a callback; safe to call from inside a notification"""
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _notify(self, pair: str, state: MarketState):
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(pair, state)
            except Exception as e:
                logger.error(f"[{pair}] Subscriber error: {e}", exc_info=True)

    # ═══════════════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════════════

    def get_market_state(self, pair: str) -> Optional[MarketState]:
        """Latest published state for a pair, or None"""
        with self._lock:
            return self._states.get(pair)

    def get_all_states(self) -> Dict[str, MarketState]:
        with self._lock:
            return dict(self._states)

    def get_statistics(self) -> dict:
        with self._lock:
            return self.stats.copy()

    def _count(self, key: str, amount: int = 1):
        with self._lock:
            self.stats[key] += amount

    def _build_state(self, session: PairSession) -> MarketState:
        """Snapshot a session into a MarketState (caller holds session.lock)"""
        candles = tuple(session.candles)
        change_pct = series_change_pct(candles)
        metrics = derive_metrics(candles, session.cvd, change_pct, self.config.btc_dominance)
        price = candles[-1].close

        return MarketState(
            pair=session.pair,
            price=price,
            change_24h=change_pct,
            candles=candles,
            metrics=metrics,
            indicators=compute_indicators(candles, metrics, self.config),
            timeframe=session.timeframe,
            is_realtime=session.is_realtime,
            macro=compute_macro_stats(session.daily_candles, price),
        )

    def _publish(self, session: PairSession, state: MarketState) -> bool:
        """
        Cache and broadcast a state if its session is still the active one
        (caller holds session.lock).
        """
        with self._lock:
            if self._sessions.get(session.pair) is not session:
                logger.debug(f"[{session.pair}] Dropping state from a replaced session")
                return False
            self._states[session.pair] = state
            self.stats['states_published'] += 1

        self._notify(session.pair, state)
        return True

    def _session(self, pair: str) -> PairSession:
        with self._lock:
            session = self._sessions.get(pair)
        if session is None:
            raise KeyError(f"Unknown pair: {pair}")
        return session

    # ═══════════════════════════════════════════════════════════════════════
    # UPDATES
    # ═══════════════════════════════════════════════════════════════════════

    def load_history(
        self,
        pair: str,
        candles: Sequence[Candle],
        taker_buy_volumes: Optional[Sequence[Optional[float]]] = None,
        daily_candles: Optional[Sequence[Candle]] = None
    ) -> Optional[MarketState]:
        """
        Seed a pair from a backfill and publish.

        Returns:
            The published MarketState, or None for an empty backfill
        """
        session = self._session(pair)

        with session.lock:
            if self.config.debug:
                for candle in candles:
                    candle.validate()

            session.load(candles, taker_buy_volumes)
            if daily_candles is not None:
                session.daily_candles = list(daily_candles)

            if not session.candles:
                logger.warning(f"[{pair}] Empty history - nothing to publish")
                return None

            state = self._build_state(session)
            logger.info(f"[{pair}] Loaded {len(state.candles)} {session.timeframe} candles")
            self._publish(session, state)

        return state

    def apply_tick(
        self,
        pair: str,
        candle: Candle,
        taker_buy_volume: Optional[float] = None,
        is_closed: bool = False,
        timeframe: Optional[str] = None
    ) -> Optional[MarketState]:
        """
        Merge a live tick for the open (or a new) bar and publish.

        A tick with the same time as the last bar replaces it; a newer tick
        appends a bar, evicting the oldest at the cap. Older ticks and ticks
        tagged with an inactive timeframe are ignored.

        Args:
            pair: Trading pair
            candle: The bar as of this tick
            taker_buy_volume: Taker buy volume of the bar, when the feed has it
            is_closed: True when the feed marks the bar as final
            timeframe: Timeframe the tick was produced for

        Returns:
            The published MarketState, or None when the tick was ignored
        """
        session = self._session(pair)

        if timeframe is not None and timeframe != session.timeframe:
            logger.debug(
                f"[{pair}] Dropping {timeframe} tick (active timeframe: {session.timeframe})"
            )
            self._count('ticks_ignored')
            return None

        if self.config.debug:
            candle.validate()

        with session.lock:
            is_new_bar = session.merge(candle, taker_buy_volume)
            if is_new_bar is None:
                logger.warning(
                    f"[{pair}] Ignoring out-of-order tick at {candle.time} "
                    f"(last bar: {session.candles[-1].time})"
                )
                self._count('ticks_ignored')
                return None

            state = self._build_state(session)
            self._count('ticks_applied')

            if is_closed:
                self._count('bars_completed')
                bar_time = datetime.fromtimestamp(candle.time / 1000, tz=pytz.UTC)
                logger.info(
                    f"[{pair}] Bar completed at {bar_time.strftime('%H:%M:%S %Z')} "
                    f"| O: {candle.open:.2f} "
                    f"H: {candle.high:.2f} "
                    f"L: {candle.low:.2f} "
                    f"C: {candle.close:.2f} "
                    f"V: {candle.volume}"
                )
            elif is_new_bar:
                logger.debug(f"[{pair}] New bar at {candle.time} | Open: {candle.open:.2f}")

            if not self._publish(session, state):
                return None

        return state

    def detect_signals(self, pair: str) -> List[ChartSignal]:
        """Run the signal detector over the pair's cached candles"""
        state = self.get_market_state(pair)
        if state is None:
            return []

        closes = [c.close for c in state.candles]
        return run_signal_detector(
            state.candles,
            rsi_series(closes, self.config.rsi_period).tolist(),
            anchor_period=self.config.signal_anchor_period,
            cooldown_bars=self.config.signal_cooldown_bars,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # BACKFILL / TIMEFRAME SWITCH
    # ═══════════════════════════════════════════════════════════════════════

    async def _fetch_session(self, pair: str, timeframe: str) -> PairSession:
        session = self._new_session(pair, timeframe)

        try:
            batch = await self.feed.fetch_history(pair, timeframe, self.config.history_limit)
            daily = await self.feed.fetch_daily(pair, DAILY_LIMIT)
        except Exception as e:
            logger.error(f"[{pair}] Failed to fetch {timeframe} history: {e}", exc_info=True)
            return session

        if self.config.debug:
            for candle in batch.candles:
                candle.validate()

        session.load(batch.candles, batch.taker_buy_volumes)
        session.daily_candles = list(daily)
        return session

    async def _reload(self, timeframe: str) -> bool:
        self._generation += 1
        generation = self._generation

        staged = await asyncio.gather(
            *(self._fetch_session(pair, timeframe) for pair in self.pairs)
        )

        if generation != self._generation:
            logger.debug(f"Discarding superseded {timeframe} refetch (generation {generation})")
            self._count('switches_discarded')
            return False

        # Ticks on the new sessions wait until their backfill state is out
        with ExitStack() as stack:
            for session in staged:
                stack.enter_context(session.lock)

            states = {}
            for session in staged:
                if session.candles:
                    states[session.pair] = self._build_state(session)
                else:
                    logger.warning(f"[{session.pair}] No {timeframe} history - state cleared")

            with self._lock:
                self.timeframe = timeframe
                self._sessions = {session.pair: session for session in staged}
                self._states = dict(states)
                self.stats['states_published'] += len(states)

            for pair, state in states.items():
                self._notify(pair, state)

        return True

    async def start(self) -> bool:
        """Backfill every pair at the active timeframe and publish"""
        logger.info(f"Backfilling {len(self.pairs)} pairs at {self.timeframe}...")
        return await self._reload(self.timeframe)

    async def switch_timeframe(self, timeframe: str) -> bool:
        """
        Refetch every pair at a new timeframe.

        Returns:
            True when the switch was applied, False when a newer switch
            superseded it first

        Raises:
            ValueError for an invalid timeframe
        """
        timeframe_to_ms(timeframe)
        logger.info(f"Switching timeframe {self.timeframe} -> {timeframe}")
        applied = await self._reload(timeframe)
        if applied:
            self._count('switches_applied')
        return applied
