"""Seeded generative model of newly launched tokens.

Each token follows its own trajectory: a bounded log-space random walk on
market cap, a logistic holder growth curve, a drifting dev-wallet
concentration, a probabilistic graduation (liquidity) event and a small
per-tick chance of a rug. All randomness comes from one ``random.Random``
seeded from the run config, so the same seed and tick sequence always yield
the same observation stream.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass

from models.config import SimulationConfig
from models.observation import Observation
from simulation.clock import Tick
from simulation.event_source import EventSource, register

logger = logging.getLogger(__name__)

TOKEN_SUPPLY = 1_000_000_000  # Fixed supply, pump.fun style


@dataclass
class _TokenState:
    token_id: str
    birth_tick: int
    log_market_cap: float
    prev_log_market_cap: float
    drift: float
    volatility: float
    holders: int
    holder_capacity: int
    holder_midpoint: float
    dev_hold_pct: float
    dev_trend: float
    liquidity_ratio: float
    mint_upgradeable: bool
    freeze_authority: bool
    dev_known_rugger: bool
    liquidity_multiplier: float = 1.0
    graduated: bool = False
    supply_increase: bool = False
    retired: bool = False

    @property
    def market_cap(self) -> float:
        return math.exp(self.log_market_cap)


@register("synthetic")
class SyntheticEventSource(EventSource):
    """Generates token observations from a seeded random model."""

    def __init__(self, config: SimulationConfig, seed: int | None = None) -> None:
        super().__init__(config)
        self._params = config.synthetic
        self._seed = config.run.seed if seed is None else seed
        self._rng = random.Random(self._seed)
        self._tokens: dict[str, _TokenState] = {}
        self._spawned = 0

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def live_tokens(self) -> int:
        return len(self._tokens)

    def reset(self) -> None:
        """Reseed and forget every token so the stream can be replayed."""
        self._rng = random.Random(self._seed)
        self._tokens.clear()
        self._spawned = 0
        self._last_tick = None

    # ------------------------------------------------------------------
    # Tick production
    # ------------------------------------------------------------------

    def _observe(self, tick: Tick) -> list[Observation]:
        for state in self._tokens.values():
            self._evolve(state, tick.index)

        arrivals = self._poisson(self._params.arrival_rate)
        capacity = self._params.max_live_tokens - len(self._tokens)
        for _ in range(min(arrivals, max(capacity, 0))):
            state = self._spawn(tick.index)
            self._tokens[state.token_id] = state

        observations = [self._snapshot(state, tick) for state in self._tokens.values()]

        retired = [token_id for token_id, state in self._tokens.items() if state.retired]
        for token_id in retired:
            del self._tokens[token_id]
        if retired:
            logger.debug("Tick %d: retired %d token(s).", tick.index, len(retired))

        return observations

    def _spawn(self, tick_index: int) -> _TokenState:
        p = self._params
        rng = self._rng
        self._spawned += 1
        log_cap = rng.uniform(
            math.log(p.initial_market_cap_min), math.log(p.initial_market_cap_max)
        )
        return _TokenState(
            token_id=f"TKN{self._spawned:06d}",
            birth_tick=tick_index,
            log_market_cap=log_cap,
            prev_log_market_cap=log_cap,
            drift=rng.uniform(p.drift_min, p.drift_max),
            volatility=rng.uniform(p.volatility_min, p.volatility_max),
            holders=rng.randint(1, p.initial_holders_max),
            holder_capacity=rng.randint(p.holder_capacity_min, p.holder_capacity_max),
            holder_midpoint=rng.uniform(0.0, p.token_lifetime_ticks / 3),
            dev_hold_pct=rng.uniform(p.initial_dev_hold_min, p.initial_dev_hold_max),
            dev_trend=rng.uniform(p.dev_trend_min, p.dev_trend_max),
            liquidity_ratio=rng.uniform(p.liquidity_ratio_min, p.liquidity_ratio_max),
            mint_upgradeable=rng.random() < p.upgradeable_probability,
            freeze_authority=rng.random() < p.freeze_authority_probability,
            dev_known_rugger=rng.random() < p.known_rugger_probability,
        )

    def _evolve(self, state: _TokenState, tick_index: int) -> None:
        p = self._params
        rng = self._rng
        age = tick_index - state.birth_tick
        state.prev_log_market_cap = state.log_market_cap

        # Rug: market cap crash, dev wallet jump and a supply increase flag.
        if rng.random() < p.rug_probability:
            state.log_market_cap += math.log(rng.uniform(0.1, 0.4))
            state.dev_hold_pct = min(1.0, state.dev_hold_pct + rng.uniform(0.1, 0.3))
            state.supply_increase = True
        else:
            state.log_market_cap += state.drift + state.volatility * rng.gauss(0.0, 1.0)
            state.supply_increase = False
            state.dev_hold_pct += state.dev_trend + rng.gauss(0.0, p.dev_noise)

        if (
            not state.graduated
            and state.market_cap >= p.graduation_market_cap
            and rng.random() < p.graduation_probability
        ):
            state.graduated = True
            state.liquidity_multiplier = p.graduation_liquidity_multiplier
            state.log_market_cap += math.log1p(rng.uniform(0.0, p.graduation_price_spike_max))

        state.log_market_cap = min(
            max(state.log_market_cap, math.log(p.market_cap_floor)),
            math.log(p.market_cap_ceiling),
        )
        state.dev_hold_pct = min(max(state.dev_hold_pct, 0.0), 1.0)

        curve = state.holder_capacity / (
            1.0 + math.exp(-p.holder_growth_rate * (age - state.holder_midpoint))
        )
        state.holders = max(state.holders, int(curve))

        if age >= p.token_lifetime_ticks or state.market_cap <= p.market_cap_floor:
            state.retired = True

    def _snapshot(self, state: _TokenState, tick: Tick) -> Observation:
        market_cap = state.market_cap
        return Observation(
            token_id=state.token_id,
            timestamp=tick.timestamp,
            market_cap_usd=market_cap,
            dev_hold_pct=state.dev_hold_pct,
            liquidity_usd=market_cap * state.liquidity_ratio * state.liquidity_multiplier,
            holders=state.holders,
            mint_upgradeable=state.mint_upgradeable,
            freeze_authority=state.freeze_authority,
            momentum=(
                state.log_market_cap - state.prev_log_market_cap
                > self._params.momentum_threshold
            ),
            graduation=state.graduated,
            supply_increase=state.supply_increase,
            dev_known_rugger=state.dev_known_rugger,
            price_usd=market_cap / TOKEN_SUPPLY,
        )

    def _poisson(self, rate: float) -> int:
        """Draw from Poisson(*rate*) with Knuth's method."""
        threshold = math.exp(-rate)
        count = 0
        product = self._rng.random()
        while product > threshold:
            count += 1
            product *= self._rng.random()
        return count
