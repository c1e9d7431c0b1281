"""Scoring engine: observation -> desirability score and hard-filter verdicts.

``ScoringEngine.score`` is a pure function of the observation and the
(frozen) config. The score rewards low dev concentration, a broad holder
base, a market cap inside the entry band, liquidity and momentum. Hard
filters are reported separately and reject regardless of the score.
"""

from __future__ import annotations

from models.config import SimulationConfig
from models.decision import RejectReason, ScoreCard
from models.observation import Observation


class ScoringEngine:
    """Maps one observation to a ``ScoreCard``."""

    def __init__(self, config: SimulationConfig) -> None:
        self._entry = config.entry
        self._weights = config.scoring

    def score(self, obs: Observation) -> ScoreCard:
        failures = self.hard_filter_failures(obs)
        if obs.dev_known_rugger:
            return ScoreCard(value=0.0, failed_filters=failures)

        value = (
            self._weights.base
            + self._holder_points(obs.holders)
            + self._dev_hold_points(obs.dev_hold_pct)
            + self._liquidity_points(obs.liquidity_usd)
            + self._market_cap_points(obs.market_cap_usd)
            + self._flag_points(obs)
        )
        return ScoreCard(
            value=min(max(value, 0.0), 100.0),
            failed_filters=failures,
        )

    # ------------------------------------------------------------------
    # Hard filters
    # ------------------------------------------------------------------

    def hard_filter_failures(self, obs: Observation) -> tuple[RejectReason, ...]:
        """Every hard filter *obs* fails, rug signals first."""
        entry = self._entry
        failures: list[RejectReason] = []

        if obs.mint_upgradeable:
            failures.append(RejectReason.MINT_UPGRADEABLE)
        if obs.freeze_authority:
            failures.append(RejectReason.FREEZE_AUTHORITY)
        if obs.supply_increase:
            failures.append(RejectReason.SUPPLY_INCREASE)
        if obs.dev_known_rugger:
            failures.append(RejectReason.KNOWN_RUGGER)

        if obs.market_cap_usd > entry.rug_zone_market_cap_usd:
            failures.append(RejectReason.MARKET_CAP_RUG_ZONE)
        elif obs.market_cap_usd > entry.max_market_cap_usd:
            failures.append(RejectReason.MARKET_CAP_ABOVE_BAND)
        elif obs.market_cap_usd < entry.min_market_cap_usd:
            failures.append(RejectReason.MARKET_CAP_BELOW_BAND)

        if obs.holders < entry.min_holders:
            failures.append(RejectReason.LOW_HOLDERS)
        if obs.dev_hold_pct >= entry.max_dev_hold_pct:
            failures.append(RejectReason.DEV_HOLD_TOO_HIGH)
        if obs.liquidity_usd < entry.min_liquidity_usd:
            failures.append(RejectReason.LOW_LIQUIDITY)
        if entry.require_momentum_or_graduation and not (obs.momentum or obs.graduation):
            failures.append(RejectReason.NO_MOMENTUM)

        return tuple(failures)

    # ------------------------------------------------------------------
    # Score components
    # ------------------------------------------------------------------

    def _holder_points(self, holders: int) -> float:
        # Linear up to saturation above the minimum, shortfall penalty below it.
        minimum = self._entry.min_holders
        if holders < minimum:
            return -(minimum - holders) * self._weights.holder_shortfall_penalty
        span = self._entry.holder_saturation - minimum
        return self._weights.holder_bonus_max * min(holders - minimum, span) / span

    def _dev_hold_points(self, dev_hold_pct: float) -> float:
        w = self._weights
        if dev_hold_pct < w.low_dev_hold_pct:
            return w.low_dev_hold_bonus
        penalty = 0.0
        if dev_hold_pct > w.high_dev_hold_pct:
            penalty = (dev_hold_pct - w.high_dev_hold_pct) * 100 * w.high_dev_hold_penalty_per_point
        if dev_hold_pct >= self._entry.max_dev_hold_pct:
            penalty = max(penalty, w.over_cap_dev_hold_penalty)
        return -penalty

    def _liquidity_points(self, liquidity_usd: float) -> float:
        w = self._weights
        return min(liquidity_usd / w.liquidity_bonus_divisor, w.liquidity_bonus_max)

    def _market_cap_points(self, market_cap_usd: float) -> float:
        if self._entry.min_market_cap_usd <= market_cap_usd <= self._entry.max_market_cap_usd:
            return self._weights.market_cap_band_bonus
        return -self._weights.market_cap_out_of_band_penalty

    def _flag_points(self, obs: Observation) -> float:
        w = self._weights
        points = 0.0
        if obs.momentum:
            points += w.momentum_bonus
        if obs.graduation:
            points += w.graduation_bonus
        if obs.mint_upgradeable:
            points -= w.upgradeable_penalty
        if obs.freeze_authority:
            points -= w.freeze_authority_penalty
        if obs.supply_increase:
            points -= w.supply_increase_penalty
        return points
