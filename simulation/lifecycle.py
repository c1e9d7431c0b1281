"""Position lifecycle state machine.

A position starts ``OPEN`` and moves to exactly one terminal ``CLOSED_*``
state. Rules are evaluated in priority order each tick and the first match
wins; capital protection comes before profit-taking:

1. stop-loss (return at or below ``-stop_loss_pct``) or a dev-wallet spike;
2. liquidity event (graduation flag newly true, or an LP spike);
3. profit band (return inside ``[profit_band_min, profit_band_max]``).
"""

from __future__ import annotations

import logging
from datetime import datetime

from models.config import SimulationConfig
from models.decision import ExitDecision
from models.observation import Observation
from models.position import ExitReason, Position, PositionStatus

logger = logging.getLogger(__name__)


class PositionLifecycle:
    """Evaluates and applies exit transitions for open positions."""

    def __init__(self, config: SimulationConfig) -> None:
        self._exit = config.exit

    def evaluate(self, position: Position, obs: Observation) -> ExitDecision | None:
        """Return the closing verdict for *obs*, or ``None`` to stay open.

        Pure: *position* is not modified.
        """
        rules = self._exit
        price = obs.price_usd
        ret = position.return_at(price)

        if ret <= -rules.stop_loss_pct:
            return ExitDecision(reason=ExitReason.STOP_LOSS, price=price, return_pct=ret)
        if obs.dev_hold_pct - position.entry_dev_hold_pct > rules.dev_hold_spike_delta:
            return ExitDecision(reason=ExitReason.DEV_HOLD_SPIKE, price=price, return_pct=ret)

        if obs.graduation and not position.last_graduation:
            return ExitDecision(reason=ExitReason.LIQUIDITY_EVENT, price=price, return_pct=ret)
        if (
            rules.lp_spike_multiplier is not None
            and position.entry_liquidity_usd > 0
            and obs.liquidity_usd > position.entry_liquidity_usd * rules.lp_spike_multiplier
        ):
            return ExitDecision(reason=ExitReason.LP_SPIKE, price=price, return_pct=ret)

        if rules.profit_band_min <= ret <= rules.profit_band_max:
            return ExitDecision(reason=ExitReason.PROFIT_BAND, price=price, return_pct=ret)

        return None

    def step(self, position: Position, obs: Observation) -> ExitDecision | None:
        """Evaluate *obs* against *position* and apply the resulting transition.

        Records the sighting (price, time, graduation flag) on the position
        and, on a closing verdict, moves it to the terminal status.

        Raises ``ValueError`` if the position is already closed or *obs*
        belongs to another token.
        """
        self._require_open(position)
        if obs.token_id != position.token_id:
            raise ValueError(
                f"Observation for '{obs.token_id}' applied to position in '{position.token_id}'."
            )

        decision = self.evaluate(position, obs)
        position.last_price = obs.price_usd
        position.last_seen_at = obs.timestamp
        position.last_graduation = obs.graduation
        if decision is not None:
            position.status = decision.reason.status
            logger.debug(
                "%s -> %s (%s, return %.1f%%)",
                position.token_id,
                position.status.value,
                decision.reason.value,
                decision.return_pct * 100,
            )
        return decision

    def force_close(self, position: Position, at: datetime | None = None) -> ExitDecision:
        """Close *position* at its last observed price with reason ``end_of_run``."""
        self._require_open(position)
        if at is not None:
            position.last_seen_at = max(position.last_seen_at, at)
        position.status = PositionStatus.CLOSED_END_OF_RUN
        return ExitDecision(
            reason=ExitReason.END_OF_RUN,
            price=position.last_price,
            return_pct=position.return_at(position.last_price),
        )

    @staticmethod
    def _require_open(position: Position) -> None:
        if position.status.is_terminal:
            raise ValueError(
                f"Position in '{position.token_id}' is already {position.status.value}."
            )
