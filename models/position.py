"""Position and Trade models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class PositionStatus(str, Enum):
    """Lifecycle states. Everything except ``OPEN`` is terminal."""

    OPEN = "open"
    CLOSED_STOP_LOSS = "closed_stop_loss"
    CLOSED_PROFIT_BAND = "closed_profit_band"
    CLOSED_LIQUIDITY_EVENT = "closed_liquidity_event"
    CLOSED_END_OF_RUN = "closed_end_of_run"

    @property
    def is_terminal(self) -> bool:
        return self is not PositionStatus.OPEN


class ExitReason(str, Enum):
    """Why a position closed."""

    STOP_LOSS = "stop_loss"
    DEV_HOLD_SPIKE = "dev_hold_spike"
    LIQUIDITY_EVENT = "liquidity_event"
    LP_SPIKE = "lp_spike"
    PROFIT_BAND = "profit_band"
    END_OF_RUN = "end_of_run"

    @property
    def status(self) -> PositionStatus:
        return _STATUS_BY_REASON[self]

    @property
    def is_strategic(self) -> bool:
        return self is not ExitReason.END_OF_RUN


_STATUS_BY_REASON = {
    ExitReason.STOP_LOSS: PositionStatus.CLOSED_STOP_LOSS,
    ExitReason.DEV_HOLD_SPIKE: PositionStatus.CLOSED_STOP_LOSS,
    ExitReason.LIQUIDITY_EVENT: PositionStatus.CLOSED_LIQUIDITY_EVENT,
    ExitReason.LP_SPIKE: PositionStatus.CLOSED_LIQUIDITY_EVENT,
    ExitReason.PROFIT_BAND: PositionStatus.CLOSED_PROFIT_BAND,
    ExitReason.END_OF_RUN: PositionStatus.CLOSED_END_OF_RUN,
}


class Position(BaseModel):
    """An open simulated holding in one token.

    Created by ``PortfolioManager.open`` and mutated only by the position
    lifecycle. ``capital`` is in bankroll units (SOL); prices are USD.
    """

    token_id: str
    entry_price: float
    quantity: float
    capital: float
    usd_in: float
    opened_at: datetime
    entry_score: float
    status: PositionStatus = PositionStatus.OPEN

    # Entry context for the exit rules.
    entry_dev_hold_pct: float
    entry_liquidity_usd: float

    # Updated by the lifecycle on every sighting.
    last_price: float
    last_seen_at: datetime
    last_graduation: bool = False

    def return_at(self, price: float) -> float:
        """Fractional return at *price* relative to the entry price."""
        return price / self.entry_price - 1.0


class Trade(BaseModel):
    """Immutable record of a finished position."""

    model_config = ConfigDict(frozen=True)

    token_id: str
    entry_price: float
    exit_price: float
    quantity: float
    capital: float
    usd_in: float
    opened_at: datetime
    closed_at: datetime
    entry_score: float
    pnl: float  # Bankroll units
    pnl_usd: float
    return_pct: float
    close_reason: ExitReason
    status: PositionStatus
