"""Portfolio state models."""

from pydantic import BaseModel

from models.position import Position


class PortfolioSnapshot(BaseModel):
    """Capital and open positions at a tick boundary.

    Produced by the portfolio manager; positions are copies, so mutating a
    snapshot never touches live state.
    """

    total_capital: float
    available_capital: float
    committed_capital: float
    realized_pnl: float
    open_positions: dict[str, Position]
    closed_trades: int

    @property
    def equity(self) -> float:
        """Available plus committed capital (open positions at cost)."""
        return self.available_capital + self.committed_capital
