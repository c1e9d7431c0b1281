"""Run logging models.

- ``TickStats``: per-tick counters.
- ``RunSummary``: headline metrics handed to the trade ledger.
- ``RunResult``: full in-memory outcome of a run, with the config embedded
  for reproducibility.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime

from pydantic import BaseModel

from models.config import SimulationConfig
from models.portfolio import PortfolioSnapshot
from models.position import Trade


class TickStats(BaseModel):
    """Counters for one tick, taken after the tick settled."""

    tick: int
    timestamp: datetime
    observations: int = 0
    malformed: int = 0
    admitted: int = 0
    opened: int = 0
    closed: int = 0
    open_positions: int = 0
    available_capital: float = 0.0
    committed_capital: float = 0.0


class RunSummary(BaseModel):
    """Headline metrics for a finished run."""

    run_name: str
    seed: int
    started_at: datetime  # Wall clock
    finished_at: datetime  # Wall clock
    sim_start: datetime
    sim_end: datetime
    ticks: int
    observations: int
    malformed_observations: int
    total_trades: int
    winning_trades: int
    win_rate: float
    realized_pnl: float
    initial_capital: float
    final_capital: float
    return_pct: float
    trades_by_reason: dict[str, int]
    rejections_by_reason: dict[str, int]
    entry_outcomes: dict[str, int]


class RunResult(BaseModel):
    """Everything a run produced, kept in memory regardless of ledger health."""

    run_name: str
    config: SimulationConfig
    started_at: datetime
    finished_at: datetime
    tick_stats: list[TickStats] = []
    observations: int = 0
    malformed_observations: int = 0
    rejections_by_reason: dict[str, int] = {}
    entry_outcomes: dict[str, int] = {}
    trades: list[Trade] = []
    final_portfolio: PortfolioSnapshot
    ledger_failures: int = 0

    def summary(self) -> RunSummary:
        initial = self.config.portfolio.bankroll
        final = self.final_portfolio.equity
        winners = sum(1 for t in self.trades if t.pnl > 0)
        by_reason = Counter(t.close_reason.value for t in self.trades)
        return RunSummary(
            run_name=self.run_name,
            seed=self.config.run.seed,
            started_at=self.started_at,
            finished_at=self.finished_at,
            sim_start=self.tick_stats[0].timestamp if self.tick_stats else self.config.run.start_time,
            sim_end=self.tick_stats[-1].timestamp if self.tick_stats else self.config.run.start_time,
            ticks=len(self.tick_stats),
            observations=self.observations,
            malformed_observations=self.malformed_observations,
            total_trades=len(self.trades),
            winning_trades=winners,
            win_rate=winners / len(self.trades) if self.trades else 0.0,
            realized_pnl=self.final_portfolio.realized_pnl,
            initial_capital=initial,
            final_capital=final,
            return_pct=(final - initial) / initial * 100,
            trades_by_reason=dict(sorted(by_reason.items())),
            rejections_by_reason=dict(sorted(self.rejections_by_reason.items())),
            entry_outcomes=dict(sorted(self.entry_outcomes.items())),
        )
