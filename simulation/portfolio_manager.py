"""Portfolio manager: capital accounting and the open-position set.

The manager owns the canonical portfolio state for one run. Entry attempts
are all-or-nothing: a position is opened at exactly the per-trade cap, or the
attempt returns a non-``opened`` ``EntryResult`` and nothing changes. Exit
decisions are delegated to the position lifecycle; a closing verdict settles
the position into an immutable ``Trade``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from models.config import SimulationConfig
from models.decision import AdmissionDecision, EntryResult, ExitDecision
from models.observation import Observation
from models.portfolio import PortfolioSnapshot
from models.position import Position, Trade
from simulation.lifecycle import PositionLifecycle

logger = logging.getLogger(__name__)

# Tolerance for float comparisons in capital checks.
_EPS = 1e-9


class PortfolioManager:
    """Stateful owner of capital, open positions and closed trades.

    Instantiate one ``PortfolioManager`` per run. Only the tick loop should
    call the mutating methods.
    """

    def __init__(self, config: SimulationConfig, lifecycle: PositionLifecycle | None = None) -> None:
        self._config = config.portfolio
        self._lifecycle = lifecycle or PositionLifecycle(config)
        self._available: float = config.portfolio.bankroll
        self._positions: dict[str, Position] = {}
        self._traded_tokens: set[str] = set()
        self._trade_history: list[Trade] = []
        self._realized_pnl: float = 0.0

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def available_capital(self) -> float:
        return self._available

    @property
    def committed_capital(self) -> float:
        return sum(p.capital for p in self._positions.values())

    def has_open_position(self, token_id: str) -> bool:
        return token_id in self._positions

    def open_token_ids(self) -> list[str]:
        """Tokens with an open position, ascending."""
        return sorted(self._positions)

    def get_trade_history(self) -> list[Trade]:
        """Return the full list of closed trades so far."""
        return list(self._trade_history)

    def snapshot(self) -> PortfolioSnapshot:
        """Return a copy of the current portfolio state."""
        return PortfolioSnapshot(
            total_capital=self._config.bankroll,
            available_capital=self._available,
            committed_capital=self.committed_capital,
            realized_pnl=self._realized_pnl,
            open_positions={
                token_id: position.model_copy()
                for token_id, position in sorted(self._positions.items())
            },
            closed_trades=len(self._trade_history),
        )

    def evaluate(self, obs: Observation, decision: AdmissionDecision) -> EntryResult:
        """Act on an admission decision for *obs*.

        Rejected observations and tokens that already hold (or, without
        re-entry, already held) a position are turned away; everything else
        goes to ``open``.
        """
        if not decision.admitted:
            reasons = ", ".join(r.value for r in decision.reasons)
            return EntryResult(status="rejected", token_id=obs.token_id, message=reasons)
        return self.open(obs)

    def open(self, obs: Observation) -> EntryResult:
        """Open a position in *obs*'s token at exactly the per-trade cap.

        Returns a non-``opened`` result, leaving state untouched, when the
        token is already held, concurrency is exhausted or capital is short.
        """
        token_id = obs.token_id
        cap = self._config.per_trade_cap

        if token_id in self._positions:
            return EntryResult(
                status="already_open",
                token_id=token_id,
                message=f"{token_id} already has an open position.",
            )
        if token_id in self._traded_tokens and not self._config.allow_reentry:
            return EntryResult(
                status="already_traded",
                token_id=token_id,
                message=f"{token_id} was already traded this run.",
            )
        if len(self._positions) >= self._config.max_positions:
            return EntryResult(
                status="capacity_exhausted",
                token_id=token_id,
                message=f"{len(self._positions)}/{self._config.max_positions} positions open.",
            )
        if self._available + _EPS < cap:
            return EntryResult(
                status="insufficient_capital",
                token_id=token_id,
                message=f"Need {cap:.4f}, available {self._available:.4f}.",
            )
        # Realized profit can push available capital above the bankroll;
        # committed capital stays within it regardless.
        committed = self.committed_capital
        if committed + cap > self._config.bankroll + _EPS:
            return EntryResult(
                status="insufficient_capital",
                token_id=token_id,
                message=f"Committing {cap:.4f} more would exceed the bankroll "
                f"({committed:.4f}/{self._config.bankroll:.4f} committed).",
            )

        usd_in = cap * self._config.sol_usd_price
        position = Position(
            token_id=token_id,
            entry_price=obs.price_usd,
            quantity=usd_in / obs.price_usd,
            capital=cap,
            usd_in=usd_in,
            opened_at=obs.timestamp,
            entry_score=obs.score if obs.score is not None else 0.0,
            entry_dev_hold_pct=obs.dev_hold_pct,
            entry_liquidity_usd=obs.liquidity_usd,
            last_price=obs.price_usd,
            last_seen_at=obs.timestamp,
            last_graduation=obs.graduation,
        )
        self._available -= cap
        self._positions[token_id] = position
        self._traded_tokens.add(token_id)

        logger.info(
            "Opened %s: %.4f @ $%.10f (score %.1f, %d open)",
            token_id,
            cap,
            position.entry_price,
            position.entry_score,
            len(self._positions),
        )
        return EntryResult(status="opened", token_id=token_id, position=position.model_copy())

    def tick(self, obs: Observation) -> Trade | None:
        """Feed *obs* to the open position in its token.

        Returns the settled ``Trade`` when the lifecycle closes the position,
        else ``None``.

        Raises ``KeyError`` if the token has no open position.
        """
        position = self._positions.get(obs.token_id)
        if position is None:
            raise KeyError(f"No open position in '{obs.token_id}'.")

        decision = self._lifecycle.step(position, obs)
        if decision is None:
            return None
        return self._settle(position, decision, closed_at=obs.timestamp)

    def close_all(self, at: datetime | None = None) -> list[Trade]:
        """Force-close every open position at its last observed price.

        Positions close in ascending token order with reason ``end_of_run``.
        """
        trades: list[Trade] = []
        for token_id in self.open_token_ids():
            position = self._positions[token_id]
            decision = self._lifecycle.force_close(position, at)
            trades.append(self._settle(position, decision, closed_at=position.last_seen_at))
        return trades

    def check_invariants(self) -> None:
        """Raise ``RuntimeError`` if any portfolio invariant is broken."""
        cfg = self._config
        if len(self._positions) > cfg.max_positions:
            raise RuntimeError(
                f"{len(self._positions)} open positions exceed the limit of {cfg.max_positions}."
            )
        for token_id, position in self._positions.items():
            if position.token_id != token_id:
                raise RuntimeError(f"Position for '{position.token_id}' filed under '{token_id}'.")
            if position.capital > cfg.per_trade_cap + _EPS:
                raise RuntimeError(
                    f"Position in '{token_id}' commits {position.capital}, above the cap."
                )
            if position.status.is_terminal:
                raise RuntimeError(f"Closed position in '{token_id}' still held.")
        if self.committed_capital > cfg.bankroll + _EPS:
            raise RuntimeError(
                f"Committed capital {self.committed_capital} exceeds bankroll {cfg.bankroll}."
            )
        if self._available < -_EPS:
            raise RuntimeError(f"Available capital is negative ({self._available}).")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _settle(self, position: Position, decision: ExitDecision, closed_at: datetime) -> Trade:
        """Convert a closed *position* into a ``Trade`` and release its capital."""
        pnl = position.capital * decision.return_pct
        trade = Trade(
            token_id=position.token_id,
            entry_price=position.entry_price,
            exit_price=decision.price,
            quantity=position.quantity,
            capital=position.capital,
            usd_in=position.usd_in,
            opened_at=position.opened_at,
            closed_at=closed_at,
            entry_score=position.entry_score,
            pnl=pnl,
            pnl_usd=position.quantity * decision.price - position.usd_in,
            return_pct=decision.return_pct,
            close_reason=decision.reason,
            status=position.status,
        )

        del self._positions[position.token_id]
        self._available += position.capital + pnl
        self._realized_pnl += pnl
        self._trade_history.append(trade)

        logger.info(
            "Closed %s: reason=%s return=%+.1f%% pnl=%+.4f",
            trade.token_id,
            trade.close_reason.value,
            trade.return_pct * 100,
            trade.pnl,
        )
        return trade
