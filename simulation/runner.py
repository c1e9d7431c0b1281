"""Simulation runner: the deterministic tick loop.

Lifecycle:
    1. Build the clock, pipeline and portfolio from the frozen config.
    2. For each tick:
        a. Materialize the event source batch, ordered by token id.
        b. Drop malformed observations (data-quality warning).
        c. Score every observation and record it in the ledger.
        d. Evaluate exits for tokens with an open position; record trades.
        e. Offer remaining capacity to admitted observations, ascending.
        f. Check portfolio invariants.
    3. Force-close what is still open at the last observed price and record
       the run summary.

The portfolio has exactly one writer (this loop). Ledger failures never
reach the loop: the ledger is always wrapped in ``SafeLedger``.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone

from models.config import SimulationConfig
from models.decision import ScoreCard
from models.log import RunResult, TickStats
from models.observation import Observation
from models.position import Trade
from simulation.clock import SimulationClock, Tick
from simulation.event_source import EventSource
from simulation.filters import FilterPipeline
from simulation.ledger import InMemoryLedger, SafeLedger, TradeLedger
from simulation.portfolio_manager import PortfolioManager

logger = logging.getLogger(__name__)


class SimulationRunner:
    """Drives one run of the strategy over an event source."""

    def __init__(
        self,
        config: SimulationConfig,
        source: EventSource,
        ledger: TradeLedger | None = None,
        run_name: str = "simulation",
    ) -> None:
        self._config = config
        self._source = source
        if not isinstance(ledger, SafeLedger):
            ledger = SafeLedger(ledger or InMemoryLedger())
        self._ledger = ledger
        self._run_name = run_name
        self._clock = SimulationClock.from_config(config.run)
        self._pipeline = FilterPipeline(config)
        self._portfolio = PortfolioManager(config)

        self._observations = 0
        self._malformed = 0
        self._rejections: Counter[str] = Counter()
        self._entry_outcomes: Counter[str] = Counter()
        self._tick_stats: list[TickStats] = []
        self._has_run = False

    @property
    def portfolio(self) -> PortfolioManager:
        return self._portfolio

    @property
    def clock(self) -> SimulationClock:
        return self._clock

    def run(self) -> RunResult:
        """Execute every tick and return the run's outcome.

        A runner executes once; build a new runner (and source) to replay.
        """
        if self._has_run:
            raise RuntimeError("SimulationRunner.run() may only be called once.")
        self._has_run = True

        started_at = datetime.now(timezone.utc)
        logger.info(
            "Starting simulation '%s': %d tick(s) from %s, seed %d.",
            self._run_name,
            len(self._clock),
            self._clock.ticks()[0].timestamp.isoformat(),
            self._config.run.seed,
        )

        for tick in self._clock:
            self._run_tick(tick)

        final_trades = self._portfolio.close_all(at=self._clock.final_tick.timestamp)
        for trade in final_trades:
            self._ledger.record_trade(trade)
        if final_trades:
            logger.info("Force-closed %d position(s) at end of run.", len(final_trades))

        finished_at = datetime.now(timezone.utc)
        result = RunResult(
            run_name=self._run_name,
            config=self._config,
            started_at=started_at,
            finished_at=finished_at,
            tick_stats=self._tick_stats,
            observations=self._observations,
            malformed_observations=self._malformed,
            rejections_by_reason=dict(self._rejections),
            entry_outcomes=dict(self._entry_outcomes),
            trades=self._portfolio.get_trade_history(),
            final_portfolio=self._portfolio.snapshot(),
        )
        summary = result.summary()
        self._ledger.record_run_summary(started_at, finished_at, summary)
        if not self._ledger.flush():
            logger.warning(
                "%d ledger record(s) could not be persisted; in-memory results are complete.",
                self._ledger.pending,
            )
        result.ledger_failures = self._ledger.failures

        logger.info(
            "Simulation '%s' complete: %d trade(s), win rate %.0f%%, return %+.2f%%.",
            self._run_name,
            summary.total_trades,
            summary.win_rate * 100,
            summary.return_pct,
        )
        return result

    # ------------------------------------------------------------------
    # Tick processing
    # ------------------------------------------------------------------

    def _run_tick(self, tick: Tick) -> None:
        batch = self._source.next(tick)
        stats = TickStats(tick=tick.index, timestamp=tick.timestamp)

        scored: list[tuple[Observation, ScoreCard]] = []
        for obs in sorted(batch, key=lambda o: o.token_id):
            issues = obs.data_quality_issues()
            if issues:
                stats.malformed += 1
                logger.warning(
                    "Tick %d: skipping malformed observation for %s: %s",
                    tick.index,
                    obs.token_id,
                    "; ".join(issues),
                )
                continue
            card = self._pipeline.engine.score(obs)
            scored_obs = obs.with_score(card.value)
            self._ledger.record_event(scored_obs)
            scored.append((scored_obs, card))
        stats.observations = len(scored)
        self._observations += len(scored)
        self._malformed += stats.malformed

        # Exits first: closed positions free capacity for this tick's entries.
        exit_evaluated: set[str] = set()
        for obs, _ in scored:
            if not self._portfolio.has_open_position(obs.token_id):
                continue
            exit_evaluated.add(obs.token_id)
            trade: Trade | None = self._portfolio.tick(obs)
            if trade is not None:
                stats.closed += 1
                self._ledger.record_trade(trade)

        for obs, card in scored:
            if obs.token_id in exit_evaluated:
                continue
            decision = self._pipeline.evaluate(obs, card)
            if not decision.admitted:
                self._rejections[decision.primary_reason.value] += 1
                continue
            stats.admitted += 1
            result = self._portfolio.evaluate(obs, decision)
            self._entry_outcomes[result.status] += 1
            if result.status == "opened":
                stats.opened += 1
            else:
                logger.debug("Tick %d: %s not opened: %s", tick.index, obs.token_id, result.status)

        self._portfolio.check_invariants()

        stats.open_positions = len(self._portfolio.open_token_ids())
        stats.available_capital = self._portfolio.available_capital
        stats.committed_capital = self._portfolio.committed_capital
        self._tick_stats.append(stats)
        logger.debug(
            "Tick %d: %d obs, %d admitted, %d opened, %d closed, %d open.",
            tick.index,
            stats.observations,
            stats.admitted,
            stats.opened,
            stats.closed,
            stats.open_positions,
        )
