"""Data models for the launch-token strategy simulator.

Event sources, the scoring/filter pipeline, the portfolio manager and the
trade ledger all import from models.
"""

from models.config import (
    EntryConfig,
    ExitConfig,
    PortfolioConfig,
    RunConfig,
    ScoringWeights,
    SimulationConfig,
    SyntheticFeedConfig,
)
from models.decision import AdmissionDecision, EntryResult, ExitDecision, RejectReason, ScoreCard
from models.log import RunResult, RunSummary, TickStats
from models.observation import Observation
from models.portfolio import PortfolioSnapshot
from models.position import ExitReason, Position, PositionStatus, Trade

__all__ = [
    # config
    "EntryConfig",
    "ExitConfig",
    "PortfolioConfig",
    "RunConfig",
    "ScoringWeights",
    "SimulationConfig",
    "SyntheticFeedConfig",
    # decision
    "AdmissionDecision",
    "EntryResult",
    "ExitDecision",
    "RejectReason",
    "ScoreCard",
    # log
    "RunResult",
    "RunSummary",
    "TickStats",
    # observation
    "Observation",
    # portfolio
    "PortfolioSnapshot",
    # position
    "ExitReason",
    "Position",
    "PositionStatus",
    "Trade",
]
