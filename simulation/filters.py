"""Admission pipeline: hard filters first, then the score threshold."""

from __future__ import annotations

from models.config import SimulationConfig
from models.decision import AdmissionDecision, RejectReason, ScoreCard
from models.observation import Observation
from simulation.scoring import ScoringEngine


class FilterPipeline:
    """Turns an observation (and its score card) into an admit/reject decision."""

    def __init__(self, config: SimulationConfig, engine: ScoringEngine | None = None) -> None:
        self._threshold = config.entry.score_threshold
        self._engine = engine or ScoringEngine(config)

    @property
    def engine(self) -> ScoringEngine:
        return self._engine

    def evaluate(self, obs: Observation, card: ScoreCard | None = None) -> AdmissionDecision:
        """Decide whether *obs* is eligible for entry.

        *card* defaults to a fresh score from the engine. Any failed hard
        filter rejects regardless of the score.
        """
        if card is None:
            card = self._engine.score(obs)

        if card.failed_filters:
            return AdmissionDecision(
                token_id=obs.token_id,
                admitted=False,
                score=card.value,
                reasons=card.failed_filters,
            )
        if card.value < self._threshold:
            return AdmissionDecision(
                token_id=obs.token_id,
                admitted=False,
                score=card.value,
                reasons=(RejectReason.SCORE_BELOW_THRESHOLD,),
            )
        return AdmissionDecision(token_id=obs.token_id, admitted=True, score=card.value)
