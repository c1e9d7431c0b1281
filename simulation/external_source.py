"""External event source: observations supplied by an outside fetcher.

Live market-data integrations are out of scope. This module defines the
contract they must satisfy (``ObservationFetcher``) and the source that turns
fetched batches into ticks. Whatever the fetcher does about I/O, retries or
timeouts happens before ``fetch`` returns; the batch is fully materialized
before the runner sees it.

``JsonlObservationFetcher`` replays observations recorded in JSON-lines form,
e.g. the ``events.jsonl`` written by ``JsonFileLedger``.
"""

from __future__ import annotations

import json
import logging
from bisect import bisect_left
from datetime import datetime
from pathlib import Path
from typing import Iterable, Protocol

from pydantic import ValidationError

from models.config import SimulationConfig
from models.observation import Observation
from simulation.clock import Tick
from simulation.event_source import EventSource, register

logger = logging.getLogger(__name__)


class ObservationFetcher(Protocol):
    def fetch(self, window_start: datetime, window_end: datetime) -> Iterable[Observation]:
        """Return observations with ``window_start <= timestamp < window_end``."""
        ...


@register("external")
class ExternalEventSource(EventSource):
    """Adapts an ``ObservationFetcher`` to the tick-driven source interface.

    For each tick the fetcher is asked for the tick's window. When a token
    appears more than once in a window only its latest observation is kept.
    """

    def __init__(self, config: SimulationConfig, fetcher: ObservationFetcher) -> None:
        super().__init__(config)
        self._fetcher = fetcher

    def _observe(self, tick: Tick) -> list[Observation]:
        batch = list(self._fetcher.fetch(tick.timestamp, tick.window_end))
        latest: dict[str, Observation] = {}
        for obs in batch:
            current = latest.get(obs.token_id)
            if current is None or obs.timestamp >= current.timestamp:
                latest[obs.token_id] = obs
        if len(latest) < len(batch):
            logger.debug(
                "Tick %d: collapsed %d observations to %d tokens.",
                tick.index,
                len(batch),
                len(latest),
            )
        return list(latest.values())


class JsonlObservationFetcher:
    """Serves recorded observations from a JSON-lines file.

    The file is read once; lines that are blank are ignored and lines that
    do not parse as an ``Observation`` are skipped with a warning. Any
    recorded ``score`` is dropped so the run rescores with its own config.
    """

    def __init__(self, path: str | Path) -> None:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Observation feed not found: {path}")
        self._observations = sorted(
            _load_observations(path), key=lambda obs: (obs.timestamp, obs.token_id)
        )
        self._timestamps = [obs.timestamp for obs in self._observations]

    def __len__(self) -> int:
        return len(self._observations)

    def fetch(self, window_start: datetime, window_end: datetime) -> list[Observation]:
        lo = bisect_left(self._timestamps, window_start)
        hi = bisect_left(self._timestamps, window_end, lo)
        return self._observations[lo:hi]


def _load_observations(path: Path) -> list[Observation]:
    observations: list[Observation] = []
    skipped = 0
    with path.open(encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                obs = Observation.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError) as exc:
                skipped += 1
                logger.warning("Skipping line %d of '%s': %s", line_no, path, exc)
                continue
            observations.append(obs.model_copy(update={"score": None}))
    logger.info(
        "Loaded %d observations from '%s' (%d skipped).", len(observations), path, skipped
    )
    return observations
