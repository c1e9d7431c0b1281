"""Deterministic simulation clock.

Turns a simulated span and a tick resolution into a finite, strictly
increasing sequence of ticks. Nothing here reads the wall clock, so the same
inputs always produce the same ticks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator

from models.config import RunConfig


@dataclass(frozen=True)
class Tick:
    """One discrete simulated time step covering ``[timestamp, window_end)``."""

    index: int
    timestamp: datetime
    step: timedelta

    @property
    def window_end(self) -> datetime:
        return self.timestamp + self.step


class SimulationClock:
    """Produces the tick sequence for a run."""

    def __init__(self, start: datetime, duration_hours: float, ticks_per_hour: int) -> None:
        if duration_hours <= 0:
            raise ValueError(f"duration_hours must be positive, got {duration_hours}.")
        if ticks_per_hour < 1:
            raise ValueError(f"ticks_per_hour must be at least 1, got {ticks_per_hour}.")
        num_ticks = int(round(duration_hours * ticks_per_hour))
        if num_ticks < 1:
            raise ValueError(
                f"{duration_hours}h at {ticks_per_hour} ticks/hour yields no ticks."
            )

        self._start = start
        self._step = timedelta(seconds=3600 / ticks_per_hour)
        if self._step <= timedelta(0):
            raise ValueError(
                f"ticks_per_hour={ticks_per_hour} is finer than the clock resolution (1 microsecond)."
            )
        self._ticks = tuple(
            Tick(index=i, timestamp=start + i * self._step, step=self._step)
            for i in range(num_ticks)
        )

    @classmethod
    def from_config(cls, run: RunConfig) -> SimulationClock:
        return cls(run.start_time, run.duration_hours, run.ticks_per_hour)

    def ticks(self) -> tuple[Tick, ...]:
        return self._ticks

    @property
    def step(self) -> timedelta:
        return self._step

    @property
    def final_tick(self) -> Tick:
        return self._ticks[-1]

    def __iter__(self) -> Iterator[Tick]:
        return iter(self._ticks)

    def __len__(self) -> int:
        return len(self._ticks)
