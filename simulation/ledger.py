"""Trade ledger: persistence of observations, trades and the run summary.

The simulation treats the ledger as fire-and-forget. ``SafeLedger`` wraps any
ledger so that a failing write becomes a warning plus a backlog entry that is
replayed on the next call, instead of an exception in the tick loop.

``JsonFileLedger`` writes one directory per run::

    {output_dir}/{run_name}/
    ├── config.yaml        (optional copy of the source config)
    ├── events.jsonl       (one scored observation per line)
    ├── trades.jsonl       (one closed trade per line)
    └── run_summary.json
"""

from __future__ import annotations

import json
import logging
import shutil
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from models.log import RunSummary
from models.observation import Observation
from models.position import Trade

logger = logging.getLogger(__name__)


class TradeLedger(ABC):
    """Receives finalized records for external persistence."""

    @abstractmethod
    def record_event(self, observation: Observation) -> None:
        """Persist one scored observation."""

    @abstractmethod
    def record_trade(self, trade: Trade) -> None:
        """Persist one closed trade."""

    @abstractmethod
    def record_run_summary(
        self,
        start_time: datetime,
        end_time: datetime,
        summary: RunSummary | None = None,
    ) -> None:
        """Persist the run's start/finish timestamps and optional metrics."""


class InMemoryLedger(TradeLedger):
    """Keeps every record in lists. Useful for tests and notebooks."""

    def __init__(self) -> None:
        self.events: list[Observation] = []
        self.trades: list[Trade] = []
        self.run_summaries: list[dict[str, Any]] = []

    def record_event(self, observation: Observation) -> None:
        self.events.append(observation)

    def record_trade(self, trade: Trade) -> None:
        self.trades.append(trade)

    def record_run_summary(
        self,
        start_time: datetime,
        end_time: datetime,
        summary: RunSummary | None = None,
    ) -> None:
        self.run_summaries.append(
            {"start_time": start_time, "end_time": end_time, "summary": summary}
        )


class JsonFileLedger(TradeLedger):
    """Writes records as JSON under a per-run directory.

    The directory is created lazily on the first write; an existing
    directory is never reused (see ``_unique_run_dir``).
    """

    def __init__(
        self,
        output_dir: str | Path,
        run_name: str,
        config_yaml_path: str | Path | None = None,
    ) -> None:
        self._run_dir = _unique_run_dir(Path(output_dir), run_name)
        self._config_yaml_path = config_yaml_path
        self._initialized = False

    @property
    def run_dir(self) -> Path:
        return self._run_dir

    def record_event(self, observation: Observation) -> None:
        self._append_jsonl("events.jsonl", observation.model_dump(mode="json"))

    def record_trade(self, trade: Trade) -> None:
        self._append_jsonl("trades.jsonl", trade.model_dump(mode="json"))

    def record_run_summary(
        self,
        start_time: datetime,
        end_time: datetime,
        summary: RunSummary | None = None,
    ) -> None:
        self._ensure_run_dir()
        payload: dict[str, Any] = {
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
        }
        if summary is not None:
            payload["summary"] = summary.model_dump(mode="json")
        _write_json(self._run_dir / "run_summary.json", payload)
        logger.info("Run summary written to %s", self._run_dir)

    def _ensure_run_dir(self) -> None:
        if self._initialized:
            return
        self._run_dir.mkdir(parents=True, exist_ok=True)
        if self._config_yaml_path is not None:
            dest = self._run_dir / "config.yaml"
            shutil.copy2(self._config_yaml_path, dest)
            logger.info("Copied config to %s", dest)
        self._initialized = True

    def _append_jsonl(self, filename: str, record: dict[str, Any]) -> None:
        self._ensure_run_dir()
        with (self._run_dir / filename).open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record) + "\n")


class SafeLedger(TradeLedger):
    """Failure-tolerant wrapper around another ledger.

    A write that raises is logged as a warning and queued. Queued writes are
    retried, oldest first, before each new write and on ``flush``; a retry
    that fails again stops the replay and keeps the remainder queued.
    """

    def __init__(self, inner: TradeLedger) -> None:
        self._inner = inner
        self._backlog: deque[tuple[str, Callable[[], None]]] = deque()
        self.failures = 0

    @property
    def inner(self) -> TradeLedger:
        return self._inner

    @property
    def pending(self) -> int:
        return len(self._backlog)

    def record_event(self, observation: Observation) -> None:
        self._submit(
            f"event {observation.token_id}@{observation.timestamp.isoformat()}",
            lambda: self._inner.record_event(observation),
        )

    def record_trade(self, trade: Trade) -> None:
        self._submit(f"trade {trade.token_id}", lambda: self._inner.record_trade(trade))

    def record_run_summary(
        self,
        start_time: datetime,
        end_time: datetime,
        summary: RunSummary | None = None,
    ) -> None:
        self._submit(
            "run summary",
            lambda: self._inner.record_run_summary(start_time, end_time, summary),
        )

    def flush(self) -> bool:
        """Retry queued writes. Returns ``True`` when the backlog is empty."""
        while self._backlog:
            label, write = self._backlog[0]
            if not self._attempt(label, write):
                return False
            self._backlog.popleft()
        return True

    def _submit(self, label: str, write: Callable[[], None]) -> None:
        if self.flush() and self._attempt(label, write):
            return
        self._backlog.append((label, write))

    def _attempt(self, label: str, write: Callable[[], None]) -> bool:
        try:
            write()
        except Exception as exc:
            self.failures += 1
            logger.warning("Ledger write failed for %s: %s (%d pending)", label, exc, self.pending)
            return False
        return True


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _unique_run_dir(output_dir: Path, run_name: str) -> Path:
    """Return a run directory that does not already exist.

    If ``output_dir/run_name`` is free, use it directly (first run keeps
    a clean name).  Otherwise append an incrementing suffix:
    ``run_name_001``, ``run_name_002``, etc.
    """
    candidate = output_dir / run_name
    if not candidate.exists():
        return candidate

    idx = 1
    while True:
        candidate = output_dir / f"{run_name}_{idx:03d}"
        if not candidate.exists():
            return candidate
        idx += 1


def _write_json(path: Path, data: Any) -> None:
    """Write *data* as pretty-printed JSON to *path*."""
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
