"""Tests for the external event source and the JSON-lines fetcher."""

import json
from datetime import timedelta

import pytest

from simulation.clock import SimulationClock
from simulation.external_source import ExternalEventSource, JsonlObservationFetcher
from simulation.runner import SimulationRunner


class ListFetcher:
    """Serves a fixed list of observations, filtered by window."""

    def __init__(self, observations):
        self.observations = observations
        self.windows = []

    def fetch(self, window_start, window_end):
        self.windows.append((window_start, window_end))
        return [o for o in self.observations if window_start <= o.timestamp < window_end]


def _ticks(config):
    return SimulationClock.from_config(config.run).ticks()


def test_each_tick_asks_for_its_window(config):
    fetcher = ListFetcher([])
    source = ExternalEventSource(config, fetcher)
    ticks = _ticks(config)[:3]
    for tick in ticks:
        assert source.next(tick) == []
    assert fetcher.windows == [(t.timestamp, t.window_end) for t in ticks]


def test_batch_sorted_by_token(config, make_observation):
    fetcher = ListFetcher(
        [
            make_observation("TKN000003"),
            make_observation("TKN000001"),
            make_observation("TKN000002"),
        ]
    )
    batch = ExternalEventSource(config, fetcher).next(_ticks(config)[0])
    assert [o.token_id for o in batch] == ["TKN000001", "TKN000002", "TKN000003"]


def test_latest_observation_per_token_wins(config, make_observation):
    early = make_observation("TKN000001", market_cap_usd=90_000.0)
    late = early.model_copy(
        update={"timestamp": early.timestamp + timedelta(seconds=30), "market_cap_usd": 120_000.0}
    )
    batch = ExternalEventSource(config, ListFetcher([late, early])).next(_ticks(config)[0])
    assert len(batch) == 1
    assert batch[0].market_cap_usd == 120_000.0


def test_ticks_must_increase(config):
    source = ExternalEventSource(config, ListFetcher([]))
    ticks = _ticks(config)
    source.next(ticks[2])
    with pytest.raises(ValueError, match="strictly increasing"):
        source.next(ticks[1])


class TestJsonlFetcher:
    def _write(self, path, observations, extra_lines=()):
        lines = [json.dumps(o.model_dump(mode="json")) for o in observations]
        lines.extend(extra_lines)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            JsonlObservationFetcher(tmp_path / "missing.jsonl")

    def test_skips_bad_lines(self, tmp_path, make_observation):
        path = tmp_path / "feed.jsonl"
        self._write(
            path,
            [make_observation("TKN000001"), make_observation("TKN000002", minute=1)],
            extra_lines=["", "{not json", json.dumps({"token_id": "TKN000009"})],
        )
        assert len(JsonlObservationFetcher(path)) == 2

    def test_recorded_score_is_dropped(self, tmp_path, make_observation):
        path = tmp_path / "feed.jsonl"
        self._write(path, [make_observation().with_score(91.0)])
        start = make_observation().timestamp
        (obs,) = JsonlObservationFetcher(path).fetch(start, start + timedelta(minutes=1))
        assert obs.score is None

    def test_window_is_half_open(self, tmp_path, make_observation):
        path = tmp_path / "feed.jsonl"
        self._write(path, [make_observation("TKN000001", minute=m) for m in range(3)])
        fetcher = JsonlObservationFetcher(path)
        start = make_observation(minute=0).timestamp
        window = fetcher.fetch(start, start + timedelta(minutes=2))
        assert [o.timestamp for o in window] == [start, start + timedelta(minutes=1)]

    def test_replays_through_source(self, tmp_path, config, make_observation):
        path = tmp_path / "feed.jsonl"
        self._write(
            path,
            [make_observation("TKN000002", minute=1), make_observation("TKN000001", minute=1)],
        )
        source = ExternalEventSource(config, JsonlObservationFetcher(path))
        batches = [source.next(tick) for tick in _ticks(config)[:3]]
        assert batches[0] == []
        assert [o.token_id for o in batches[1]] == ["TKN000001", "TKN000002"]
        assert batches[2] == []

    def test_windows_across_unordered_feed(self, tmp_path, make_observation):
        path = tmp_path / "feed.jsonl"
        minutes = [7, 2, 9, 0, 5, 3, 8, 1, 6, 4]
        self._write(path, [make_observation(f"TKN{m:06d}", minute=m) for m in minutes])
        fetcher = JsonlObservationFetcher(path)
        start = make_observation(minute=0).timestamp

        def window(first, last):
            batch = fetcher.fetch(start + timedelta(minutes=first), start + timedelta(minutes=last))
            return [o.token_id for o in batch]

        assert window(-5, 0) == []
        assert window(3, 6) == ["TKN000003", "TKN000004", "TKN000005"]
        assert window(9, 10) == ["TKN000009"]
        assert window(10, 20) == []
        assert window(4, 4) == []
        assert len(window(-1, 11)) == 10

    def test_naive_feed_timestamps_replay(self, tmp_path, config):
        path = tmp_path / "feed.jsonl"
        record = {
            "token_id": "TKN000001",
            "timestamp": "2024-01-01T00:00:00",
            "market_cap_usd": 100_000.0,
            "dev_hold_pct": 0.05,
            "liquidity_usd": 10_000.0,
            "holders": 300,
            "momentum": True,
            "price_usd": 1.0,
        }
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        short = config.with_overrides(run={"duration_hours": 0.05})
        source = ExternalEventSource(short, JsonlObservationFetcher(path))
        result = SimulationRunner(short, source).run()
        assert result.observations == 1
        assert [t.token_id for t in result.trades] == ["TKN000001"]
