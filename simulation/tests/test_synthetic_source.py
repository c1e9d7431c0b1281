"""Tests for the seeded synthetic event source and the source registry."""

import pytest

from models.config import SimulationConfig
from simulation.clock import SimulationClock
from simulation.event_source import available_modes, create_event_source
from simulation.external_source import ExternalEventSource
from simulation.synthetic_source import TOKEN_SUPPLY, SyntheticEventSource


def _config(**synthetic) -> SimulationConfig:
    return SimulationConfig().with_overrides(
        synthetic={"arrival_rate": 2.0, **synthetic},
        run={"duration_hours": 2, "ticks_per_hour": 30},
    )


def _stream(source, config):
    return [source.next(tick) for tick in SimulationClock.from_config(config.run)]


class _EmptyFetcher:
    def fetch(self, window_start, window_end):
        return []


class TestDeterminism:
    def test_same_seed_same_stream(self):
        cfg = _config()
        first = _stream(SyntheticEventSource(cfg), cfg)
        second = _stream(SyntheticEventSource(cfg), cfg)
        assert first == second
        assert sum(len(batch) for batch in first) > 0

    def test_different_seed_different_stream(self):
        cfg = _config()
        a = _stream(SyntheticEventSource(cfg), cfg)
        b = _stream(SyntheticEventSource(cfg, seed=cfg.run.seed + 1), cfg)
        assert a != b

    def test_reset_replays(self):
        cfg = _config()
        source = SyntheticEventSource(cfg)
        first = _stream(source, cfg)
        source.reset()
        assert _stream(source, cfg) == first


class TestStream:
    def test_batches_sorted_and_unique(self):
        cfg = _config()
        for batch in _stream(SyntheticEventSource(cfg), cfg):
            ids = [obs.token_id for obs in batch]
            assert ids == sorted(ids)
            assert len(ids) == len(set(ids))

    def test_observations_are_well_formed(self):
        cfg = _config()
        for batch in _stream(SyntheticEventSource(cfg), cfg):
            for obs in batch:
                assert obs.data_quality_issues() == []
                assert obs.score is None
                assert obs.market_cap_usd >= cfg.synthetic.market_cap_floor * (1 - 1e-9)
                assert obs.market_cap_usd <= cfg.synthetic.market_cap_ceiling * (1 + 1e-9)
                assert obs.price_usd == pytest.approx(obs.market_cap_usd / TOKEN_SUPPLY)

    def test_holders_never_decrease(self):
        cfg = _config()
        seen: dict[str, int] = {}
        for batch in _stream(SyntheticEventSource(cfg), cfg):
            for obs in batch:
                assert obs.holders >= seen.get(obs.token_id, 0)
                seen[obs.token_id] = obs.holders

    def test_graduation_is_sticky(self):
        cfg = _config(graduation_probability=1.0, graduation_market_cap=1_000.0)
        graduated: set[str] = set()
        for batch in _stream(SyntheticEventSource(cfg), cfg):
            for obs in batch:
                if obs.token_id in graduated:
                    assert obs.graduation
                if obs.graduation:
                    graduated.add(obs.token_id)
        assert graduated

    def test_rug_sets_supply_increase(self):
        cfg = _config(rug_probability=1.0)
        flagged = [
            obs for batch in _stream(SyntheticEventSource(cfg), cfg) for obs in batch if obs.supply_increase
        ]
        assert flagged

    def test_no_arrivals_no_observations(self):
        cfg = _config(arrival_rate=0.0)
        assert all(batch == [] for batch in _stream(SyntheticEventSource(cfg), cfg))

    def test_live_token_cap(self):
        cfg = _config(arrival_rate=5.0, max_live_tokens=3)
        source = SyntheticEventSource(cfg)
        for batch in _stream(source, cfg):
            assert len(batch) <= 3
        assert source.live_tokens <= 3

    def test_tokens_retire_after_lifetime(self):
        cfg = _config(token_lifetime_ticks=5)
        first_seen: dict[str, int] = {}
        last_seen: dict[str, int] = {}
        for tick_index, batch in enumerate(_stream(SyntheticEventSource(cfg), cfg)):
            for obs in batch:
                first_seen.setdefault(obs.token_id, tick_index)
                last_seen[obs.token_id] = tick_index
        assert all(last_seen[t] - first_seen[t] <= 5 for t in first_seen)


class TestTickOrder:
    def test_repeated_tick_rejected(self):
        cfg = _config()
        source = SyntheticEventSource(cfg)
        tick = SimulationClock.from_config(cfg.run).ticks()[3]
        source.next(tick)
        with pytest.raises(ValueError, match="strictly increasing"):
            source.next(tick)

    def test_fetch_is_next(self):
        cfg = _config()
        ticks = SimulationClock.from_config(cfg.run).ticks()
        a, b = SyntheticEventSource(cfg), SyntheticEventSource(cfg)
        assert [a.fetch(t) for t in ticks[:5]] == [b.next(t) for t in ticks[:5]]


class TestRegistry:
    def test_modes(self):
        assert available_modes() == ["external", "synthetic"]

    def test_create_synthetic(self, config):
        source = create_event_source("synthetic", config)
        assert isinstance(source, SyntheticEventSource)
        assert source.seed == config.run.seed

    def test_create_external(self, config):
        source = create_event_source("external", config, fetcher=_EmptyFetcher())
        assert isinstance(source, ExternalEventSource)

    def test_unknown_mode(self, config):
        with pytest.raises(KeyError, match="Unknown event source"):
            create_event_source("websocket", config)
