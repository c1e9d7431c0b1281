"""End-to-end tests for the simulation runner and the CLI."""

import json
from pathlib import Path

import pytest

import run_simulation
from models.config import SimulationConfig
from simulation.external_source import ExternalEventSource, JsonlObservationFetcher
from simulation.ledger import InMemoryLedger, JsonFileLedger, TradeLedger
from simulation.runner import SimulationRunner
from simulation.synthetic_source import SyntheticEventSource

REPO_ROOT = Path(__file__).resolve().parents[2]


class ListFetcher:
    def __init__(self, observations):
        self.observations = observations

    def fetch(self, window_start, window_end):
        return [o for o in self.observations if window_start <= o.timestamp < window_end]


class BrokenLedger(TradeLedger):
    def record_event(self, observation):
        raise OSError("read-only file system")

    def record_trade(self, trade):
        raise OSError("read-only file system")

    def record_run_summary(self, start_time, end_time, summary=None):
        raise OSError("read-only file system")


@pytest.fixture
def short_config(config):
    """Three one-minute ticks."""
    return config.with_overrides(run={"duration_hours": 0.05})


def _run(config, observations, ledger=None):
    source = ExternalEventSource(config, ListFetcher(observations))
    return SimulationRunner(config, source, ledger, run_name="unit").run()


class TestScenario:
    def test_open_profit_exit_and_no_reentry(self, short_config, make_observation):
        ledger = InMemoryLedger()
        observations = [
            make_observation("TKN000001", minute=0, price_usd=1.0),
            make_observation("TKN000002", minute=0, dev_hold_pct=0.2),
            make_observation("TKN000001", minute=1, price_usd=1.6),
            make_observation("TKN000001", minute=2, price_usd=1.0),
        ]
        result = _run(short_config, observations, ledger)
        summary = result.summary()

        (trade,) = result.trades
        assert trade.token_id == "TKN000001"
        assert trade.close_reason.value == "profit_band"
        assert trade.pnl == pytest.approx(0.3)
        assert summary.total_trades == 1
        assert summary.win_rate == 1.0
        assert summary.final_capital == pytest.approx(3.3)
        assert summary.return_pct == pytest.approx(10.0)
        assert summary.rejections_by_reason == {"dev_hold_too_high": 1}
        # The tick that closed TKN000001 does not offer it for entry again.
        assert summary.entry_outcomes == {"already_traded": 1, "opened": 1}

        assert len(ledger.events) == 4
        assert all(event.score is not None for event in ledger.events)
        assert ledger.trades == result.trades
        assert ledger.run_summaries[0]["summary"] == summary

    def test_open_positions_closed_at_end_of_run(self, short_config, make_observation):
        observations = [
            make_observation("TKN000002", minute=0, price_usd=1.0),
            make_observation("TKN000001", minute=1, price_usd=1.0),
            make_observation("TKN000002", minute=1, price_usd=1.2),
        ]
        result = _run(short_config, observations)
        final_tick = make_observation(minute=2).timestamp

        assert [t.token_id for t in result.trades] == ["TKN000001", "TKN000002"]
        assert all(t.close_reason.value == "end_of_run" for t in result.trades)
        assert all(t.closed_at == final_tick for t in result.trades)
        assert result.trades[1].exit_price == pytest.approx(1.2)
        assert result.final_portfolio.open_positions == {}
        assert result.final_portfolio.available_capital == pytest.approx(3.1)

    def test_malformed_observation_skipped(self, short_config, make_observation):
        ledger = InMemoryLedger()
        observations = [
            make_observation("TKN000001", minute=0, price_usd=0.0),
            make_observation("TKN000002", minute=0),
        ]
        result = _run(short_config, observations, ledger)
        assert result.malformed_observations == 1
        assert result.observations == 1
        assert [e.token_id for e in ledger.events] == ["TKN000002"]
        assert [t.token_id for t in result.trades] == ["TKN000002"]

    def test_capacity_respected(self, short_config, make_observation):
        observations = [make_observation(f"TKN{i:06d}", minute=0) for i in range(1, 9)]
        result = _run(short_config, observations)
        assert result.tick_stats[0].opened == 5
        assert result.entry_outcomes == {"capacity_exhausted": 3, "opened": 5}

    def test_ledger_failure_is_not_fatal(self, short_config, make_observation):
        observations = [
            make_observation("TKN000001", minute=0, price_usd=1.0),
            make_observation("TKN000001", minute=1, price_usd=1.6),
        ]
        result = _run(short_config, observations, BrokenLedger())
        assert len(result.trades) == 1
        assert result.ledger_failures > 0

    def test_runs_only_once(self, short_config):
        runner = SimulationRunner(short_config, ExternalEventSource(short_config, ListFetcher([])))
        runner.run()
        with pytest.raises(RuntimeError, match="only be called once"):
            runner.run()

    def test_empty_stream(self, short_config):
        result = _run(short_config, [])
        summary = result.summary()
        assert summary.total_trades == 0
        assert summary.win_rate == 0.0
        assert summary.final_capital == short_config.portfolio.bankroll
        assert summary.ticks == 3


class TestSyntheticRuns:
    @pytest.fixture
    def busy_config(self):
        return SimulationConfig.preset("aggressive").with_overrides(
            synthetic={"arrival_rate": 2.0},
            run={"duration_hours": 2, "seed": 11},
        )

    def test_same_seed_same_outcome(self, busy_config):
        outcomes = []
        for _ in range(2):
            ledger = InMemoryLedger()
            result = SimulationRunner(
                busy_config, SyntheticEventSource(busy_config), ledger
            ).run()
            outcomes.append((result.trades, ledger.events, result.tick_stats))
        assert outcomes[0] == outcomes[1]

    def test_invariants_hold_every_tick(self, busy_config):
        result = SimulationRunner(busy_config, SyntheticEventSource(busy_config)).run()
        cfg = busy_config.portfolio
        assert len(result.tick_stats) == busy_config.run.num_ticks
        for stats in result.tick_stats:
            assert stats.open_positions <= cfg.max_positions
            assert stats.committed_capital <= cfg.bankroll + 1e-9
            assert stats.available_capital >= -1e-9
        for trade in result.trades:
            assert trade.capital == cfg.per_trade_cap
            assert trade.opened_at <= trade.closed_at
        assert len({t.token_id for t in result.trades}) == len(result.trades)

    def test_recorded_events_replay_identically(self, busy_config, tmp_path):
        ledger = JsonFileLedger(tmp_path, "recorded")
        original = SimulationRunner(busy_config, SyntheticEventSource(busy_config), ledger).run()

        fetcher = JsonlObservationFetcher(ledger.run_dir / "events.jsonl")
        replay = SimulationRunner(busy_config, ExternalEventSource(busy_config, fetcher)).run()
        assert replay.trades == original.trades


class TestCli:
    def test_synthetic_run_writes_records(self, tmp_path):
        code = run_simulation.main(
            [
                "--preset", "early_snipe",
                "--hours", "0.5",
                "--seed", "3",
                "--output-dir", str(tmp_path),
                "--run-name", "cli",
                "--log-level", "WARNING",
            ]
        )
        assert code == 0
        payload = json.loads((tmp_path / "cli" / "run_summary.json").read_text(encoding="utf-8"))
        assert payload["summary"]["seed"] == 3
        assert payload["summary"]["ticks"] == 30
        assert (tmp_path / "cli" / "events.jsonl").exists()

    def test_config_file_run(self, tmp_path):
        config_path = tmp_path / "tiny.yaml"
        config_path.write_text("run:\n  duration_hours: 0.25\n  seed: 5\n", encoding="utf-8")
        code = run_simulation.main(
            ["--config", str(config_path), "--output-dir", str(tmp_path / "out"), "--log-level", "ERROR"]
        )
        assert code == 0
        assert (tmp_path / "out" / "tiny" / "config.yaml").exists()

    def test_invalid_config_exits_2(self, tmp_path):
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("portfolio:\n  per_trade_cap: 10\n", encoding="utf-8")
        code = run_simulation.main(
            ["--config", str(config_path), "--output-dir", str(tmp_path), "--log-level", "ERROR"]
        )
        assert code == 2

    def test_external_mode_requires_feed(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SIM_FEED_PATH", raising=False)
        code = run_simulation.main(
            ["--mode", "external", "--output-dir", str(tmp_path), "--log-level", "ERROR"]
        )
        assert code == 2

    def test_shipped_aggressive_config_completes(self, tmp_path):
        code = run_simulation.main(
            [
                "--config", str(REPO_ROOT / "config" / "aggressive.yaml"),
                "--output-dir", str(tmp_path),
                "--log-level", "ERROR",
            ]
        )
        assert code == 0
        payload = json.loads((tmp_path / "aggressive" / "run_summary.json").read_text(encoding="utf-8"))
        assert payload["summary"]["seed"] == 1234

    def test_empty_config_section_uses_preset(self, tmp_path):
        config_path = tmp_path / "sparse.yaml"
        config_path.write_text("synthetic:\nrun:\n  duration_hours: 0.1\n", encoding="utf-8")
        code = run_simulation.main(
            ["--config", str(config_path), "--output-dir", str(tmp_path / "out"), "--log-level", "ERROR"]
        )
        assert code == 0

    def test_scalar_config_section_exits_2(self, tmp_path):
        config_path = tmp_path / "scalar.yaml"
        config_path.write_text("synthetic: fast\n", encoding="utf-8")
        code = run_simulation.main(
            ["--config", str(config_path), "--output-dir", str(tmp_path), "--log-level", "ERROR"]
        )
        assert code == 2

    def test_misspelled_config_key_exits_2(self, tmp_path):
        config_path = tmp_path / "typo.yaml"
        config_path.write_text("entry:\n  score_treshold: 95\n", encoding="utf-8")
        code = run_simulation.main(
            ["--config", str(config_path), "--output-dir", str(tmp_path), "--log-level", "ERROR"]
        )
        assert code == 2
