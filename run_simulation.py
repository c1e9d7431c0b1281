#!/usr/bin/env python3
"""CLI entrypoint for the launch-token strategy simulator.

Usage::

    python run_simulation.py --config config/example.yaml
    python run_simulation.py --preset conservative --hours 6 --seed 7
    python run_simulation.py --mode external --feed results/example/events.jsonl

The simulation loads a YAML configuration file (or a named preset), builds
the selected event source, runs the tick loop and persists token events,
trades and a run summary under ``--output-dir``. The run name defaults to the
config file name (e.g. ``example.yaml`` -> ``example``) or the preset name.
``SIM_OUTPUT_DIR`` and ``SIM_FEED_PATH`` (also read from a ``.env`` file)
provide defaults for ``--output-dir`` and ``--feed``.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from models.config import PRESETS, SimulationConfig
from simulation.event_source import available_modes, create_event_source
from simulation.external_source import JsonlObservationFetcher
from simulation.ledger import JsonFileLedger
from simulation.runner import SimulationRunner


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate the launch-token strategy over a token event stream.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--config",
        type=str,
        help="Path to a YAML configuration file.",
    )
    source.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        help="Named strategy preset (default: default).",
    )
    parser.add_argument(
        "--mode",
        default="synthetic",
        choices=available_modes(),
        help="Event source: seeded synthetic model or an external feed (default: synthetic).",
    )
    parser.add_argument(
        "--feed",
        default=os.environ.get("SIM_FEED_PATH"),
        type=str,
        help="JSON-lines observation file for --mode external (default: $SIM_FEED_PATH).",
    )
    parser.add_argument(
        "--hours",
        type=float,
        help="Simulated duration in hours (overrides the config).",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed (overrides the config).",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("SIM_OUTPUT_DIR", "results"),
        type=str,
        help="Directory where run records are written (default: $SIM_OUTPUT_DIR or results/).",
    )
    parser.add_argument(
        "--run-name",
        type=str,
        help="Name of the run directory (default: derived from --config or --preset).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    return parser.parse_args(argv)


def _setup_logging(level: str) -> None:
    """Configure root logger with a clean format."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def load_config(args: argparse.Namespace) -> SimulationConfig:
    """Build the run config from the CLI arguments."""
    if args.config:
        config = SimulationConfig.from_yaml(args.config)
    else:
        config = SimulationConfig.preset(args.preset or "default")

    run_overrides = {}
    if args.hours is not None:
        run_overrides["duration_hours"] = args.hours
    if args.seed is not None:
        run_overrides["seed"] = args.seed
    if run_overrides:
        config = config.with_overrides(run=run_overrides)
    return config


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    _setup_logging(args.log_level)

    logger = logging.getLogger(__name__)

    try:
        config = load_config(args)
    except (ValidationError, ValueError, KeyError, FileNotFoundError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    run_name = args.run_name or (Path(args.config).stem if args.config else args.preset or "default")
    logger.info("Config loaded: mode='%s', %d tick(s).", args.mode, config.run.num_ticks)

    if args.mode == "external":
        if not args.feed:
            logger.error("--mode external requires --feed or SIM_FEED_PATH.")
            return 2
        source = create_event_source(args.mode, config, fetcher=JsonlObservationFetcher(args.feed))
    else:
        source = create_event_source(args.mode, config)

    ledger = JsonFileLedger(args.output_dir, run_name, config_yaml_path=args.config)
    result = SimulationRunner(config, source, ledger, run_name=run_name).run()

    summary = result.summary()
    logger.info(
        "Trades: %d (%s). Final capital %.4f (%+.2f%%). Output: %s",
        summary.total_trades,
        ", ".join(f"{k}={v}" for k, v in summary.trades_by_reason.items()) or "none",
        summary.final_capital,
        summary.return_pct,
        ledger.run_dir,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
