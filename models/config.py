"""Simulation configuration models, loaded from YAML or a named preset.

These live in ``models/`` because they are shared data contracts used by the
event sources, the scoring/filter pipeline, the portfolio manager and the
runner. A ``SimulationConfig`` is constructed once at start-up and is frozen
afterwards; every component receives it explicitly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PortfolioConfig(BaseModel):
    """Bankroll and position sizing rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    bankroll: float = Field(
        default=3.0,
        gt=0,
        description="Total capital available to the strategy, in SOL.",
    )
    per_trade_cap: float = Field(
        default=0.5,
        gt=0,
        description="Capital committed to each position. No partial sizing below this.",
    )
    max_positions: int = Field(
        default=5,
        ge=1,
        description="Maximum number of concurrently open positions.",
    )
    sol_usd_price: float = Field(
        default=30.0,
        gt=0,
        description="Assumed SOL/USD rate used to convert committed capital into token quantity.",
    )
    allow_reentry: bool = Field(
        default=False,
        description="Whether a token may be bought again after its position closed.",
    )


class EntryConfig(BaseModel):
    """Hard filters and the admission threshold."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_market_cap_usd: float = Field(default=50_000.0, ge=0)
    max_market_cap_usd: float = Field(default=250_000.0, gt=0)
    rug_zone_market_cap_usd: float = Field(
        default=300_000.0,
        gt=0,
        description="Above this market cap rug probability is modelled as sharply higher.",
    )
    min_holders: int = Field(default=200, ge=0)
    holder_saturation: int = Field(
        default=2_000,
        ge=1,
        description="Holder count above which the holder score no longer grows.",
    )
    max_dev_hold_pct: float = Field(
        default=0.15,
        gt=0,
        le=1,
        description="Dev wallet holding fraction at or above which a token is rejected.",
    )
    min_liquidity_usd: float = Field(default=0.0, ge=0)
    require_momentum_or_graduation: bool = False
    score_threshold: float = Field(default=75.0, ge=0, le=100)


class ScoringWeights(BaseModel):
    """Score contributions. Points unless stated otherwise."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base: float = 50.0
    holder_bonus_max: float = Field(default=30.0, ge=0)
    holder_shortfall_penalty: float = Field(
        default=0.1, ge=0, description="Points lost per holder below the minimum."
    )
    low_dev_hold_pct: float = Field(default=0.05, ge=0, le=1)
    low_dev_hold_bonus: float = Field(default=10.0, ge=0)
    high_dev_hold_pct: float = Field(default=0.10, ge=0, le=1)
    high_dev_hold_penalty_per_point: float = Field(
        default=4.0, ge=0, description="Points lost per percentage point above high_dev_hold_pct."
    )
    over_cap_dev_hold_penalty: float = Field(default=100.0, ge=0)
    liquidity_bonus_divisor: float = Field(default=1_000.0, gt=0)
    liquidity_bonus_max: float = Field(default=25.0, ge=0)
    market_cap_band_bonus: float = Field(default=15.0, ge=0)
    market_cap_out_of_band_penalty: float = Field(default=10.0, ge=0)
    momentum_bonus: float = Field(default=20.0, ge=0)
    graduation_bonus: float = Field(default=10.0, ge=0)
    upgradeable_penalty: float = Field(default=20.0, ge=0)
    freeze_authority_penalty: float = Field(default=15.0, ge=0)
    supply_increase_penalty: float = Field(default=25.0, ge=0)

    @model_validator(mode="after")
    def _check_dev_thresholds(self) -> ScoringWeights:
        if self.low_dev_hold_pct > self.high_dev_hold_pct:
            raise ValueError("low_dev_hold_pct must not exceed high_dev_hold_pct.")
        return self


class ExitConfig(BaseModel):
    """Exit rules evaluated by the position lifecycle."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    stop_loss_pct: float = Field(default=0.2, gt=0, lt=1)
    profit_band_min: float = Field(default=0.5, gt=0)
    profit_band_max: float = Field(default=1.0, gt=0)
    dev_hold_spike_delta: float = Field(
        default=0.05,
        gt=0,
        le=1,
        description="Increase in dev holding fraction since entry treated as a dump signal.",
    )
    lp_spike_multiplier: float | None = Field(
        default=2.0,
        gt=1,
        description="Liquidity multiple of entry liquidity treated as a liquidity event. None disables it.",
    )

    @model_validator(mode="after")
    def _check_band(self) -> ExitConfig:
        if self.profit_band_min >= self.profit_band_max:
            raise ValueError("profit_band_min must be below profit_band_max.")
        return self


class SyntheticFeedConfig(BaseModel):
    """Parameters of the seeded generative token model."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    arrival_rate: float = Field(
        default=0.5, ge=0, description="Mean number of new tokens launched per tick."
    )
    max_live_tokens: int = Field(default=200, ge=1)
    token_lifetime_ticks: int = Field(default=360, ge=1)
    initial_market_cap_min: float = Field(default=5_000.0, gt=0)
    initial_market_cap_max: float = Field(default=150_000.0, gt=0)
    market_cap_floor: float = Field(default=1_000.0, gt=0)
    market_cap_ceiling: float = Field(default=5_000_000.0, gt=0)
    drift_min: float = -0.01
    drift_max: float = 0.02
    volatility_min: float = Field(default=0.02, ge=0)
    volatility_max: float = Field(default=0.08, ge=0)
    initial_holders_max: int = Field(default=300, ge=1)
    holder_capacity_min: int = Field(default=300, ge=1)
    holder_capacity_max: int = Field(default=3_000, ge=1)
    holder_growth_rate: float = Field(default=0.08, gt=0)
    initial_dev_hold_min: float = Field(default=0.01, ge=0, le=1)
    initial_dev_hold_max: float = Field(default=0.25, ge=0, le=1)
    dev_trend_min: float = -0.003
    dev_trend_max: float = 0.001
    dev_noise: float = Field(default=0.002, ge=0)
    liquidity_ratio_min: float = Field(default=0.05, gt=0)
    liquidity_ratio_max: float = Field(default=0.2, gt=0)
    upgradeable_probability: float = Field(default=0.1, ge=0, le=1)
    freeze_authority_probability: float = Field(default=0.05, ge=0, le=1)
    known_rugger_probability: float = Field(default=0.02, ge=0, le=1)
    momentum_threshold: float = Field(
        default=0.0, description="Log-return above which a tick counts as positive momentum."
    )
    graduation_market_cap: float = Field(default=69_000.0, gt=0)
    graduation_probability: float = Field(default=0.02, ge=0, le=1)
    graduation_liquidity_multiplier: float = Field(default=3.0, ge=1)
    graduation_price_spike_max: float = Field(default=0.5, ge=0)
    rug_probability: float = Field(default=0.003, ge=0, le=1)

    @model_validator(mode="after")
    def _check_ranges(self) -> SyntheticFeedConfig:
        pairs = [
            ("initial_market_cap_min", "initial_market_cap_max"),
            ("market_cap_floor", "market_cap_ceiling"),
            ("drift_min", "drift_max"),
            ("volatility_min", "volatility_max"),
            ("holder_capacity_min", "holder_capacity_max"),
            ("initial_dev_hold_min", "initial_dev_hold_max"),
            ("dev_trend_min", "dev_trend_max"),
            ("liquidity_ratio_min", "liquidity_ratio_max"),
        ]
        for low, high in pairs:
            if getattr(self, low) > getattr(self, high):
                raise ValueError(f"{low} must not exceed {high}.")
        return self


class RunConfig(BaseModel):
    """Simulated span, tick resolution and the random seed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    duration_hours: float = Field(default=1.0, gt=0)
    ticks_per_hour: int = Field(default=60, ge=1)
    seed: int = 42
    start_time: datetime = Field(
        default=datetime(2024, 1, 1, tzinfo=timezone.utc),
        description="Simulated timestamp of the first tick.",
    )

    @field_validator("start_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def num_ticks(self) -> int:
        return int(round(self.duration_hours * self.ticks_per_hour))

    @model_validator(mode="after")
    def _check_ticks(self) -> RunConfig:
        if self.num_ticks < 1:
            raise ValueError(
                f"duration_hours={self.duration_hours} at {self.ticks_per_hour} ticks/hour "
                "yields no ticks."
            )
        if 3600 / self.ticks_per_hour < 1e-6:
            raise ValueError(
                f"ticks_per_hour={self.ticks_per_hour} is finer than one microsecond per tick."
            )
        return self


class SimulationConfig(BaseModel):
    """Top-level configuration for a simulation run.

    Internal consistency across sections (e.g. the per-trade cap against the
    bankroll) is checked here so a bad configuration aborts before any tick
    executes.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    entry: EntryConfig = Field(default_factory=EntryConfig)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    exit: ExitConfig = Field(default_factory=ExitConfig)
    synthetic: SyntheticFeedConfig = Field(default_factory=SyntheticFeedConfig)
    run: RunConfig = Field(default_factory=RunConfig)

    @model_validator(mode="after")
    def _check_consistency(self) -> SimulationConfig:
        if self.portfolio.per_trade_cap > self.portfolio.bankroll:
            raise ValueError(
                f"per_trade_cap ({self.portfolio.per_trade_cap}) exceeds "
                f"bankroll ({self.portfolio.bankroll})."
            )
        if self.entry.min_market_cap_usd >= self.entry.max_market_cap_usd:
            raise ValueError(
                "Market-cap entry band is empty: min_market_cap_usd must be below "
                "max_market_cap_usd."
            )
        if self.entry.max_market_cap_usd > self.entry.rug_zone_market_cap_usd:
            raise ValueError("max_market_cap_usd must not exceed rug_zone_market_cap_usd.")
        if self.entry.holder_saturation <= self.entry.min_holders:
            raise ValueError("holder_saturation must be above min_holders.")
        return self

    def with_overrides(self, **sections: dict[str, Any]) -> SimulationConfig:
        """Return a validated copy with the given per-section field overrides.

        ``config.with_overrides(run={"seed": 7})`` replaces only ``run.seed``.
        """
        raw = self.model_dump()
        for section, values in sections.items():
            if section not in raw:
                raise KeyError(f"Unknown config section '{section}'.")
            raw[section].update(values)
        return SimulationConfig.model_validate(raw)

    @classmethod
    def from_yaml(cls, path: str | Path) -> SimulationConfig:
        """Load and validate a ``SimulationConfig`` from a YAML file.

        An optional top-level ``preset`` key selects the base preset the
        remaining sections override.

        Raises ``FileNotFoundError`` if the file does not exist and
        ``ValueError`` if the content is not a valid YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}."
            )

        preset_name = raw.pop("preset", "default")
        sections: dict[str, dict[str, Any]] = {}
        for section, values in raw.items():
            # An empty section (``run:`` with nothing under it) keeps the preset.
            if values is None:
                values = {}
            if not isinstance(values, dict):
                raise ValueError(
                    f"Expected a mapping for section '{section}' in {path}, "
                    f"got {type(values).__name__}."
                )
            sections[section] = values
        return cls.preset(preset_name).with_overrides(**sections)

    @classmethod
    def preset(cls, name: str = "default") -> SimulationConfig:
        """Build one of the named strategy presets.

        Raises ``KeyError`` if *name* is unknown.
        """
        if name not in PRESETS:
            available = ", ".join(sorted(PRESETS))
            raise KeyError(f"Unknown preset '{name}'. Available: {available}.")
        return cls.model_validate(PRESETS[name])


# Per-section overrides on top of the defaults.
PRESETS: dict[str, dict[str, dict[str, Any]]] = {
    "default": {},
    # Catch tokens right at launch.
    "early_snipe": {
        "entry": {
            "min_market_cap_usd": 1_000.0,
            "min_holders": 5,
            "min_liquidity_usd": 500.0,
            "score_threshold": 65.0,
        },
    },
    # Safer, more established tokens.
    "conservative": {
        "entry": {
            "min_holders": 200,
            "max_dev_hold_pct": 0.10,
            "min_liquidity_usd": 5_000.0,
            "score_threshold": 80.0,
        },
    },
    "aggressive": {
        "entry": {
            "min_market_cap_usd": 2_000.0,
            "min_holders": 3,
            "max_dev_hold_pct": 0.20,
            "min_liquidity_usd": 300.0,
            "score_threshold": 60.0,
        },
        "portfolio": {"max_positions": 10},
    },
}
