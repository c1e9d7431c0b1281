"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.config import SimulationConfig
from models.observation import Observation

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def config() -> SimulationConfig:
    """Default config: bankroll 3.0, cap 0.5, 5 positions, band 50k-250k."""
    return SimulationConfig()


@pytest.fixture
def make_observation():
    """Factory for a healthy, admissible observation with overridable fields.

    ``minute`` offsets the timestamp from 2024-01-01T00:00Z.
    """

    def _make(token_id: str = "TKN000001", minute: int = 0, **overrides) -> Observation:
        fields = {
            "token_id": token_id,
            "timestamp": T0 + timedelta(minutes=minute),
            "market_cap_usd": 100_000.0,
            "dev_hold_pct": 0.05,
            "liquidity_usd": 10_000.0,
            "holders": 300,
            "momentum": True,
            "price_usd": 0.0001,
        }
        fields.update(overrides)
        return Observation(**fields)

    return _make
