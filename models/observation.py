"""Token market observation model."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator


class Observation(BaseModel):
    """One snapshot of a token's market state at a simulated tick.

    Immutable once produced. ``score`` is ``None`` until the scoring engine
    has seen the observation; the runner stamps it in via ``model_copy``.
    ``dev_hold_pct`` is a fraction in [0, 1], not a percentage.
    """

    model_config = ConfigDict(frozen=True)

    token_id: str
    timestamp: datetime
    market_cap_usd: float
    dev_hold_pct: float
    liquidity_usd: float
    holders: int
    mint_upgradeable: bool = False
    freeze_authority: bool = False
    momentum: bool = False
    graduation: bool = False
    supply_increase: bool = False  # Sudden unexplained supply increase this tick
    dev_known_rugger: bool = False
    price_usd: float
    score: float | None = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are read as UTC so they compare with tick times.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def rug_signal(self) -> bool:
        """True when any rug-signal flag is set."""
        return (
            self.mint_upgradeable
            or self.freeze_authority
            or self.supply_increase
            or self.dev_known_rugger
        )

    def data_quality_issues(self) -> list[str]:
        """Return the reasons this observation cannot be scored (empty if usable)."""
        issues: list[str] = []
        for name in ("market_cap_usd", "liquidity_usd", "price_usd", "dev_hold_pct"):
            value = getattr(self, name)
            if not math.isfinite(value):
                issues.append(f"{name} is not finite ({value})")
            elif value < 0:
                issues.append(f"{name} is negative ({value})")
        if math.isfinite(self.price_usd) and self.price_usd == 0:
            issues.append("price_usd is zero")
        if math.isfinite(self.dev_hold_pct) and self.dev_hold_pct > 1:
            issues.append(f"dev_hold_pct exceeds 1 ({self.dev_hold_pct})")
        if self.holders < 0:
            issues.append(f"holders is negative ({self.holders})")
        return issues

    def with_score(self, score: float) -> Observation:
        """Return a copy carrying *score*; the original is not mutated."""
        return self.model_copy(update={"score": score})
