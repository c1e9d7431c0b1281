"""Pipeline verdict models: ScoreCard, AdmissionDecision, EntryResult, ExitDecision."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from models.position import ExitReason, Position


class RejectReason(str, Enum):
    """Reason codes attached to admission rejections."""

    MINT_UPGRADEABLE = "mint_upgradeable"
    FREEZE_AUTHORITY = "freeze_authority"
    SUPPLY_INCREASE = "supply_increase"
    KNOWN_RUGGER = "known_rugger"
    MARKET_CAP_RUG_ZONE = "market_cap_rug_zone"
    MARKET_CAP_BELOW_BAND = "market_cap_below_band"
    MARKET_CAP_ABOVE_BAND = "market_cap_above_band"
    LOW_HOLDERS = "low_holders"
    DEV_HOLD_TOO_HIGH = "dev_hold_too_high"
    LOW_LIQUIDITY = "low_liquidity"
    NO_MOMENTUM = "no_momentum"
    SCORE_BELOW_THRESHOLD = "score_below_threshold"


RUG_SIGNAL_REASONS = frozenset(
    {
        RejectReason.MINT_UPGRADEABLE,
        RejectReason.FREEZE_AUTHORITY,
        RejectReason.SUPPLY_INCREASE,
        RejectReason.KNOWN_RUGGER,
    }
)


class ScoreCard(BaseModel):
    """Output of the scoring engine for one observation."""

    model_config = ConfigDict(frozen=True)

    value: float  # In [0, 100]
    failed_filters: tuple[RejectReason, ...] = ()

    @property
    def passes_hard_filters(self) -> bool:
        return not self.failed_filters

    @property
    def rug_signal(self) -> bool:
        return any(reason in RUG_SIGNAL_REASONS for reason in self.failed_filters)


class AdmissionDecision(BaseModel):
    """Filter pipeline verdict. Rejections carry every failing reason code."""

    model_config = ConfigDict(frozen=True)

    token_id: str
    admitted: bool
    score: float
    reasons: tuple[RejectReason, ...] = ()

    @property
    def primary_reason(self) -> RejectReason | None:
        return self.reasons[0] if self.reasons else None


class EntryResult(BaseModel):
    """Portfolio response to an entry attempt.

    Only ``opened`` changes portfolio state; every other status is a normal
    pipeline outcome, not an error.
    """

    status: Literal[
        "opened",
        "rejected",
        "already_open",
        "already_traded",
        "capacity_exhausted",
        "insufficient_capital",
    ]
    token_id: str
    position: Position | None = None  # Set only when status is "opened"
    message: str = ""


class ExitDecision(BaseModel):
    """A closing verdict from the position lifecycle."""

    model_config = ConfigDict(frozen=True)

    reason: ExitReason
    price: float
    return_pct: float
