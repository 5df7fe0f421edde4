"""Pydantic result models for progression operations."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# --- Levels ---


class LevelProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int
    current_xp: int
    xp_to_next_level: int
    total_xp_for_current_level: int
    total_xp_for_next_level: int
    progress_percent: int = Field(ge=0, le=100)


# --- XP ---


class GrantResult(BaseModel):
    """Outcome of one XP grant.

    ``levels_gained`` lists every level crossed, ascending; one
    level_up notification is emitted per entry.
    """

    granted: bool
    amount: int
    new_total: int
    previous_level: int
    new_level: int
    leveled_up: bool
    levels_gained: list[int] = []


class XPHistoryEntry(BaseModel):
    amount: int
    reason: str
    source_id: str | None = None
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Badges ---


class BadgeState(str, Enum):
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    ELIGIBLE_UNCLAIMED = "ELIGIBLE_UNCLAIMED"
    AWARDED = "AWARDED"


class AwardOutcome(BaseModel):
    badge_key: str
    awarded: bool
    xp_awarded: int = 0
    grant: GrantResult | None = None


class ClaimResult(BaseModel):
    success: bool
    badge_key: str
    xp_awarded: int | None = None
    reason: str | None = None  # "already_claimed" | "not_eligible" on failure
    grant: GrantResult | None = None


class ForceAwardResult(BaseModel):
    user_id: int
    awarded: list[str] = []
    already_held: list[str] = []
    failed: dict[str, str] = {}


class BadgeProgress(BaseModel):
    key: str
    name: str
    emoji: str
    description: str
    threshold: int
    current: int
    percent: float
    xp_reward: int
    state: BadgeState
    awarded_at: datetime | None = None


# --- Activity ---


class ActivityResult(BaseModel):
    activity: str
    grant: GrantResult | None = None
    badges_awarded: list[str] = []


# --- Leaderboards ---


class GameLeaderboardEntry(BaseModel):
    rank: int
    game_id: int
    title: str
    votes: int
    follows: int
    clicks: int
    age_hours: float
    score: float


class XPLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    xp: int
    level: int


# --- Maintenance ---


class AuditReport(BaseModel):
    user_id: int
    stored_xp: int
    ledger_xp: int
    level: int
    consistent: bool
    unawarded_eligible: list[str] = []
    missing_reward_events: list[str] = []


class RepairResult(BaseModel):
    user_id: int
    badges_awarded: list[str] = []
    rewards_backfilled: list[str] = []


class RepairSummary(BaseModel):
    repaired: list[RepairResult] = []
    failed: dict[int, str] = {}
