"""Time-decayed leaderboard scoring for games.

    base  = ln(1 + votes) + 0.6 * ln(1 + follows) + 0.4 * ln(1 + clicks)
    decay = exp(-age_hours / 36)          (half-life ~25h)
    score = base * decay

Pure and stateless. Callers clamp counters to >= 0 before calling.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

VOTE_WEIGHT = 1.0
FOLLOW_WEIGHT = 0.6
CLICK_WEIGHT = 0.4
DECAY_HOURS = 36.0


def score(
    votes: int,
    follows: int,
    clicks: int,
    age_hours: float,
    decay_hours: float = DECAY_HOURS,
) -> float:
    """Decayed popularity score of a single item."""
    base = (
        VOTE_WEIGHT * math.log1p(votes)
        + FOLLOW_WEIGHT * math.log1p(follows)
        + CLICK_WEIGHT * math.log1p(clicks)
    )
    return base * math.exp(-age_hours / decay_hours)


def age_hours(created_at: datetime, now: datetime | None = None) -> float:
    """Hours elapsed since ``created_at``, never negative.

    Naive datetimes are taken as UTC (SQLite drops tzinfo on read).
    """
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0.0, (now - created_at).total_seconds() / 3600.0)


def rank_items(
    items: list[dict[str, Any]],
    now: datetime | None = None,
    decay_hours: float = DECAY_HOURS,
) -> list[dict[str, Any]]:
    """Score and rank leaderboard items deterministically.

    Input dicts need ``id``, ``votes``, ``follows``, ``clicks`` and
    ``created_at``. Sorted by score DESC, then newer first, then id ASC.
    Each dict is augmented with ``age_hours``, ``score`` and ``rank``.
    """
    if not items:
        return []

    now = now or datetime.now(timezone.utc)
    for item in items:
        item["age_hours"] = age_hours(item["created_at"], now)
        item["score"] = score(
            max(0, item.get("votes", 0)),
            max(0, item.get("follows", 0)),
            max(0, item.get("clicks", 0)),
            item["age_hours"],
            decay_hours,
        )

    ranked = sorted(items, key=lambda i: (-i["score"], i["age_hours"], i["id"]))
    for idx, item in enumerate(ranked):
        item["rank"] = idx + 1
    return ranked
