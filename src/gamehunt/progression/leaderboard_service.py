"""Leaderboard read side.

Games are ranked by the time-decayed score in :mod:`gamehunt.progression.scoring`,
computed at read time from live counters. Users are ranked by total XP.
Nothing here writes.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamehunt.config import Settings, get_settings
from gamehunt.db.models import Game, GameFollow, User, Vote
from gamehunt.progression.levels import level_for_xp
from gamehunt.progression.schemas import GameLeaderboardEntry, XPLeaderboardEntry
from gamehunt.progression.scoring import rank_items

logger = logging.getLogger(__name__)


async def _count_by_game(db: AsyncSession, column, game_ids: list[int]) -> dict[int, int]:
    result = await db.execute(
        select(column, func.count().label("cnt"))
        .where(column.in_(game_ids))
        .group_by(column)
    )
    return {row[0]: row[1] for row in result}


def _cap(limit: int | None, settings: Settings) -> int:
    if limit is None:
        return settings.leaderboard_max_results
    return max(0, min(limit, settings.leaderboard_max_results))


async def get_game_leaderboard(
    db: AsyncSession,
    limit: int | None = None,
    now: datetime | None = None,
    decay_hours: float | None = None,
    settings: Settings | None = None,
) -> list[GameLeaderboardEntry]:
    """Top published games by decayed popularity.

    ``limit`` defaults to and is capped at ``leaderboard_max_results``;
    ``decay_hours`` defaults to ``leaderboard_decay_hours``.
    """
    settings = settings or get_settings()
    limit = _cap(limit, settings)
    if decay_hours is None:
        decay_hours = settings.leaderboard_decay_hours

    result = await db.execute(
        select(Game.id, Game.title, Game.clicks, Game.created_at).where(Game.status == "PUBLISHED")
    )
    games = result.all()
    if not games:
        return []

    game_ids = [g.id for g in games]
    votes = await _count_by_game(db, Vote.game_id, game_ids)
    follows = await _count_by_game(db, GameFollow.game_id, game_ids)

    items = [
        {
            "id": g.id,
            "title": g.title,
            "votes": votes.get(g.id, 0),
            "follows": follows.get(g.id, 0),
            "clicks": g.clicks,
            "created_at": g.created_at,
        }
        for g in games
    ]
    ranked = rank_items(items, now=now, decay_hours=decay_hours)[:limit]

    return [
        GameLeaderboardEntry(
            rank=item["rank"],
            game_id=item["id"],
            title=item["title"],
            votes=item["votes"],
            follows=item["follows"],
            clicks=item["clicks"],
            age_hours=round(item["age_hours"], 2),
            score=item["score"],
        )
        for item in ranked
    ]


async def get_xp_leaderboard(
    db: AsyncSession,
    limit: int | None = None,
    settings: Settings | None = None,
) -> list[XPLeaderboardEntry]:
    """Users by total XP; ties go to the earlier signup."""
    limit = _cap(limit, settings or get_settings())
    result = await db.execute(
        select(User.id, User.username, User.xp)
        .order_by(User.xp.desc(), User.created_at.asc(), User.id.asc())
        .limit(limit)
    )
    return [
        XPLeaderboardEntry(
            rank=idx + 1,
            user_id=row.id,
            username=row.username,
            xp=row.xp,
            level=level_for_xp(row.xp),
        )
        for idx, row in enumerate(result)
    ]
