"""Content-based game recommendations.

Free-text "likes" and each published game's text (title, tagline,
description, platforms) become term-frequency vectors; games are ranked by
cosine similarity to the likes vector. Games with no overlap are dropped.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gamehunt.config import Settings, get_settings
from gamehunt.db.models import Game

_STRIP = re.compile(r"[^a-z0-9\s,_-]")
_SPLIT = re.compile(r"[\s,._-]+")


def tokenize(text: str | None) -> list[str]:
    cleaned = _STRIP.sub(" ", (text or "").lower())
    return [t for t in _SPLIT.split(cleaned) if t]


def vectorize(tokens: list[str]) -> Counter[str]:
    return Counter(tokens)


def cosine_similarity(a: Counter[str], b: Counter[str]) -> float:
    norm_a = math.sqrt(sum(v * v for v in a.values()))
    norm_b = math.sqrt(sum(v * v for v in b.values()))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    dot = sum(v * b[k] for k, v in a.items() if k in b)
    return dot / (norm_a * norm_b)


def game_corpus(game: Game) -> str:
    return " ".join([
        game.title,
        game.tagline or "",
        game.description or "",
        " ".join(game.platforms or []),
    ])


def rank_by_similarity(
    likes: str,
    games: list[Game],
    take: int,
) -> list[tuple[Game, float]]:
    """Score ``games`` against ``likes``; highest first, zero scores dropped.

    Ties keep the input order.
    """
    like_vec = vectorize(tokenize(likes))
    scored = [(g, cosine_similarity(like_vec, vectorize(tokenize(game_corpus(g))))) for g in games]
    scored = [pair for pair in scored if pair[1] > 0]
    scored.sort(key=lambda pair: -pair[1])
    return scored[:take]


async def recommend_games(
    db: AsyncSession,
    likes: str,
    take: int | None = None,
    max_take: int | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """Recommend published games, newest first among equal scores.

    ``take`` and ``max_take`` fall back to ``recommend_default_take`` and
    ``recommend_max_take``.
    """
    settings = settings or get_settings()
    if take is None:
        take = settings.recommend_default_take
    if max_take is None:
        max_take = settings.recommend_max_take
    take = max(0, min(take, max_take))
    result = await db.execute(
        select(Game)
        .where(Game.status == "PUBLISHED")
        .order_by(Game.created_at.desc(), Game.id.desc())
    )
    games = list(result.scalars().all())

    ranked = rank_by_similarity(likes, games, take)
    return {
        "likes": tokenize(likes),
        "games": [
            {"id": g.id, "title": g.title, "tagline": g.tagline, "score": round(s, 6)}
            for g, s in ranked
        ],
    }
