"""Level computation from cumulative XP.

Level n takes ``n * 100`` XP to complete, so reaching level n requires
``50 * n * (n - 1)`` XP in total:

    level 1 ->      0
    level 2 ->    100
    level 3 ->    300
    level 4 ->    600
    level 5 ->  1_000

Level is never persisted; it is always recomputed from ``users.xp``.
"""

from __future__ import annotations

from math import isqrt

from gamehunt.progression.schemas import LevelProgress

XP_PER_LEVEL_STEP = 100


def xp_required_for_level(level: int) -> int:
    """XP needed to complete ``level`` (i.e. to go from level to level + 1)."""
    return level * XP_PER_LEVEL_STEP


def total_xp_for_level(level: int) -> int:
    """Cumulative XP at which ``level`` is reached."""
    if level < 1:
        raise ValueError("Level must be at least 1")
    return XP_PER_LEVEL_STEP * level * (level - 1) // 2


def level_for_xp(total_xp: int) -> int:
    """Closed-form inverse of :func:`total_xp_for_level`.

    Largest n with 50 * n * (n + 1) <= xp is n = (isqrt(4k + 1) - 1) // 2
    where k = xp // 50; the level is n + 1. Exact for any integer input.
    """
    if total_xp <= 0:
        return 1
    k = total_xp // (XP_PER_LEVEL_STEP // 2)
    return (isqrt(4 * k + 1) - 1) // 2 + 1


def compute_level_progress(total_xp: int) -> LevelProgress:
    """Compute level and progress within it from cumulative XP.

    Negative input is clamped to 0.
    """
    total_xp = max(0, int(total_xp))
    level = level_for_xp(total_xp)

    floor_xp = total_xp_for_level(level)
    required = xp_required_for_level(level)
    current = total_xp - floor_xp

    # Round half up
    percent = (current * 200 + required) // (2 * required)

    return LevelProgress(
        level=level,
        current_xp=current,
        xp_to_next_level=required - current,
        total_xp_for_current_level=floor_xp,
        total_xp_for_next_level=floor_xp + required,
        progress_percent=percent,
    )


def levels_crossed(previous_total: int, new_total: int) -> list[int]:
    """Levels newly reached when XP moves from ``previous_total`` to ``new_total``.

    Ascending; empty when no boundary is crossed.
    """
    old_level = level_for_xp(previous_total)
    new_level = level_for_xp(new_total)
    return list(range(old_level + 1, new_level + 1))
