"""Human-friendly notification text for XP, level and badge events."""

from __future__ import annotations


def xp_gained(amount: int, description: str | None = None) -> str:
    if description:
        return f"⚡ +{amount} XP gained! {description}"
    return f"⚡ +{amount} XP gained!"


def level_reached(level: int) -> str:
    return f"\U0001f3c6 Level {level} reached! Keep going!"


def badge_unlocked(title: str) -> str:
    return f"\U0001f396️ {title} badge unlocked! Click to claim your reward!"


def badge_claimed(title: str, xp: int) -> str:
    return f"\U0001f389 {title} unlocked! +{xp} XP added"


def milestone_reached(action: str) -> str:
    return f"\U0001f3af {action} milestone reached! Great progress!"


def welcome(username: str) -> str:
    return f"\U0001f44b Welcome to GameHunt, {username}! Start exploring games to earn XP."
