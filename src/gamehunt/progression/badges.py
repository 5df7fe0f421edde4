"""Badge definitions and eligibility rules.

Badge keys are a closed enum. A registry is validated when it is built,
so a typo or an overlapping tier fails at import time rather than
producing a badge nobody can earn.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from gamehunt.exceptions import BadgeRegistryError, UnknownBadgeError


class BadgeKey(str, Enum):
    WISE_OWL = "WISE_OWL"
    FIRE_DRAGON = "FIRE_DRAGON"
    CLEVER_FOX = "CLEVER_FOX"
    GENTLE_PANDA = "GENTLE_PANDA"
    SWIFT_PUMA = "SWIFT_PUMA"
    EXPLORER = "EXPLORER"
    RISING_STAR = "RISING_STAR"
    PIONEER = "PIONEER"
    FIRST_LAUNCH = "FIRST_LAUNCH"


class Metric(str, Enum):
    """Aggregate counters a badge predicate can read."""

    COMMENTS = "comments"
    GAMES_PUBLISHED = "games_published"
    VOTES_CAST = "votes_cast"
    VOTES_RECEIVED = "votes_received"
    GAMES_FOLLOWED = "games_followed"
    USERS_FOLLOWED = "users_followed"
    FOLLOWERS = "followers"
    REGISTRATION_RANK = "registration_rank"
    XP = "xp"


# Metrics where a smaller value qualifies (e.g. "among the first 1000 users")
RANK_METRICS = frozenset({Metric.REGISTRATION_RANK})


@dataclass(frozen=True)
class ActivityCounts:
    """Snapshot of a user's aggregate activity, read once per evaluation."""

    comments: int = 0
    games_published: int = 0
    votes_cast: int = 0
    votes_received: int = 0
    games_followed: int = 0
    users_followed: int = 0
    followers: int = 0
    registration_rank: int = 0
    xp: int = 0

    def value(self, metric: Metric) -> int:
        return getattr(self, metric.value)


@dataclass(frozen=True)
class BadgeDefinition:
    key: BadgeKey
    name: str
    emoji: str
    description: str
    metric: Metric
    threshold: int
    xp_reward: int
    sort_order: int = 0

    def is_eligible(self, counts: ActivityCounts) -> bool:
        value = counts.value(self.metric)
        if self.metric in RANK_METRICS:
            return 0 < value <= self.threshold
        return value >= self.threshold

    def progress(self, counts: ActivityCounts) -> int:
        """Current progress towards ``threshold``, capped at it."""
        if self.metric in RANK_METRICS:
            return self.threshold if self.is_eligible(counts) else 0
        return min(counts.value(self.metric), self.threshold)


class BadgeRegistry:
    """Validated, ordered set of badge definitions."""

    def __init__(self, definitions: Iterable[BadgeDefinition], require_complete: bool = False) -> None:
        defs = list(definitions)
        by_key: dict[BadgeKey, BadgeDefinition] = {}
        tiers: dict[tuple[Metric, int], BadgeKey] = {}

        for d in defs:
            if not isinstance(d.key, BadgeKey):
                raise BadgeRegistryError(f"Badge key {d.key!r} is not a BadgeKey")
            if d.key in by_key:
                raise BadgeRegistryError(f"Duplicate badge key {d.key.value}")
            if d.threshold <= 0:
                raise BadgeRegistryError(f"{d.key.value}: threshold must be positive")
            if d.xp_reward < 0:
                raise BadgeRegistryError(f"{d.key.value}: xp_reward must not be negative")
            tier = (d.metric, d.threshold)
            if tier in tiers:
                raise BadgeRegistryError(
                    f"{d.key.value} overlaps {tiers[tier].value}: both use {d.metric.value} >= {d.threshold}"
                )
            tiers[tier] = d.key
            by_key[d.key] = d

        if require_complete:
            missing = set(BadgeKey) - set(by_key)
            if missing:
                names = ", ".join(sorted(k.value for k in missing))
                raise BadgeRegistryError(f"Registry is missing definitions for: {names}")

        self._defs = dict(sorted(by_key.items(), key=lambda kv: (kv[1].sort_order, kv[0].value)))

    def parse_key(self, key: str | BadgeKey) -> BadgeKey:
        """Validate a raw key against the enum and this registry."""
        try:
            parsed = BadgeKey(key)
        except ValueError:
            raise UnknownBadgeError(key) from None
        if parsed not in self._defs:
            raise UnknownBadgeError(key)
        return parsed

    def get(self, key: str | BadgeKey) -> BadgeDefinition:
        return self._defs[self.parse_key(key)]

    def eligible(self, counts: ActivityCounts) -> list[BadgeDefinition]:
        """All badges whose predicate holds, evaluated in one pass."""
        return [d for d in self._defs.values() if d.is_eligible(counts)]

    def __iter__(self) -> Iterator[BadgeDefinition]:
        return iter(self._defs.values())

    def __len__(self) -> int:
        return len(self._defs)

    def __contains__(self, key: object) -> bool:
        try:
            return BadgeKey(key) in self._defs  # type: ignore[arg-type]
        except ValueError:
            return False


DEFAULT_BADGES: list[BadgeDefinition] = [
    BadgeDefinition(
        key=BadgeKey.WISE_OWL,
        name="Wise Owl",
        emoji="\U0001f989",
        description="Make 50 comments to earn this badge",
        metric=Metric.COMMENTS,
        threshold=50,
        xp_reward=100,
        sort_order=1,
    ),
    BadgeDefinition(
        key=BadgeKey.FIRE_DRAGON,
        name="Fire Dragon",
        emoji="\U0001f409",
        description="Submit 10 games to earn this badge",
        metric=Metric.GAMES_PUBLISHED,
        threshold=10,
        xp_reward=200,
        sort_order=2,
    ),
    BadgeDefinition(
        key=BadgeKey.CLEVER_FOX,
        name="Clever Fox",
        emoji="\U0001f98a",
        description="Cast 100 votes to earn this badge",
        metric=Metric.VOTES_CAST,
        threshold=100,
        xp_reward=150,
        sort_order=3,
    ),
    BadgeDefinition(
        key=BadgeKey.GENTLE_PANDA,
        name="Gentle Panda",
        emoji="\U0001f43c",
        description="Receive 50 likes to earn this badge",
        metric=Metric.VOTES_RECEIVED,
        threshold=50,
        xp_reward=120,
        sort_order=4,
    ),
    BadgeDefinition(
        key=BadgeKey.SWIFT_PUMA,
        name="Swift Puma",
        emoji="\U0001f406",
        description="Follow 25 games to earn this badge",
        metric=Metric.GAMES_FOLLOWED,
        threshold=25,
        xp_reward=80,
        sort_order=5,
    ),
    BadgeDefinition(
        key=BadgeKey.EXPLORER,
        name="Explorer",
        emoji="\U0001f9ed",
        description="Follow your first 10 users to earn this badge",
        metric=Metric.USERS_FOLLOWED,
        threshold=10,
        xp_reward=100,
        sort_order=6,
    ),
    BadgeDefinition(
        key=BadgeKey.RISING_STAR,
        name="Rising Star",
        emoji="⭐",
        description="Reach 100 followers to earn this badge",
        metric=Metric.FOLLOWERS,
        threshold=100,
        xp_reward=300,
        sort_order=7,
    ),
    BadgeDefinition(
        key=BadgeKey.PIONEER,
        name="Pioneer",
        emoji="\U0001f6e1️",
        description="One of the first 1000 users to join the platform",
        metric=Metric.REGISTRATION_RANK,
        threshold=1000,
        xp_reward=500,
        sort_order=8,
    ),
    BadgeDefinition(
        key=BadgeKey.FIRST_LAUNCH,
        name="First Launch",
        emoji="\U0001f3af",
        description="Successfully published your first game",
        metric=Metric.GAMES_PUBLISHED,
        threshold=1,
        xp_reward=150,
        sort_order=9,
    ),
]

DEFAULT_REGISTRY = BadgeRegistry(DEFAULT_BADGES, require_complete=True)
