"""Badge evaluation and award service with duplicate prevention.

Per (user, badge) the lifecycle is

    NOT_ELIGIBLE -> ELIGIBLE_UNCLAIMED -> AWARDED

An award is check-then-insert: a cheap ownership check, then an INSERT in
a SAVEPOINT. The UNIQUE(user_id, badge_key) constraint decides races; the
loser sees IntegrityError and reports "not awarded", never an error. A
successful award grants the badge's XP reward through the ledger and
emits a ``badge_claimed`` notification in the same unit of work.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from gamehunt.db.models import BadgeAward, Comment, Game, GameFollow, User, UserFollow, Vote
from gamehunt.exceptions import UserNotFoundError
from gamehunt.notifications import messages
from gamehunt.notifications.service import notify
from gamehunt.progression.badges import (
    DEFAULT_REGISTRY,
    ActivityCounts,
    BadgeDefinition,
    BadgeKey,
    BadgeRegistry,
)
from gamehunt.progression.schemas import (
    AwardOutcome,
    BadgeProgress,
    BadgeState,
    ClaimResult,
    ForceAwardResult,
)
from gamehunt.progression.xp_service import get_user_xp, grant_xp, validate_user_id

logger = logging.getLogger(__name__)


async def get_activity_counts(db: AsyncSession, user_id: int) -> ActivityCounts:
    """Read every predicate input for a user in a single round trip."""
    earlier = aliased(User)

    stmt = select(
        User.xp,
        select(func.count(Comment.id)).where(Comment.user_id == user_id).scalar_subquery(),
        select(func.count(Game.id))
        .where(Game.user_id == user_id, Game.status == "PUBLISHED")
        .scalar_subquery(),
        select(func.count(Vote.id)).where(Vote.user_id == user_id).scalar_subquery(),
        select(func.count(Vote.id))
        .join(Game, Vote.game_id == Game.id)
        .where(Game.user_id == user_id)
        .scalar_subquery(),
        select(func.count(GameFollow.id)).where(GameFollow.user_id == user_id).scalar_subquery(),
        select(func.count(UserFollow.id)).where(UserFollow.follower_id == user_id).scalar_subquery(),
        select(func.count(UserFollow.id)).where(UserFollow.following_id == user_id).scalar_subquery(),
        select(func.count(earlier.id)).where(earlier.id <= user_id).scalar_subquery(),
    ).where(User.id == user_id)

    row = (await db.execute(stmt)).one_or_none()
    if row is None:
        raise UserNotFoundError(user_id)

    xp, comments, published, cast, received, games_followed, users_followed, followers, rank = row
    return ActivityCounts(
        comments=comments,
        games_published=published,
        votes_cast=cast,
        votes_received=received,
        games_followed=games_followed,
        users_followed=users_followed,
        followers=followers,
        registration_rank=rank,
        xp=xp,
    )


async def get_awards(db: AsyncSession, user_id: int) -> dict[str, BadgeAward]:
    result = await db.execute(select(BadgeAward).where(BadgeAward.user_id == user_id))
    return {a.badge_key: a for a in result.scalars()}


async def has_badge(db: AsyncSession, user_id: int, badge_key: str) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(BadgeAward.id).where(
            BadgeAward.user_id == user_id,
            BadgeAward.badge_key == badge_key,
        )
    )
    return result.scalar_one_or_none() is not None


async def award_badge(
    db: AsyncSession,
    user_id: int,
    definition: BadgeDefinition,
    source: str = "rule",
) -> AwardOutcome:
    """Award one badge. ``awarded=False`` means the user already had it."""
    key = definition.key.value

    if await has_badge(db, user_id, key):
        return AwardOutcome(badge_key=key, awarded=False)

    try:
        async with db.begin_nested():
            db.add(BadgeAward(
                user_id=user_id,
                badge_key=key,
                xp_awarded=definition.xp_reward,
                source=source,
                awarded_at=datetime.now(timezone.utc),
            ))
            await db.flush()
    except IntegrityError:
        logger.info("Badge %s already awarded to user %s (lost insert race)", key, user_id)
        return AwardOutcome(badge_key=key, awarded=False)

    grant = None
    if definition.xp_reward > 0:
        grant = await grant_xp(
            db,
            user_id,
            definition.xp_reward,
            f"badge:{key}",
            source_id=key,
            notify_gain=False,
        )

    await notify(
        db, user_id, messages.badge_claimed(definition.name, definition.xp_reward), "badge_claimed",
        metadata={"badge_key": key, "xp": definition.xp_reward},
    )

    return AwardOutcome(badge_key=key, awarded=True, xp_awarded=definition.xp_reward, grant=grant)


async def evaluate_badges(
    db: AsyncSession,
    user_id: int,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> list[str]:
    """Award every badge the user newly qualifies for.

    All predicates are checked against one counts snapshot so that
    crossing several tiers at once awards each of them. Reward XP can
    unlock XP-threshold badges, so passes repeat until nothing new is
    awarded.
    """
    validate_user_id(user_id)
    awarded: list[str] = []

    while True:
        counts = await get_activity_counts(db, user_id)
        owned = await get_awards(db, user_id)
        newly: list[str] = []

        for definition in registry.eligible(counts):
            if definition.key.value in owned:
                continue
            outcome = await award_badge(db, user_id, definition)
            if outcome.awarded:
                newly.append(outcome.badge_key)

        if not newly:
            return awarded
        awarded.extend(newly)


async def claim_badge(
    db: AsyncSession,
    user_id: int,
    badge_key: str | BadgeKey,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> ClaimResult:
    """User-initiated claim. A repeated claim is a no-op with ``success=False``."""
    validate_user_id(user_id)
    definition = registry.get(badge_key)
    key = definition.key.value

    counts = await get_activity_counts(db, user_id)
    if await has_badge(db, user_id, key):
        return ClaimResult(success=False, badge_key=key, reason="already_claimed")
    if not definition.is_eligible(counts):
        return ClaimResult(success=False, badge_key=key, reason="not_eligible")

    outcome = await award_badge(db, user_id, definition, source="claim")
    if not outcome.awarded:
        return ClaimResult(success=False, badge_key=key, reason="already_claimed")

    return ClaimResult(
        success=True,
        badge_key=key,
        xp_awarded=outcome.xp_awarded,
        grant=outcome.grant,
    )


async def force_award_all(
    db: AsyncSession,
    user_id: int,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> ForceAwardResult:
    """Administrative override: award every badge, ignoring predicates.

    Each badge runs in its own SAVEPOINT. A failure is recorded under the
    badge key and the remaining badges are still attempted.
    """
    validate_user_id(user_id)
    await get_user_xp(db, user_id)

    result = ForceAwardResult(user_id=user_id)
    owned = await get_awards(db, user_id)

    for definition in registry:
        key = definition.key.value
        if key in owned:
            result.already_held.append(key)
            continue
        try:
            async with db.begin_nested():
                outcome = await award_badge(db, user_id, definition, source="admin")
        except Exception as exc:
            logger.exception("Force-award of %s to user %s failed", key, user_id)
            result.failed[key] = str(exc) or exc.__class__.__name__
            continue

        if outcome.awarded:
            result.awarded.append(key)
        else:
            result.already_held.append(key)

    return result


async def get_badge_progress(
    db: AsyncSession,
    user_id: int,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> list[BadgeProgress]:
    """Per-badge progress and state for a user, in registry order."""
    validate_user_id(user_id)
    counts = await get_activity_counts(db, user_id)
    owned = await get_awards(db, user_id)

    items = []
    for d in registry:
        award = owned.get(d.key.value)
        if award is not None:
            state = BadgeState.AWARDED
        elif d.is_eligible(counts):
            state = BadgeState.ELIGIBLE_UNCLAIMED
        else:
            state = BadgeState.NOT_ELIGIBLE

        current = d.progress(counts)
        items.append(BadgeProgress(
            key=d.key.value,
            name=d.name,
            emoji=d.emoji,
            description=d.description,
            threshold=d.threshold,
            current=current,
            percent=round(min(current / d.threshold * 100, 100.0), 2),
            xp_reward=d.xp_reward,
            state=state,
            awarded_at=award.awarded_at if award else None,
        ))
    return items
