"""Consistency audit of the XP ledger and badge awards, and its repair."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gamehunt.db.models import User, XPEvent
from gamehunt.progression.badge_service import evaluate_badges, get_activity_counts, get_awards
from gamehunt.progression.badges import DEFAULT_REGISTRY, BadgeRegistry
from gamehunt.progression.levels import level_for_xp
from gamehunt.progression.schemas import AuditReport, RepairResult, RepairSummary
from gamehunt.progression.xp_service import get_ledger_total, grant_xp, validate_user_id

logger = logging.getLogger(__name__)


async def audit_user(
    db: AsyncSession,
    user_id: int,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> AuditReport:
    """Compare stored xp with the ledger and badge rows with their rewards.

    ``missing_reward_events`` lists awarded badges with a positive reward
    but no ``badge:<KEY>`` ledger entry.
    """
    validate_user_id(user_id)
    counts = await get_activity_counts(db, user_id)
    ledger_xp = await get_ledger_total(db, user_id)
    awards = await get_awards(db, user_id)

    result = await db.execute(
        select(XPEvent.reason).where(XPEvent.user_id == user_id, XPEvent.reason.like("badge:%"))
    )
    rewarded = {reason.split(":", 1)[1] for reason in result.scalars()}

    unawarded = [d.key.value for d in registry.eligible(counts) if d.key.value not in awards]
    missing = sorted(
        key for key, award in awards.items() if award.xp_awarded > 0 and key not in rewarded
    )

    report = AuditReport(
        user_id=user_id,
        stored_xp=counts.xp,
        ledger_xp=ledger_xp,
        level=level_for_xp(counts.xp),
        consistent=counts.xp == ledger_xp and not missing,
        unawarded_eligible=unawarded,
        missing_reward_events=missing,
    )
    if not report.consistent:
        logger.warning(
            "Ledger mismatch for user %s: stored=%s ledger=%s missing_rewards=%s",
            user_id, report.stored_xp, report.ledger_xp, missing,
        )
    return report


async def audit_all_users(
    db: AsyncSession,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> list[AuditReport]:
    result = await db.execute(select(User.id).order_by(User.id))
    reports = [await audit_user(db, uid, registry) for uid in result.scalars().all()]
    logger.info(
        "Audited %d users, %d inconsistent",
        len(reports), sum(1 for r in reports if not r.consistent),
    )
    return reports


async def repair_user(
    db: AsyncSession,
    user_id: int,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> RepairResult:
    """Backfill missing badge rewards, then award eligible badges.

    Each backfill goes through the ledger under the idempotency key
    ``badge-reward:<user>:<KEY>`` so a repeated repair grants nothing.
    Drift between ``users.xp`` and the ledger with no missing event behind
    it is reported by :func:`audit_user` and left alone. The caller owns
    the transaction.
    """
    validate_user_id(user_id)
    report = await audit_user(db, user_id, registry)
    awards = await get_awards(db, user_id)

    backfilled: list[str] = []
    for key in report.missing_reward_events:
        grant = await grant_xp(
            db,
            user_id,
            awards[key].xp_awarded,
            f"badge:{key}",
            source_id=key,
            idempotency_key=f"badge-reward:{user_id}:{key}",
            notify_gain=False,
        )
        if grant.granted:
            backfilled.append(key)

    # After the backfill so reward XP can unlock XP-threshold badges
    awarded = await evaluate_badges(db, user_id, registry)

    if backfilled or awarded:
        logger.info(
            "Repaired user %s: backfilled=%s awarded=%s", user_id, backfilled, awarded,
        )
    return RepairResult(user_id=user_id, badges_awarded=awarded, rewards_backfilled=backfilled)


async def repair_all_users(
    db: AsyncSession,
    registry: BadgeRegistry = DEFAULT_REGISTRY,
) -> RepairSummary:
    """Repair every user, each in its own SAVEPOINT.

    A failing user is recorded in ``failed`` and the batch continues.
    """
    result = await db.execute(select(User.id).order_by(User.id))
    summary = RepairSummary()

    for uid in result.scalars().all():
        try:
            async with db.begin_nested():
                repaired = await repair_user(db, uid, registry)
        except Exception as exc:
            logger.exception("Repair of user %s failed", uid)
            summary.failed[uid] = str(exc) or exc.__class__.__name__
            continue
        if repaired.badges_awarded or repaired.rewards_backfilled:
            summary.repaired.append(repaired)

    logger.info(
        "Repaired %d users, %d failed", len(summary.repaired), len(summary.failed),
    )
    return summary
