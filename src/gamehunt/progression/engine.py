"""Caller-facing progression operations.

Each public coroutine is one unit of work: it runs the service calls,
commits, then publishes the notifications queued during that unit of work.
On any exception the session is rolled back, the queued pushes are dropped
and the exception propagates.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gamehunt.config import Settings, get_settings
from gamehunt.exceptions import UnknownActivityError
from gamehunt.notifications.push import discard_pending, dispatch_pending
from gamehunt.progression import badge_service, maintenance, xp_service
from gamehunt.progression.badges import DEFAULT_REGISTRY, BadgeKey, BadgeRegistry
from gamehunt.progression.levels import compute_level_progress
from gamehunt.progression.schemas import (
    ActivityResult,
    ClaimResult,
    ForceAwardResult,
    GrantResult,
    LevelProgress,
    RepairResult,
    RepairSummary,
)
from gamehunt.progression.scoring import score

logger = structlog.get_logger()

T = TypeVar("T")


class Activity(str, Enum):
    SIGNUP = "signup"
    VOTE = "vote"
    COMMENT = "comment"
    FOLLOW = "follow"
    GAME_SUBMITTED = "game_submitted"


def activity_rewards(settings: Settings) -> dict[Activity, int]:
    return {
        Activity.SIGNUP: settings.xp_signup,
        Activity.VOTE: settings.xp_vote,
        Activity.COMMENT: settings.xp_comment,
        Activity.FOLLOW: settings.xp_follow,
        Activity.GAME_SUBMITTED: settings.xp_game_submitted,
    }


class ProgressionEngine:
    """Binds a session, an optional redis client and a badge registry."""

    def __init__(
        self,
        db: AsyncSession,
        redis: Any | None = None,
        registry: BadgeRegistry = DEFAULT_REGISTRY,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.registry = registry
        self.settings = settings or get_settings()

    async def _unit_of_work(self, op: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await op()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            discard_pending(self.db)
            raise

        await dispatch_pending(self.db, self.redis, self.settings.notification_channel_prefix)
        return result

    async def grant_xp(
        self,
        user_id: int,
        amount: int,
        reason: str,
        *,
        source_id: str | None = None,
        idempotency_key: str | None = None,
        description: str | None = None,
    ) -> GrantResult:
        result = await self._unit_of_work(lambda: xp_service.grant_xp(
            self.db,
            user_id,
            amount,
            reason,
            source_id=source_id,
            idempotency_key=idempotency_key,
            description=description,
            notify_gain=self.settings.notify_xp_gains,
        ))
        logger.info(
            "xp_granted",
            user_id=user_id,
            amount=result.amount,
            reason=reason,
            new_total=result.new_total,
            new_level=result.new_level,
            granted=result.granted,
        )
        return result

    async def evaluate_badges(self, user_id: int) -> list[str]:
        awarded = await self._unit_of_work(
            lambda: badge_service.evaluate_badges(self.db, user_id, self.registry)
        )
        for key in awarded:
            logger.info("badge_awarded", user_id=user_id, badge_key=key, source="rule")
        return awarded

    async def claim_badge(self, user_id: int, badge_key: str | BadgeKey) -> ClaimResult:
        result = await self._unit_of_work(
            lambda: badge_service.claim_badge(self.db, user_id, badge_key, self.registry)
        )
        if result.success:
            logger.info("badge_awarded", user_id=user_id, badge_key=result.badge_key, source="claim")
        return result

    async def force_award_all(self, user_id: int) -> ForceAwardResult:
        result = await self._unit_of_work(
            lambda: badge_service.force_award_all(self.db, user_id, self.registry)
        )
        for key, error in result.failed.items():
            logger.warning("force_award_failed", user_id=user_id, badge_key=key, error=error)
        logger.info(
            "force_award_completed",
            user_id=user_id,
            awarded=result.awarded,
            already_held=result.already_held,
        )
        return result

    async def repair_user(self, user_id: int) -> RepairResult:
        result = await self._unit_of_work(
            lambda: maintenance.repair_user(self.db, user_id, self.registry)
        )
        logger.info(
            "user_repaired",
            user_id=user_id,
            badges_awarded=result.badges_awarded,
            rewards_backfilled=result.rewards_backfilled,
        )
        return result

    async def repair_all_users(self) -> RepairSummary:
        result = await self._unit_of_work(
            lambda: maintenance.repair_all_users(self.db, self.registry)
        )
        for uid, error in result.failed.items():
            logger.warning("repair_failed", user_id=uid, error=error)
        logger.info("repair_completed", repaired=len(result.repaired), failed=len(result.failed))
        return result

    async def record_activity(self, user_id: int, activity: Activity | str) -> ActivityResult:
        """Grant the configured XP for an activity, then re-evaluate badges.

        Both steps share one unit of work.
        """
        try:
            activity = Activity(activity)
        except ValueError:
            raise UnknownActivityError(activity) from None
        amount = activity_rewards(self.settings)[activity]

        async def _run() -> ActivityResult:
            grant = None
            if amount > 0:
                grant = await xp_service.grant_xp(
                    self.db,
                    user_id,
                    amount,
                    activity.value,
                    notify_gain=self.settings.notify_xp_gains,
                )
            awarded = await badge_service.evaluate_badges(self.db, user_id, self.registry)
            return ActivityResult(activity=activity.value, grant=grant, badges_awarded=awarded)

        result = await self._unit_of_work(_run)
        logger.info(
            "activity_recorded",
            user_id=user_id,
            activity=activity.value,
            xp=amount,
            badges_awarded=result.badges_awarded,
        )
        return result

    @staticmethod
    def compute_level_progress(total_xp: int) -> LevelProgress:
        return compute_level_progress(total_xp)

    @staticmethod
    def score_leaderboard_item(votes: int, follows: int, clicks: int, age_hours: float) -> float:
        return score(max(0, votes), max(0, follows), max(0, clicks), max(0.0, age_hours))
