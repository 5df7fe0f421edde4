"""Notification creation and outbox queries.

:func:`notify` is the emitter used by the XP and badge services. It is
fire-and-forget: the insert runs in its own SAVEPOINT and any failure is
logged and swallowed so the triggering grant or award still commits.

Types: xp, level_up, badge_unlocked, badge_claimed, welcome, milestone, system
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gamehunt.db.models import Notification
from gamehunt.exceptions import InvalidNotificationTypeError, InvalidPageError
from gamehunt.notifications.push import queue_push

logger = logging.getLogger(__name__)

VALID_TYPES = {"xp", "level_up", "badge_unlocked", "badge_claimed", "welcome", "milestone", "system"}

# Types a user should only ever receive once
ONCE_PER_USER_TYPES = {"welcome"}


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    message: str,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    """Persist a notification and queue it for post-commit push."""
    if type_ not in VALID_TYPES:
        raise InvalidNotificationTypeError(
            f"Invalid notification type: {type_}. Must be one of {sorted(VALID_TYPES)}"
        )

    if type_ in ONCE_PER_USER_TYPES:
        result = await db.execute(
            select(Notification).where(Notification.user_id == user_id, Notification.type == type_)
        )
        existing = result.scalars().first()
        if existing is not None:
            return existing

    notification = Notification(
        user_id=user_id,
        type=type_,
        message=message,
        notification_metadata=metadata or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    queue_push(db, notification)
    return notification


async def notify(
    db: AsyncSession,
    user_id: int,
    message: str,
    type_: str,
    metadata: dict[str, Any] | None = None,
) -> Notification | None:
    """Create a notification without ever failing the caller."""
    try:
        async with db.begin_nested():
            return await create_notification(db, user_id, type_, message, metadata)
    except Exception:
        logger.warning("Failed to create %s notification for user %s", type_, user_id, exc_info=True)
        return None


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """One page of the outbox, newest first, with the total count."""
    if page < 1 or per_page < 1:
        raise InvalidPageError(page, per_page)
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_as_read(db: AsyncSession, user_id: int, notification_id: int) -> bool:
    """False when the notification does not exist or belongs to someone else."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(read=True)
    )
    await db.flush()
    return result.rowcount > 0


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    """Returns how many notifications changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.flush()
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return result.scalar_one()
