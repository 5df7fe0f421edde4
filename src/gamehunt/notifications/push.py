"""Post-commit fan-out of notifications over Redis pub/sub.

Notifications created inside a unit of work are queued on the session and
only published after the caller commits, so a client never sees a level-up
toast for XP that was rolled back.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from gamehunt.db.models import Notification

logger = logging.getLogger(__name__)

PENDING_KEY = "gamehunt.pending_pushes"


def queue_push(db: AsyncSession, notification: Notification) -> None:
    db.info.setdefault(PENDING_KEY, []).append(notification)


@event.listens_for(Session, "after_soft_rollback")
def _drop_on_rollback(session: Session, previous_transaction: Any) -> None:
    # SAVEPOINT rollbacks are handled at dispatch time by _committed
    if previous_transaction.parent is None:
        session.info.pop(PENDING_KEY, None)


def _committed(notification: Notification) -> bool:
    # Rows added inside a rolled-back SAVEPOINT are expunged and go transient
    return inspect(notification).persistent


def discard_pending(db: AsyncSession) -> None:
    """Drop queued pushes after a rollback."""
    db.info.pop(PENDING_KEY, None)


def pending_count(db: AsyncSession) -> int:
    return len(db.info.get(PENDING_KEY, []))


def build_payload(notification: Notification) -> dict[str, Any]:
    return {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "message": notification.message,
            "timestamp": notification.created_at.isoformat() if notification.created_at else None,
            "read": False,
            "metadata": notification.notification_metadata or {},
        },
    }


async def dispatch_pending(db: AsyncSession, redis: Any | None, channel_prefix: str = "ws:user:") -> int:
    """Publish queued notifications. Returns the number published.

    At-most-once: publish failures are logged and the message dropped.
    """
    pending = [n for n in db.info.pop(PENDING_KEY, []) if _committed(n)]
    if redis is None or not pending:
        return 0

    published = 0
    for notification in pending:
        try:
            await redis.publish(
                f"{channel_prefix}{notification.user_id}",
                json.dumps(build_payload(notification)),
            )
            published += 1
        except Exception:
            logger.warning(
                "Failed to push notification via %s%s",
                channel_prefix,
                notification.user_id,
                exc_info=True,
            )
    return published
