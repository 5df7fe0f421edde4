"""XP ledger service: atomic grants with level-up detection.

Every grant is one SAVEPOINT holding two statements:

1. ``UPDATE users SET xp = xp + :amount ... RETURNING xp``
2. ``INSERT INTO xp_events``

so the ledger sum always equals ``users.xp``. The increment happens in
the database, never as read-modify-write, and concurrent grants to one
user serialize on the row. The previous total is derived as
``new_total - amount``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gamehunt.db.models import User, XPEvent
from gamehunt.exceptions import (
    InvalidPageError,
    InvalidUserIdError,
    InvalidXPAmountError,
    ProgressionError,
    UserNotFoundError,
)
from gamehunt.notifications import messages
from gamehunt.notifications.service import notify
from gamehunt.progression.levels import level_for_xp, levels_crossed
from gamehunt.progression.schemas import GrantResult, XPHistoryEntry, XPHistoryResponse

logger = logging.getLogger(__name__)

# Column widths of xp_events
MAX_REASON_LENGTH = 64
MAX_SOURCE_ID_LENGTH = 128
MAX_IDEMPOTENCY_KEY_LENGTH = 256


def validate_user_id(user_id: object) -> int:
    if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
        raise InvalidUserIdError(user_id)
    return user_id


def validate_amount(amount: object) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidXPAmountError(amount)
    return amount


async def get_user_xp(db: AsyncSession, user_id: int) -> int:
    """Read the stored XP total straight from the row."""
    result = await db.execute(select(User.xp).where(User.id == user_id))
    xp = result.scalar_one_or_none()
    if xp is None:
        raise UserNotFoundError(user_id)
    return xp


async def get_ledger_total(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(XPEvent.amount), 0)).where(XPEvent.user_id == user_id)
    )
    return int(result.scalar_one())


async def _idempotency_key_used(db: AsyncSession, key: str) -> bool:
    result = await db.execute(select(XPEvent.id).where(XPEvent.idempotency_key == key))
    return result.scalar_one_or_none() is not None


async def grant_xp(
    db: AsyncSession,
    user_id: int,
    amount: int,
    reason: str,
    *,
    source_id: str | None = None,
    idempotency_key: str | None = None,
    description: str | None = None,
    notify_gain: bool = True,
) -> GrantResult:
    """Grant XP to a user and emit level-up notifications.

    One ``level_up`` notification is emitted per level crossed, in
    ascending order. When ``notify_gain`` is set an ``xp`` notification
    precedes them. The caller owns the transaction; nothing is committed
    here.

    Without ``idempotency_key`` every call is a new event. With one, a
    repeated key returns ``granted=False`` and changes nothing.
    """
    validate_user_id(user_id)
    validate_amount(amount)
    if not reason or not reason.strip():
        raise ProgressionError("XP grant reason must not be empty")
    if len(reason) > MAX_REASON_LENGTH:
        raise ProgressionError(f"XP grant reason exceeds {MAX_REASON_LENGTH} characters")
    if source_id is not None and len(source_id) > MAX_SOURCE_ID_LENGTH:
        raise ProgressionError(f"source_id exceeds {MAX_SOURCE_ID_LENGTH} characters")
    if idempotency_key is not None and len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ProgressionError(f"idempotency_key exceeds {MAX_IDEMPOTENCY_KEY_LENGTH} characters")

    now = datetime.now(timezone.utc)

    try:
        async with db.begin_nested():
            result = await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(xp=User.xp + amount)
                .returning(User.xp)
                .execution_options(synchronize_session=False)
            )
            new_total = result.scalar_one_or_none()
            if new_total is None:
                raise UserNotFoundError(user_id)

            db.add(XPEvent(
                user_id=user_id,
                amount=amount,
                reason=reason,
                source_id=source_id,
                idempotency_key=idempotency_key,
                created_at=now,
            ))
            await db.flush()
    except IntegrityError:
        if idempotency_key is None or not await _idempotency_key_used(db, idempotency_key):
            raise
        logger.info("Duplicate XP grant ignored (user=%s, key=%s)", user_id, idempotency_key)
        total = await get_user_xp(db, user_id)
        level = level_for_xp(total)
        return GrantResult(
            granted=False,
            amount=0,
            new_total=total,
            previous_level=level,
            new_level=level,
            leveled_up=False,
        )

    previous_total = new_total - amount
    gained = levels_crossed(previous_total, new_total)
    previous_level = level_for_xp(previous_total)
    new_level = level_for_xp(new_total)

    if notify_gain:
        await notify(
            db, user_id, messages.xp_gained(amount, description), "xp",
            metadata={"amount": amount, "reason": reason, "new_total": new_total},
        )

    for level in gained:
        await notify(
            db, user_id, messages.level_reached(level), "level_up",
            metadata={"new_level": level, "previous_level": level - 1},
        )

    if gained:
        logger.info("User %s reached level %s (+%s XP, %s)", user_id, new_level, amount, reason)

    return GrantResult(
        granted=True,
        amount=amount,
        new_total=new_total,
        previous_level=previous_level,
        new_level=new_level,
        leveled_up=bool(gained),
        levels_gained=gained,
    )


async def get_xp_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> XPHistoryResponse:
    """Paginated ledger entries, most recent first."""
    if page < 1 or per_page < 1:
        raise InvalidPageError(page, per_page)
    total_result = await db.execute(
        select(func.count()).select_from(XPEvent).where(XPEvent.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(XPEvent)
        .where(XPEvent.user_id == user_id)
        .order_by(XPEvent.created_at.desc(), XPEvent.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    entries = [
        XPHistoryEntry(
            amount=e.amount,
            reason=e.reason,
            source_id=e.source_id,
            created_at=e.created_at,
        )
        for e in result.scalars()
    ]
    return XPHistoryResponse(entries=entries, total=total, page=page, per_page=per_page)
