"""Notification message builders and post-commit push."""

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from gamehunt.db.models import Notification
from gamehunt.notifications import messages, push
from gamehunt.notifications.push import (
    PENDING_KEY,
    build_payload,
    discard_pending,
    dispatch_pending,
    pending_count,
    queue_push,
)


def _notification(id_: int, user_id: int = 7, type_: str = "level_up") -> Notification:
    return Notification(
        id=id_,
        user_id=user_id,
        type=type_,
        message=messages.level_reached(2),
        notification_metadata={"new_level": 2},
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class TestMessages:
    def test_xp_gained(self):
        assert messages.xp_gained(5) == "⚡ +5 XP gained!"
        assert messages.xp_gained(5, "Thanks for voting").endswith("Thanks for voting")

    def test_level_reached(self):
        assert "Level 4 reached" in messages.level_reached(4)

    def test_badge_messages(self):
        assert "Explorer unlocked! +80 XP" in messages.badge_claimed("Explorer", 80)
        assert "claim" in messages.badge_unlocked("Explorer")

    def test_welcome_and_milestone(self):
        assert "ana" in messages.welcome("ana")
        assert "First vote" in messages.milestone_reached("First vote")


class TestPushQueue:
    def test_queue_and_discard(self):
        db = SimpleNamespace(info={})
        queue_push(db, _notification(1))
        queue_push(db, _notification(2))
        assert pending_count(db) == 2
        discard_pending(db)
        assert pending_count(db) == 0

    def test_payload_shape(self):
        payload = build_payload(_notification(3))
        assert payload["event"] == "notification"
        assert payload["data"]["id"] == "3"
        assert payload["data"]["type"] == "level_up"
        assert payload["data"]["metadata"] == {"new_level": 2}
        assert payload["data"]["timestamp"].startswith("2025-01-01")


class TestDispatch:
    @pytest.fixture(autouse=True)
    def _treat_as_committed(self, monkeypatch):
        monkeypatch.setattr(push, "_committed", lambda notification: True)

    @pytest.mark.asyncio
    async def test_publishes_to_user_channel(self):
        db = SimpleNamespace(info={})
        queue_push(db, _notification(1, user_id=42))
        redis = AsyncMock()

        assert await dispatch_pending(db, redis) == 1
        channel, body = redis.publish.await_args.args
        assert channel == "ws:user:42"
        assert json.loads(body)["data"]["id"] == "1"
        assert PENDING_KEY not in db.info

    @pytest.mark.asyncio
    async def test_without_redis_drops_queue(self):
        db = SimpleNamespace(info={})
        queue_push(db, _notification(1))
        assert await dispatch_pending(db, None) == 0
        assert pending_count(db) == 0

    @pytest.mark.asyncio
    async def test_publish_failure_is_dropped(self):
        db = SimpleNamespace(info={})
        queue_push(db, _notification(1))
        queue_push(db, _notification(2))
        redis = AsyncMock()
        redis.publish.side_effect = [ConnectionError("redis down"), 1]

        assert await dispatch_pending(db, redis, channel_prefix="custom:") == 1
        assert redis.publish.await_count == 2
        assert redis.publish.await_args.args[0] == "custom:7"

    @pytest.mark.asyncio
    async def test_skips_rows_that_were_never_committed(self, monkeypatch):
        monkeypatch.setattr(push, "_committed", lambda notification: notification.id != 1)
        db = SimpleNamespace(info={})
        queue_push(db, _notification(1))
        queue_push(db, _notification(2))
        redis = AsyncMock()

        assert await dispatch_pending(db, redis) == 1
        assert json.loads(redis.publish.await_args.args[1])["data"]["id"] == "2"
