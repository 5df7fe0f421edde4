"""Ledger and badge audit and repair."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from gamehunt.db.models import BadgeAward
from gamehunt.progression import maintenance
from gamehunt.progression.badge_service import evaluate_badges
from gamehunt.progression.engine import ProgressionEngine
from gamehunt.progression.maintenance import audit_all_users, audit_user, repair_all_users, repair_user
from gamehunt.progression.xp_service import get_ledger_total, get_user_xp, grant_xp


class TestAudit:
    @pytest.mark.asyncio
    async def test_consistent_user(self, db_session, factory, explorer_registry):
        user = await factory.user()
        author = await factory.user()
        for game in await factory.games(author, 3):
            await factory.vote(user, game)
        await grant_xp(db_session, user.id, 25, "vote")
        await evaluate_badges(db_session, user.id, explorer_registry)
        await db_session.commit()

        report = await audit_user(db_session, user.id, explorer_registry)

        assert report.consistent is True
        assert report.stored_xp == report.ledger_xp == 105
        assert report.level == 2
        assert report.unawarded_eligible == []
        assert report.missing_reward_events == []

    @pytest.mark.asyncio
    async def test_detects_drift_and_missing_rewards(self, db_session, factory):
        user = await factory.user(xp=40)
        db_session.add(BadgeAward(user_id=user.id, badge_key="WISE_OWL", xp_awarded=100, source="admin"))
        await db_session.commit()

        report = await audit_user(db_session, user.id)

        assert report.consistent is False
        assert report.stored_xp == 40
        assert report.ledger_xp == 0
        assert report.missing_reward_events == ["WISE_OWL"]
        assert report.unawarded_eligible == ["PIONEER"]

    @pytest.mark.asyncio
    async def test_all_users(self, db_session, factory):
        good = await factory.user()
        await factory.user(xp=7)
        await grant_xp(db_session, good.id, 10, "signup")
        await db_session.commit()

        reports = await audit_all_users(db_session)

        assert [r.consistent for r in reports] == [True, False]


async def _award_without_reward(db, user, key="WISE_OWL", xp=100):
    db.add(BadgeAward(user_id=user.id, badge_key=key, xp_awarded=xp, source="admin"))
    await db.commit()


class TestRepair:
    @pytest.mark.asyncio
    async def test_backfills_rewards_and_awards_eligible(self, db_session, factory, explorer_registry):
        user = await factory.user()
        author = await factory.user()
        for game in await factory.games(author, 3):
            await factory.vote(user, game)
        await _award_without_reward(db_session, user)

        result = await repair_user(db_session, user.id, explorer_registry)
        await db_session.commit()

        assert result.rewards_backfilled == ["WISE_OWL"]
        assert result.badges_awarded == ["EXPLORER"]
        report = await audit_user(db_session, user.id, explorer_registry)
        assert report.consistent is True
        assert report.unawarded_eligible == []
        assert report.stored_xp == report.ledger_xp == 180

    @pytest.mark.asyncio
    async def test_second_repair_is_noop(self, db_session, factory, explorer_registry):
        user = await factory.user()
        await _award_without_reward(db_session, user)
        await repair_user(db_session, user.id, explorer_registry)

        again = await repair_user(db_session, user.id, explorer_registry)

        assert again.rewards_backfilled == []
        assert again.badges_awarded == []
        assert await get_user_xp(db_session, user.id) == 100

    @pytest.mark.asyncio
    async def test_all_users_isolates_failures(self, db_session, factory, explorer_registry, monkeypatch):
        broken = await factory.user()
        healthy = await factory.user()
        broken_id, healthy_id = broken.id, healthy.id
        await _award_without_reward(db_session, broken)
        await _award_without_reward(db_session, healthy)

        real_evaluate = maintenance.evaluate_badges

        async def _evaluate(db, user_id, registry):
            if user_id == broken_id:
                raise RuntimeError("counts unavailable")
            return await real_evaluate(db, user_id, registry)

        monkeypatch.setattr(maintenance, "evaluate_badges", _evaluate)

        summary = await repair_all_users(db_session, explorer_registry)
        await db_session.commit()

        assert summary.failed == {broken_id: "counts unavailable"}
        assert [r.user_id for r in summary.repaired] == [healthy_id]
        # The failed user's backfill rolled back with its savepoint
        assert await get_ledger_total(db_session, broken_id) == 0
        assert (await audit_user(db_session, healthy_id, explorer_registry)).consistent is True

    @pytest.mark.asyncio
    async def test_engine_commits_and_pushes(self, db_session, factory, test_settings, explorer_registry):
        user = await factory.user()
        author = await factory.user()
        for game in await factory.games(author, 3):
            await factory.vote(user, game)
        redis = AsyncMock()
        engine = ProgressionEngine(db_session, redis=redis, registry=explorer_registry, settings=test_settings)

        result = await engine.repair_user(user.id)

        assert result.badges_awarded == ["EXPLORER"]
        assert redis.publish.await_count == 1
        assert (await audit_user(db_session, user.id, explorer_registry)).consistent is True
