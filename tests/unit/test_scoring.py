"""Leaderboard decay scoring tests."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from gamehunt.progression.engine import ProgressionEngine
from gamehunt.progression.scoring import age_hours, rank_items, score

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestScore:
    def test_zero_counters_score_zero(self):
        for age in (0.0, 1.5, 36.0, 10_000.0):
            assert score(0, 0, 0, age) == 0.0

    def test_fresh_item(self):
        expected = math.log(11) + 0.6 * math.log(5) + 0.4 * math.log(21)
        assert score(10, 4, 20, 0.0) == pytest.approx(expected)

    def test_decay_constant(self):
        assert score(10, 0, 0, 36.0) == pytest.approx(math.log(11) / math.e)

    def test_half_life_about_25_hours(self):
        ratio = score(50, 0, 0, 25.0) / score(50, 0, 0, 0.0)
        assert ratio == pytest.approx(0.5, abs=0.01)

    @pytest.mark.parametrize("counters", [(0, 2, 3), (5, 0, 1), (7, 7, 7)])
    def test_monotonic_in_age(self, counters):
        ages = [0.0, 0.5, 3.0, 24.0, 72.0, 500.0]
        scores = [score(*counters, a) for a in ages]
        assert scores == sorted(scores, reverse=True)

    def test_monotonic_in_each_counter(self):
        for v in range(0, 30):
            assert score(v, 3, 3, 10.0) <= score(v + 1, 3, 3, 10.0)
            assert score(3, v, 3, 10.0) <= score(3, v + 1, 3, 10.0)
            assert score(3, 3, v, 10.0) <= score(3, 3, v + 1, 10.0)

    def test_votes_weigh_more_than_follows_and_clicks(self):
        assert score(10, 0, 0, 0) > score(0, 10, 0, 0) > score(0, 0, 10, 0)

    def test_engine_clamps_negative_inputs(self):
        assert ProgressionEngine.score_leaderboard_item(-3, -1, -9, -2.0) == 0.0
        assert ProgressionEngine.score_leaderboard_item(4, 0, 0, 0.0) == pytest.approx(math.log(5))


class TestAgeHours:
    def test_naive_timestamp_is_utc(self):
        created = (NOW - timedelta(hours=6)).replace(tzinfo=None)
        assert age_hours(created, NOW) == pytest.approx(6.0)

    def test_future_timestamp_clamped(self):
        assert age_hours(NOW + timedelta(hours=2), NOW) == 0.0


class TestRankItems:
    def test_empty(self):
        assert rank_items([], NOW) == []

    def test_orders_by_score_then_newer_then_id(self):
        items = [
            {"id": 1, "votes": 5, "follows": 0, "clicks": 0, "created_at": NOW - timedelta(hours=2)},
            {"id": 2, "votes": 50, "follows": 2, "clicks": 9, "created_at": NOW - timedelta(hours=1)},
            {"id": 3, "votes": 0, "follows": 0, "clicks": 0, "created_at": NOW - timedelta(hours=5)},
            {"id": 4, "votes": 0, "follows": 0, "clicks": 0, "created_at": NOW - timedelta(hours=1)},
            {"id": 5, "votes": 0, "follows": 0, "clicks": 0, "created_at": NOW - timedelta(hours=1)},
        ]
        ranked = rank_items(items, NOW)
        assert [i["id"] for i in ranked] == [2, 1, 4, 5, 3]
        assert [i["rank"] for i in ranked] == [1, 2, 3, 4, 5]
        assert ranked[0]["age_hours"] == pytest.approx(1.0)

    def test_negative_counters_clamped(self):
        ranked = rank_items([{"id": 1, "votes": -4, "follows": -1, "clicks": -2, "created_at": NOW}], NOW)
        assert ranked[0]["score"] == 0.0
