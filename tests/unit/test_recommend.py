"""Content-based recommender tests."""

import pytest

from gamehunt.db.models import Game
from gamehunt.games.recommend import cosine_similarity, rank_by_similarity, tokenize, vectorize


def _game(id_: int, title: str, tagline: str | None = None, platforms: list[str] | None = None) -> Game:
    return Game(id=id_, user_id=1, title=title, tagline=tagline, description=None, platforms=platforms or [])


class TestTokenize:
    def test_lowercases_and_splits(self):
        assert tokenize("Puzzle, RPG_games!") == ["puzzle", "rpg", "games"]

    def test_dots_and_dashes(self):
        assert tokenize("tower-defense.io") == ["tower", "defense", "io"]

    def test_empty(self):
        assert tokenize("") == []
        assert tokenize(None) == []


class TestCosine:
    def test_identical(self):
        v = vectorize(["space", "puzzle", "space"])
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_disjoint(self):
        assert cosine_similarity(vectorize(["a"]), vectorize(["b"])) == 0.0

    def test_empty_vector(self):
        assert cosine_similarity(vectorize([]), vectorize(["a"])) == 0.0

    def test_partial_overlap(self):
        # (1*1) / (sqrt(2) * sqrt(1))
        sim = cosine_similarity(vectorize(["space", "puzzle"]), vectorize(["puzzle"]))
        assert sim == pytest.approx(1 / 2 ** 0.5)


class TestRank:
    def test_ranks_and_drops_zero(self):
        games = [
            _game(1, "Farm Life", "cozy farming"),
            _game(2, "Space Puzzle", "a puzzle in space", ["ios"]),
            _game(3, "Puzzle Quest"),
        ]
        ranked = rank_by_similarity("space puzzle", games, take=10)
        assert [g.id for g, _ in ranked] == [2, 3]
        assert ranked[0][1] > ranked[1][1]

    def test_platforms_are_words(self):
        ranked = rank_by_similarity("android", [_game(1, "Racer", platforms=["android", "ios"])], take=5)
        assert len(ranked) == 1

    def test_take_limits(self):
        games = [_game(i, f"Puzzle {i}") for i in range(1, 6)]
        assert len(rank_by_similarity("puzzle", games, take=2)) == 2
