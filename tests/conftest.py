"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from gamehunt.config import Settings, get_settings
from gamehunt.database import create_engine_for, make_session_factory
from gamehunt.db.base import Base
from gamehunt.db.models import (
    Comment,
    Game,
    GameFollow,
    Notification,
    User,
    UserFollow,
    Vote,
)
from gamehunt.progression.badges import BadgeDefinition, BadgeKey, BadgeRegistry, Metric


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, redis_url="", log_format="console")


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file per test, schema created from the models."""
    eng = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'gamehunt.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class Factory:
    """Creates committed platform rows for a test."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0

    async def _save(self, *rows):
        self.db.add_all(rows)
        await self.db.commit()
        return rows[0] if len(rows) == 1 else list(rows)

    async def user(self, username: str | None = None, xp: int = 0) -> User:
        self._seq += 1
        return await self._save(User(username=username or f"player{self._seq}", xp=xp))

    async def game(
        self,
        owner: User,
        title: str = "Untitled",
        *,
        status: str = "PUBLISHED",
        clicks: int = 0,
        created_at: datetime | None = None,
        tagline: str | None = None,
        description: str | None = None,
        platforms: list[str] | None = None,
    ) -> Game:
        return await self._save(Game(
            user_id=owner.id,
            title=title,
            status=status,
            clicks=clicks,
            created_at=created_at or datetime.now(timezone.utc),
            tagline=tagline,
            description=description,
            platforms=platforms or [],
        ))

    async def games(self, owner: User, count: int) -> list[Game]:
        return [await self.game(owner, f"Game {i}") for i in range(count)]

    async def vote(self, voter: User, game: Game) -> Vote:
        return await self._save(Vote(user_id=voter.id, game_id=game.id))

    async def comment(self, author: User, game: Game, body: str = "nice") -> Comment:
        return await self._save(Comment(user_id=author.id, game_id=game.id, body=body))

    async def follow_game(self, user: User, game: Game) -> GameFollow:
        return await self._save(GameFollow(user_id=user.id, game_id=game.id))

    async def follow_user(self, follower: User, following: User) -> UserFollow:
        return await self._save(UserFollow(follower_id=follower.id, following_id=following.id))


@pytest.fixture
def factory(db_session: AsyncSession) -> Factory:
    return Factory(db_session)


# --- Query helpers ---


async def count_rows(db: AsyncSession, model, **filters) -> int:
    stmt = select(model)
    for name, value in filters.items():
        stmt = stmt.where(getattr(model, name) == value)
    result = await db.execute(stmt)
    return len(result.scalars().all())


@pytest.fixture
def rows():
    """``await rows(db, Model, user_id=1)`` returns a row count."""
    return count_rows


async def notification_types(db: AsyncSession, user_id: int) -> list[str]:
    result = await db.execute(
        select(Notification.type).where(Notification.user_id == user_id).order_by(Notification.id)
    )
    return list(result.scalars().all())


@pytest.fixture
def notes():
    """``await notes(db, user_id)`` returns notification types in creation order."""
    return notification_types


@pytest.fixture
def explorer_registry() -> BadgeRegistry:
    """A one-badge registry: EXPLORER for casting three votes, worth 80 XP."""
    return BadgeRegistry([
        BadgeDefinition(
            key=BadgeKey.EXPLORER,
            name="Explorer",
            emoji="\U0001f9ed",
            description="Cast 3 votes",
            metric=Metric.VOTES_CAST,
            threshold=3,
            xp_reward=80,
        ),
    ])

