"""
Shared pytest configuration for scheduler tests.

Uses a file-backed SQLite database per test (aiosqlite) so that sessions
opened by the services themselves see data committed by the fixtures.
"""

import os

os.environ.setdefault("ENV", "test")

from datetime import datetime  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import pytz  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from challenge_league.database.db import Base  # noqa: E402
from challenge_league.database.models import (  # noqa: E402
    League,
    LeagueMembership,
    Prompt,
    PromptStatus,
    Response,
    User,
    Vote,
)


def utc(year, month, day, hour=0, minute=0, second=0) -> datetime:
    """Build an aware UTC datetime."""
    return pytz.UTC.localize(datetime(year, month, day, hour, minute, second))


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine backed by a temporary SQLite file."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'scheduler_test.db'}",
        echo=False,
        poolclass=NullPool,  # Each operation gets a new connection
    )

    async with engine.begin() as conn:
        from challenge_league.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    # Monkey-patch AsyncSessionLocal so services that open their own sessions
    # use the test database
    from challenge_league.database import db

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Run without Redis: run locks report 'unavailable' and are skipped."""
    from challenge_league.services import redis_service

    async def _no_client():
        return None

    monkeypatch.setattr(redis_service, "get_redis_client", _no_client)


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------


class LeagueFactory:
    """Builds users, leagues, prompts, responses and votes on a session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._user_seq = 0

    async def user(self, username: Optional[str] = None) -> User:
        self._user_seq += 1
        user = User(username=username or f"player{self._user_seq}", email=None)
        self.session.add(user)
        await self.session.flush()
        return user

    async def league(
        self,
        owner: Optional[User] = None,
        members: int = 0,
        submission_days: int = 7,
        voting_days: int = 2,
        votes_per_player: int = 3,
        is_active: bool = True,
        is_started: bool = True,
        name: str = "Photo League",
    ) -> League:
        owner = owner or await self.user()
        league = League(
            name=name,
            owner_id=owner.id,
            is_active=is_active,
            is_started=is_started,
            submission_days=submission_days,
            voting_days=voting_days,
            votes_per_player=votes_per_player,
        )
        self.session.add(league)
        await self.session.flush()
        await self.member(league, owner)
        for _ in range(members):
            await self.member(league, await self.user())
        return league

    async def member(self, league: League, user: User, is_active: bool = True) -> LeagueMembership:
        membership = LeagueMembership(league_id=league.id, user_id=user.id, is_active=is_active)
        self.session.add(membership)
        await self.session.flush()
        return membership

    async def member_ids(self, league: League):
        from challenge_league.services.data_service import get_active_member_user_ids

        return await get_active_member_user_ids(self.session, league.id)

    async def prompt(
        self,
        league: League,
        text: str = "Photograph something blue",
        status: PromptStatus = PromptStatus.SCHEDULED,
        queue_order: int = 1,
        phase_started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        **flags,
    ) -> Prompt:
        prompt = Prompt(
            league_id=league.id,
            text=text,
            status=status,
            queue_order=queue_order,
            phase_started_at=phase_started_at,
            completed_at=completed_at,
            **flags,
        )
        self.session.add(prompt)
        await self.session.flush()
        return prompt

    async def response(
        self,
        prompt: Prompt,
        user: User,
        submitted_at: Optional[datetime] = None,
        image_url: Optional[str] = "https://challenge-photos.s3.us-west-2.amazonaws.com/submissions/1.jpg",
    ) -> Response:
        response = Response(
            prompt_id=prompt.id,
            user_id=user.id,
            caption=f"Caption by {user.username}",
            image_url=image_url,
            submitted_at=submitted_at or utc(2026, 1, 20, 12, 0),
        )
        self.session.add(response)
        await self.session.flush()
        return response

    async def vote(self, voter: User, response: Response) -> Vote:
        vote = Vote(voter_id=voter.id, response_id=response.id)
        self.session.add(vote)
        await self.session.flush()
        return vote


@pytest_asyncio.fixture
async def factory(db_session):
    """Data builder bound to the test session. Call `await db_session.commit()` before running services."""
    return LeagueFactory(db_session)
