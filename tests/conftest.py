"""
Shared fixtures: a throwaway SQLite database per test and player factories.
"""

import os

os.environ.setdefault('LOG_TO_FILE', 'False')

from datetime import datetime

import pytest

from ladder.database.database import Database
from ladder.database.models import Gender, Player, PlayerLevel
from ladder.operations.challenge_operations import ChallengeOperations
from ladder.operations.match_operations import MatchOperations
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.services.notifications import MemoryNotificationDispatcher, NotificationService

T0 = datetime(2025, 3, 10, 12, 0, 0)


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path}/ladder.db")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def dispatcher() -> MemoryNotificationDispatcher:
    return MemoryNotificationDispatcher()


@pytest.fixture
def notifier(dispatcher) -> NotificationService:
    return NotificationService(dispatcher)


@pytest.fixture
def challenge_ops(db, notifier) -> ChallengeOperations:
    return ChallengeOperations(db, notifier)


@pytest.fixture
def match_ops(db, notifier) -> MatchOperations:
    return MatchOperations(db, notifier)


@pytest.fixture
def make_player(db):
    """Insert a player and recompute rankings so its positions are populated."""
    async def _make(
        name: str,
        points: int = 1000,
        level: PlayerLevel = PlayerLevel.BEGINNER,
        gender: Gender = Gender.MALE,
        region: str = 'North',
        provisional: bool = False,
        wins: int = 0,
        losses: int = 0,
        is_active: bool = True,
        **fields
    ) -> Player:
        async with db.transaction() as session:
            player = Player(
                name=name,
                points=points,
                level=level,
                gender=gender,
                region=region,
                provisional=provisional,
                provisional_matches_played=0,
                wins=wins,
                losses=losses,
                is_active=is_active,
                registered_at=T0,
                last_active=T0,
                **fields
            )
            session.add(player)
            await session.flush()
            await RankingRecomputer(db).update_rankings(session)
        return await db.get_player_by_id(player.id)

    return _make
