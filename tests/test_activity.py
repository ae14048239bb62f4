"""
Activity feed tests: entries follow the transitions that commit them.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from ladder.database.models import Activity, ActivityType, Gender
from ladder.operations.activity_operations import ActivityOperations
from ladder.operations.challenge_operations import ChallengeAction
from ladder.operations.match_operations import ValidationAction
from ladder.operations.player_operations import PlayerOperations
from ladder.operations.ranking_operations import RankingRecomputer
from ladder.utils.exceptions import ValidationError

from conftest import T0


@pytest.fixture
def activity_ops(db):
    return ActivityOperations(db)


@pytest.mark.asyncio
async def test_feed_follows_challenge_and_match(activity_ops, challenge_ops, match_ops, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)

    created = await challenge_ops.create_challenge(alice.id, bob.id, now=T0)
    await challenge_ops.respond_to_challenge(
        created.challenge.id, bob.id, ChallengeAction.ACCEPT, now=T0 + timedelta(hours=1)
    )
    match = await match_ops.submit_match_result(
        created.challenge.id, alice.id, alice.id, "6-4 6-3", now=T0 + timedelta(hours=2)
    )
    await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=T0 + timedelta(hours=3))

    feed = await activity_ops.get_feed()

    assert [a.type for a in feed] == [
        ActivityType.MATCH_COMPLETED,
        ActivityType.CHALLENGE_ACCEPTED,
        ActivityType.CHALLENGE_CREATED,
    ]
    completed = feed[0]
    assert completed.description == "Alice beat Bob 6-4 6-3"
    assert completed.match_id == match.id
    assert completed.data == {'winner_points': 28, 'loser_points': 1}
    assert feed[1].player.name == "Bob"
    assert feed[2].opponent.name == "Bob"


@pytest.mark.asyncio
async def test_feed_filters_by_player_and_limit(activity_ops, challenge_ops, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    carol = await make_player("Carol", points=1020)

    await challenge_ops.create_challenge(alice.id, bob.id, now=T0)
    declined = await challenge_ops.create_challenge(bob.id, carol.id, now=T0 + timedelta(hours=1))
    await challenge_ops.respond_to_challenge(
        declined.challenge.id, carol.id, ChallengeAction.DECLINE, now=T0 + timedelta(hours=2)
    )

    carol_feed = await activity_ops.get_feed(player_id=carol.id)
    assert [a.type for a in carol_feed] == [ActivityType.CHALLENGE_DECLINED, ActivityType.CHALLENGE_CREATED]
    assert carol_feed[0].description == "Carol declined the challenge from Bob"

    assert len(await activity_ops.get_feed(limit=1)) == 1

    with pytest.raises(ValidationError):
        await activity_ops.get_feed(limit=0)


@pytest.mark.asyncio
async def test_registration_is_announced(db, activity_ops):
    player = await PlayerOperations(db).register_player("Maya", gender=Gender.FEMALE, region="Lisbon")

    feed = await activity_ops.get_feed()
    assert [(a.type, a.player_id) for a in feed] == [(ActivityType.PLAYER_JOINED, player.id)]
    assert feed[0].description == "Maya joined the ladder"


@pytest.mark.asyncio
async def test_rolled_back_decline_leaves_no_entry(db, activity_ops, challenge_ops, monkeypatch, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    for hour in range(2):
        now = T0 + timedelta(hours=hour)
        created = await challenge_ops.create_challenge(alice.id, bob.id, now=now)
        await challenge_ops.respond_to_challenge(created.challenge.id, bob.id, ChallengeAction.DECLINE, now=now)
    third = await challenge_ops.create_challenge(alice.id, bob.id, now=T0 + timedelta(hours=2))

    async def broken_recompute(self, session=None):
        raise OperationalError("UPDATE players", {}, Exception("disk I/O error"))

    monkeypatch.setattr(RankingRecomputer, "update_rankings", broken_recompute)

    with pytest.raises(OperationalError):
        await challenge_ops.respond_to_challenge(
            third.challenge.id, bob.id, ChallengeAction.DECLINE, now=T0 + timedelta(hours=2)
        )

    declines = [a for a in await activity_ops.get_feed() if a.type == ActivityType.CHALLENGE_DECLINED]
    assert len(declines) == 2


@pytest.mark.asyncio
async def test_purge_detaches_feed_entries(db, challenge_ops, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)
    created = await challenge_ops.create_challenge(alice.id, bob.id, now=T0)
    await challenge_ops.cleanup_expired_challenges(now=T0 + timedelta(days=3))

    assert await challenge_ops.purge_stale_challenges(older_than_days=30, now=T0 + timedelta(days=31)) == 1

    async with db.get_session() as session:
        entries = (await session.execute(select(Activity))).scalars().all()
    assert [(a.type, a.challenge_id) for a in entries] == [(ActivityType.CHALLENGE_CREATED, None)]
    assert entries[0].player_id == alice.id
    assert created.challenge.id is not None
