"""
Player registration and ladder query tests.
"""

import pytest

from ladder.database.models import Gender, PlayerLevel
from ladder.operations.challenge_operations import ChallengeAction
from ladder.operations.match_operations import ValidationAction
from ladder.operations.player_operations import PlayerOperations
from ladder.services.leaderboard import LeaderboardService
from ladder.utils.exceptions import PlayerNotFoundError, ValidationError
from ladder.utils.ranking import RankingCategory

from conftest import T0


@pytest.fixture
def player_ops(db):
    return PlayerOperations(db)


@pytest.fixture
def leaderboard(db):
    return LeaderboardService(db.session_factory)


@pytest.mark.asyncio
async def test_register_player_starts_provisional_and_ranked(player_ops):
    player = await player_ops.register_player(
        "  Maya ", gender=Gender.FEMALE, region="Lisbon", level=PlayerLevel.INTERMEDIATE, discord_id=42
    )

    assert player.name == "Maya"
    assert player.points == 1000
    assert player.provisional
    assert player.ranking_general == 1
    assert player.ranking_by_region == 1

    with pytest.raises(ValidationError):
        await player_ops.register_player("Maya again", discord_id=42)

    with pytest.raises(ValidationError):
        await player_ops.register_player("   ")


@pytest.mark.asyncio
async def test_deactivating_clears_positions(db, player_ops, make_player):
    keep = await make_player("Keep", points=1000)
    leave = await make_player("Leave", points=1200)

    await player_ops.set_active(leave.id, False)

    leave = await db.get_player_by_id(leave.id)
    keep = await db.get_player_by_id(keep.id)
    assert leave.ranking_general is None
    assert keep.ranking_general == 1

    with pytest.raises(PlayerNotFoundError):
        await player_ops.set_active(9999, True)


@pytest.mark.asyncio
async def test_category_ranking_and_stats(leaderboard, make_player):
    await make_player("Ana", points=1200, gender=Gender.FEMALE, region="South")
    await make_player("Bea", points=1100, gender=Gender.FEMALE, region="North")
    await make_player("Carl", points=1300, gender=Gender.MALE, region="North")

    page = await leaderboard.get_category_ranking(RankingCategory.GENDER, "Female")
    assert [(e.position, e.name) for e in page.entries] == [(1, "Ana"), (2, "Bea")]
    assert page.total_players == 2
    assert page.value == "female"

    overall = await leaderboard.get_category_ranking(RankingCategory.OVERALL, limit=2)
    assert [e.name for e in overall.entries] == ["Carl", "Ana"]
    assert overall.total_players == 3

    stats = await leaderboard.get_category_stats(RankingCategory.REGION, "North")
    assert stats.total_players == 2
    assert stats.average_points == 1200.0
    assert stats.top_player_name == "Carl"

    assert await leaderboard.get_regions() == ["North", "South"]


@pytest.mark.asyncio
async def test_category_ranking_rejects_bad_values(leaderboard):
    with pytest.raises(ValidationError):
        await leaderboard.get_category_ranking(RankingCategory.GENDER)
    with pytest.raises(ValidationError):
        await leaderboard.get_category_ranking(RankingCategory.LEVEL, "grandmaster")
    with pytest.raises(ValidationError):
        await leaderboard.get_category_ranking(RankingCategory.OVERALL, limit=0)


@pytest.mark.asyncio
async def test_player_stats(leaderboard, challenge_ops, match_ops, make_player):
    alice = await make_player("Alice", points=1000)
    bob = await make_player("Bob", points=1010)

    created = await challenge_ops.create_challenge(alice.id, bob.id, now=T0)
    await challenge_ops.respond_to_challenge(created.challenge.id, bob.id, ChallengeAction.ACCEPT, now=T0)
    match = await match_ops.submit_match_result(created.challenge.id, alice.id, alice.id, "6-3 6-2", now=T0)
    await match_ops.validate_match(match.id, bob.id, ValidationAction.CONFIRM, now=T0)

    stats = await leaderboard.get_player_stats(alice.id)
    assert stats.wins == 1
    assert stats.win_rate == 100.0
    assert (stats.current_streak, stats.streak_type) == (1, 'win')
    assert stats.ranking_general == 1
    assert [(m.opponent_name, m.result, m.points_change) for m in stats.recent_matches] == [("Bob", "win", 28)]

    loser_stats = await leaderboard.get_player_stats(bob.id)
    assert loser_stats.streak_type == 'loss'
    assert loser_stats.recent_matches[0].points_change == 1

    with pytest.raises(PlayerNotFoundError):
        await leaderboard.get_player_stats(9999)


@pytest.mark.asyncio
async def test_search_players(leaderboard, make_player):
    await make_player("Marta Silva", points=1200, level=PlayerLevel.ADVANCED, region="Lisbon")
    await make_player("Martin Cole", points=1100, region="Porto")
    await make_player("Ana Martins", points=1300, region="Lisbon")
    await make_player("Mario Away", points=1400, is_active=False)

    found = await leaderboard.search_players(name="MART")
    assert [e.name for e in found] == ["Ana Martins", "Marta Silva", "Martin Cole"]
    assert [e.position for e in found] == [1, 2, 3]

    assert [e.name for e in await leaderboard.search_players(name="mart", level="advanced")] == ["Marta Silva"]
    assert [e.name for e in await leaderboard.search_players(region="lis", max_points=1250)] == ["Marta Silva"]
    assert await leaderboard.search_players(name="nobody") == []

    with pytest.raises(ValidationError):
        await leaderboard.search_players(min_points=1300, max_points=1200)
    with pytest.raises(ValidationError):
        await leaderboard.search_players(name="mart", limit=51)
    with pytest.raises(ValidationError):
        await leaderboard.search_players(level="grandmaster")
