"""
EligibilityEvaluator tests: rule order, level gaps and the dynamic reach.
"""

from dataclasses import replace

import pytest

from ladder.config import Config
from ladder.data_models.snapshots import PlayerSnapshot
from ladder.database.models import PlayerLevel
from ladder.utils.eligibility import EligibilityEvaluator, dynamic_reach


def player(player_id, level=PlayerLevel.INTERMEDIATE, position=None, **overrides):
    snap = PlayerSnapshot(
        player_id=player_id,
        name=f"P{player_id}",
        points=1000,
        level=level,
        ranking_general=position,
        ranking_by_level=position,
        provisional=False,
        active_challenge_count=0,
        is_active=True,
    )
    return replace(snap, **overrides)


@pytest.mark.parametrize("population,reach", [
    (0, 1), (9, 1), (19, 1), (20, 1), (21, 2), (40, 2),
    (43, 3), (60, 3), (80, 4), (100, 5), (120, 6),
])
def test_dynamic_reach(population, reach):
    assert dynamic_reach(population) == reach


def test_self_challenge_denied():
    decision = EligibilityEvaluator.can_challenge(player(1, position=2), player(1, position=2), 10)
    assert not decision.allowed
    assert "yourself" in decision.reason


def test_inactive_player_denied():
    decision = EligibilityEvaluator.can_challenge(
        player(1, position=3), player(2, position=2, is_active=False), 10
    )
    assert not decision.allowed
    assert "Inactive" in decision.reason


def test_two_levels_up_denied():
    decision = EligibilityEvaluator.can_challenge(
        player(1, level=PlayerLevel.BEGINNER, position=1),
        player(2, level=PlayerLevel.ADVANCED, position=9),
        10
    )
    assert not decision.allowed
    assert "too far above" in decision.reason


def test_lower_level_denied():
    decision = EligibilityEvaluator.can_challenge(
        player(1, level=PlayerLevel.ADVANCED, position=5),
        player(2, level=PlayerLevel.INTERMEDIATE, position=1),
        10
    )
    assert not decision.allowed
    assert "below" in decision.reason


def test_one_level_up_ignores_positions():
    decision = EligibilityEvaluator.can_challenge(
        player(1, level=PlayerLevel.BEGINNER, position=30),
        player(2, level=PlayerLevel.INTERMEDIATE, position=1),
        30
    )
    assert decision.allowed
    assert decision.reach is None


def test_same_level_must_be_above():
    decision = EligibilityEvaluator.can_challenge(player(1, position=2), player(2, position=3), 10)
    assert not decision.allowed
    assert "above you" in decision.reason


def test_population_20_allows_one_position():
    decision = EligibilityEvaluator.can_challenge(player(1, position=6), player(2, position=5), 20)
    assert decision.allowed
    assert decision.reach == 1


def test_two_positions_needs_population_above_20():
    challenger, challenged = player(1, position=7), player(2, position=5)

    denied = EligibilityEvaluator.can_challenge(challenger, challenged, 20)
    assert not denied.allowed
    assert "at most 1 position" in denied.reason
    assert "20 active players" in denied.reason

    for population in (21, 40):
        decision = EligibilityEvaluator.can_challenge(challenger, challenged, population)
        assert decision.allowed
        assert decision.reach == 2


def test_three_positions_needs_reach_three():
    challenger, challenged = player(1, position=8), player(2, position=5)
    assert not EligibilityEvaluator.can_challenge(challenger, challenged, 40).allowed
    assert EligibilityEvaluator.can_challenge(challenger, challenged, 43).allowed


def test_unranked_challenger_sits_below_population():
    # Population 20 puts an unranked challenger at position 21
    decision = EligibilityEvaluator.can_challenge(player(1, position=None), player(2, position=20), 20)
    assert decision.allowed


def test_active_challenge_cap_checked_last():
    capped = player(1, position=6, active_challenge_count=Config.MAX_ACTIVE_CHALLENGES)
    decision = EligibilityEvaluator.can_challenge(capped, player(2, position=5), 20)
    assert not decision.allowed
    assert "active challenges" in decision.reason

    # An earlier failing rule wins over the cap
    decision = EligibilityEvaluator.can_challenge(capped, player(2, position=9), 20)
    assert "above you" in decision.reason
