"""
PointsCalculator tests: ranking-difference deltas, multiplier and floors.
"""

import pytest

from ladder.data_models.snapshots import PlayerSnapshot
from ladder.database.models import PlayerLevel
from ladder.utils.exceptions import ValidationError
from ladder.utils.points import PointsCalculator, round_half_up


def snapshot(player_id, ranking, points=1000, provisional=False):
    return PlayerSnapshot(
        player_id=player_id,
        name=f"P{player_id}",
        points=points,
        level=PlayerLevel.INTERMEDIATE,
        ranking_general=ranking,
        ranking_by_level=ranking,
        provisional=provisional,
        active_challenge_count=0,
        is_active=True,
    )


def test_round_half_up():
    assert round_half_up(54.0) == 54
    assert round_half_up(-7.5) == -7
    assert round_half_up(7.5) == 8
    assert round_half_up(-4.6) == -5


def test_better_placed_winner():
    # Difference 3: 20 + 6 + 10 for the winner, -3 capped to -5 for the loser
    result = PointsCalculator.calculate(snapshot(1, 2), snapshot(2, 5))
    assert result.ranking_difference == 3
    assert result.winner_delta == 36
    assert result.loser_delta == -5
    assert result.multiplier == 1.0


def test_large_positive_gap_is_not_capped_above():
    result = PointsCalculator.calculate(snapshot(1, 1), snapshot(2, 9))
    assert result.winner_delta == 20 + 16 + 10
    assert result.loser_delta == -8


def test_worse_placed_winner_and_loser_never_loses_points():
    result = PointsCalculator.calculate(snapshot(1, 5), snapshot(2, 2))
    assert result.ranking_difference == -3
    assert result.winner_delta == 24
    assert result.loser_delta == 3


def test_equal_positions():
    result = PointsCalculator.calculate(snapshot(1, 4), snapshot(2, 4))
    assert result.winner_delta == 30
    assert result.loser_delta == 0


def test_provisional_multiplier_rounds_half_up():
    result = PointsCalculator.calculate(snapshot(1, 2, provisional=True), snapshot(2, 5))
    assert result.multiplier == 1.5
    assert result.winner_delta == 54
    assert result.loser_delta == -7


def test_multiplier_applies_when_only_loser_is_provisional():
    result = PointsCalculator.calculate(snapshot(1, 2), snapshot(2, 5, provisional=True))
    assert result.multiplier == 1.5


def test_winner_delta_floor():
    result = PointsCalculator.calculate(snapshot(1, 20), snapshot(2, 1))
    assert result.winner_delta == 1
    assert result.loser_delta == 19


def test_loser_cannot_drop_below_zero():
    result = PointsCalculator.calculate(snapshot(1, 1), snapshot(2, 9, points=3))
    assert result.loser_delta == -3

    result = PointsCalculator.calculate(snapshot(1, 1), snapshot(2, 9, points=0))
    assert result.loser_delta == 0


@pytest.mark.parametrize("winner_rank,loser_rank,loser_points,provisional", [
    (1, 30, 0, False),
    (30, 1, 5, True),
    (3, 4, 2, True),
    (10, 10, 1000, False),
])
def test_settlement_floors_hold(winner_rank, loser_rank, loser_points, provisional):
    result = PointsCalculator.calculate(
        snapshot(1, winner_rank, provisional=provisional),
        snapshot(2, loser_rank, points=loser_points)
    )
    assert result.winner_delta >= 1
    assert loser_points + result.loser_delta >= 0


def test_missing_ranking_is_rejected():
    with pytest.raises(ValidationError):
        PointsCalculator.calculate(snapshot(1, None), snapshot(2, 3))
