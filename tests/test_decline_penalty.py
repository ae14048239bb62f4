"""
DeclinePenaltyLedger tests: monthly free declines, penalty transfer and reset.
"""

from datetime import datetime

from ladder.database.models import Player
from ladder.utils.decline_penalty import DeclinePenaltyLedger, roll_decline_period
from ladder.utils.time_utils import period_key

MARCH = datetime(2025, 3, 15, 9, 30)
APRIL = datetime(2025, 4, 1, 0, 5)


def players(recuser_points=1000, count=0, month=None):
    recuser = Player(id=1, name="Recuser", points=recuser_points,
                     monthly_decline_count=count, decline_counter_month=month)
    challenger = Player(id=2, name="Challenger", points=1000)
    return recuser, challenger


def test_period_key():
    assert period_key(MARCH) == "2025-03"
    assert period_key(datetime(2024, 12, 31, 23, 59)) == "2024-12"


def test_roll_decline_period():
    assert roll_decline_period(2, "2025-03", "2025-03") == (2, "2025-03")
    assert roll_decline_period(2, "2025-02", "2025-03") == (0, "2025-03")
    assert roll_decline_period(0, None, "2025-03") == (0, "2025-03")


def test_first_two_declines_are_free():
    recuser, challenger = players()

    first = DeclinePenaltyLedger.apply_decline_penalty(recuser, challenger, MARCH)
    assert not first.penalty_applied
    assert first.declines_this_month == 1
    assert first.free_declines_remaining == 1

    second = DeclinePenaltyLedger.apply_decline_penalty(recuser, challenger, MARCH)
    assert not second.penalty_applied
    assert second.declines_this_month == 2
    assert second.free_declines_remaining == 0

    assert recuser.points == 1000
    assert challenger.points == 1000
    assert recuser.decline_counter_month == "2025-03"


def test_third_decline_transfers_points():
    recuser, challenger = players(count=2, month="2025-03")

    result = DeclinePenaltyLedger.apply_decline_penalty(recuser, challenger, MARCH)

    assert result.penalty_applied
    assert result.points_transferred == 10
    assert result.recuser_points_lost == 10
    assert result.declines_this_month == 3
    assert recuser.points == 990
    assert challenger.points == 1010


def test_penalty_floors_recuser_at_zero():
    recuser, challenger = players(recuser_points=4, count=5, month="2025-03")

    result = DeclinePenaltyLedger.apply_decline_penalty(recuser, challenger, MARCH)

    assert result.penalty_applied
    assert recuser.points == 0
    assert result.recuser_points_lost == 4
    assert result.points_transferred == 10
    assert challenger.points == 1010


def test_new_month_resets_counter():
    recuser, challenger = players(count=7, month="2025-03")

    result = DeclinePenaltyLedger.apply_decline_penalty(recuser, challenger, APRIL)

    assert not result.penalty_applied
    assert recuser.monthly_decline_count == 1
    assert recuser.decline_counter_month == "2025-04"
