from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from ladder.config import Config
from ladder.database.models import Player
from ladder.utils.time_utils import period_key


@dataclass(frozen=True)
class DeclinePenaltyResult:
    """Outcome of recording one declined challenge"""
    penalty_applied: bool
    points_transferred: int
    recuser_points_lost: int
    declines_this_month: int
    free_declines_remaining: int
    message: str


def roll_decline_period(count: int, counter_period: Optional[str], current_period: str) -> Tuple[int, str]:
    """
    Bring a (count, period) decline counter into the current period.

    A counter from any other period starts over at zero.
    """
    if counter_period != current_period:
        return 0, current_period
    return count, counter_period


class DeclinePenaltyLedger:
    """Monthly decline budget; past the free declines, points move to the challenger"""

    @staticmethod
    def apply_decline_penalty(recuser: Player, challenger: Player, now: datetime) -> DeclinePenaltyResult:
        """
        Record a decline by recuser and transfer the penalty once the free budget is spent.

        Mutates both players in memory only; the caller persists them in one transaction.
        """
        count, period = roll_decline_period(
            recuser.monthly_decline_count or 0,
            recuser.decline_counter_month,
            period_key(now)
        )
        count += 1
        recuser.monthly_decline_count = count
        recuser.decline_counter_month = period

        free_remaining = max(0, Config.FREE_MONTHLY_DECLINES - count)

        if count <= Config.FREE_MONTHLY_DECLINES:
            return DeclinePenaltyResult(
                penalty_applied=False,
                points_transferred=0,
                recuser_points_lost=0,
                declines_this_month=count,
                free_declines_remaining=free_remaining,
                message=(
                    f"Decline recorded. {recuser.name} has {free_remaining} free "
                    f"decline(s) left this month."
                ),
            )

        penalty = Config.DECLINE_PENALTY_POINTS
        old_points = recuser.points
        recuser.points = max(0, recuser.points - penalty)
        challenger.points = challenger.points + penalty

        return DeclinePenaltyResult(
            penalty_applied=True,
            points_transferred=penalty,
            recuser_points_lost=old_points - recuser.points,
            declines_this_month=count,
            free_declines_remaining=0,
            message=(
                f"Penalty applied: {recuser.name} lost {old_points - recuser.points} points "
                f"and {challenger.name} gained {penalty} points."
            ),
        )
