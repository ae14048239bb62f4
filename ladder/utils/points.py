import math
from dataclasses import dataclass

from ladder.config import Config
from ladder.constants import PointsConstants
from ladder.data_models.snapshots import PlayerSnapshot
from ladder.utils.exceptions import ValidationError


@dataclass(frozen=True)
class PointsResult:
    """Signed point deltas for one settled match"""
    winner_delta: int
    loser_delta: int
    multiplier: float
    ranking_difference: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity (-7.5 -> -7)"""
    return int(math.floor(value + 0.5))


class PointsCalculator:
    """Handles point transfers for the ranking-difference model"""

    @staticmethod
    def ranking_difference(winner_rank: int, loser_rank: int) -> int:
        """
        Positions separating the two players.

        Positive when the winner held the better (numerically lower) position.
        """
        return loser_rank - winner_rank

    @staticmethod
    def base_winner_delta(ranking_difference: int) -> int:
        return (
            PointsConstants.BASE_VICTORY
            + ranking_difference * PointsConstants.RANKING_FACTOR
            + PointsConstants.PARTICIPATION_BONUS
        )

    @staticmethod
    def base_loser_delta(ranking_difference: int) -> int:
        """
        Loser's delta before the provisional multiplier.

        When the winner held the better position the loser drops at least
        POSITIVE_GAP_LOSS_CAP points; otherwise the loser never loses points.
        """
        delta = (
            PointsConstants.BASE_DEFEAT
            - ranking_difference * PointsConstants.DEFEAT_FACTOR
            + PointsConstants.PARTICIPATION_BONUS
        )
        if ranking_difference > 0:
            return min(delta, PointsConstants.POSITIVE_GAP_LOSS_CAP)
        return max(delta, 0)

    @staticmethod
    def get_multiplier(winner: PlayerSnapshot, loser: PlayerSnapshot) -> float:
        if winner.provisional or loser.provisional:
            return Config.PROVISIONAL_MULTIPLIER
        return 1.0

    @staticmethod
    def calculate(winner: PlayerSnapshot, loser: PlayerSnapshot) -> PointsResult:
        """
        Calculate the point deltas for a validated match

        Args:
            winner: Snapshot of the winning player, taken at settlement time
            loser: Snapshot of the losing player, taken at settlement time

        Returns:
            PointsResult with the winner delta (at least +1), the loser delta
            (never taking the loser below zero) and the multiplier applied

        Raises:
            ValidationError: If either snapshot has no general ranking
        """
        if winner.ranking_general is None or loser.ranking_general is None:
            raise ValidationError(
                f"Cannot settle points without rankings (winner={winner.ranking_general}, loser={loser.ranking_general})"
            )

        difference = PointsCalculator.ranking_difference(winner.ranking_general, loser.ranking_general)
        multiplier = PointsCalculator.get_multiplier(winner, loser)

        winner_delta = round_half_up(PointsCalculator.base_winner_delta(difference) * multiplier)
        loser_delta = round_half_up(PointsCalculator.base_loser_delta(difference) * multiplier)

        winner_delta = max(winner_delta, PointsConstants.MIN_WINNER_DELTA)
        loser_delta = max(loser_delta, PointsConstants.MIN_POINTS - loser.points)

        return PointsResult(
            winner_delta=winner_delta,
            loser_delta=loser_delta,
            multiplier=multiplier,
            ranking_difference=difference,
        )
