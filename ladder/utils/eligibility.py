from dataclasses import dataclass
from typing import Optional

from ladder.config import Config
from ladder.constants import EligibilityConstants
from ladder.data_models.snapshots import PlayerSnapshot


@dataclass(frozen=True)
class ChallengeDecision:
    """Outcome of an eligibility check; denials carry a readable reason"""
    allowed: bool
    reason: Optional[str] = None
    reach: Optional[int] = None
    level_population: Optional[int] = None

    @classmethod
    def deny(cls, reason: str, **kwargs) -> 'ChallengeDecision':
        return cls(allowed=False, reason=reason, **kwargs)


def dynamic_reach(level_population: int) -> int:
    """Positions above you, within your level, that you may challenge: max(1, ceil(5% of population))"""
    scaled = (level_population * EligibilityConstants.REACH_PERCENT + 99) // 100
    return max(EligibilityConstants.MIN_REACH, scaled)


class EligibilityEvaluator:
    """Decides who may challenge whom. Read-only; callers supply fresh snapshots and counts."""

    @staticmethod
    def can_challenge(
        challenger: PlayerSnapshot,
        challenged: PlayerSnapshot,
        level_population: int
    ) -> ChallengeDecision:
        """
        Check the challenge rules in order; the first failing rule decides.

        Args:
            challenger: Player issuing the challenge
            challenged: Player being challenged
            level_population: Active players at the challenger's level

        Returns:
            ChallengeDecision, allowed or denied with a reason
        """
        if challenger.player_id == challenged.player_id:
            return ChallengeDecision.deny("You cannot challenge yourself.")

        if not challenger.is_active or not challenged.is_active:
            return ChallengeDecision.deny("Inactive players cannot take part in challenges.")

        level_gap = challenged.level.order - challenger.level.order
        if level_gap > EligibilityConstants.MAX_LEVEL_GAP:
            return ChallengeDecision.deny(
                f"{challenged.name} is too far above you ({challenged.level.label}); "
                f"you may challenge at most one level up."
            )
        if level_gap < 0:
            return ChallengeDecision.deny(
                f"You cannot challenge below your level ({challenged.name} is {challenged.level.label})."
            )

        reach = None
        if level_gap == 0:
            reach = dynamic_reach(level_population)
            unranked = level_population + 1
            challenger_position = challenger.ranking_by_level or unranked
            challenged_position = challenged.ranking_by_level or unranked
            positional_gap = challenger_position - challenged_position

            if positional_gap <= 0:
                return ChallengeDecision.deny(
                    "You can only challenge players ranked above you in your level.",
                    reach=reach, level_population=level_population
                )
            if positional_gap > reach:
                return ChallengeDecision.deny(
                    f"You can challenge at most {reach} position(s) above you "
                    f"({level_population} active players in your level); "
                    f"{challenged.name} is {positional_gap} positions above.",
                    reach=reach, level_population=level_population
                )

        if challenger.active_challenge_count >= Config.MAX_ACTIVE_CHALLENGES:
            return ChallengeDecision.deny(
                f"You already have {challenger.active_challenge_count} active challenges "
                f"(limit {Config.MAX_ACTIVE_CHALLENGES}).",
                reach=reach, level_population=level_population
            )

        return ChallengeDecision(allowed=True, reach=reach, level_population=level_population)
