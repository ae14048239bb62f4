from dataclasses import dataclass

from ladder.config import Config
from ladder.database.models import Player


@dataclass(frozen=True)
class ProvisionalUpdate:
    was_provisional: bool
    became_regular: bool = False
    matches_played: int = 0
    remaining_matches: int = 0


class ProvisionalPromotionTracker:
    """Counts settled matches for provisional players and promotes them at the threshold"""

    @staticmethod
    def update_provisional_status(player: Player) -> ProvisionalUpdate:
        if not player.provisional:
            return ProvisionalUpdate(was_provisional=False)

        played = (player.provisional_matches_played or 0) + 1
        player.provisional_matches_played = played

        if played >= Config.PROVISIONAL_MATCH_COUNT:
            player.provisional = False
            return ProvisionalUpdate(
                was_provisional=True,
                became_regular=True,
                matches_played=played,
            )

        return ProvisionalUpdate(
            was_provisional=True,
            matches_played=played,
            remaining_matches=Config.PROVISIONAL_MATCH_COUNT - played,
        )
