"""
Immutable views of player state handed to the pure ladder calculators.

Snapshots are taken inside the transaction that acts on them, so the
calculators never see ranking caches from an earlier read.
"""

from dataclasses import dataclass
from typing import Optional

from ladder.database.models import Player, PlayerLevel


@dataclass(frozen=True)
class PlayerSnapshot:
    """Point-in-time copy of the fields eligibility and settlement depend on."""
    player_id: int
    name: str
    points: int
    level: PlayerLevel
    ranking_general: Optional[int]
    ranking_by_level: Optional[int]
    provisional: bool
    active_challenge_count: int
    is_active: bool

    @classmethod
    def from_player(cls, player: Player, unranked_position: Optional[int] = None) -> 'PlayerSnapshot':
        """
        Build a snapshot from a Player row.

        Players without a position yet (never ranked, or deactivated since)
        are placed at unranked_position when one is given.
        """
        ranking_general = player.ranking_general
        ranking_by_level = player.ranking_by_level
        if unranked_position is not None:
            if ranking_general is None:
                ranking_general = unranked_position
            if ranking_by_level is None:
                ranking_by_level = unranked_position

        return cls(
            player_id=player.id,
            name=player.name,
            points=player.points,
            level=player.level,
            ranking_general=ranking_general,
            ranking_by_level=ranking_by_level,
            provisional=bool(player.provisional),
            active_challenge_count=player.active_challenge_count or 0,
            is_active=bool(player.is_active),
        )
