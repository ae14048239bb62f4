"""
Skill-level progression rules.

Levels gate who may challenge whom, so they are never changed by settlement;
these helpers report which level a record qualifies for and what is missing
for the next one. Administrators apply promotions explicitly.
"""

from dataclasses import dataclass
from typing import Optional

from ladder.constants import LevelRequirements
from ladder.database.models import Player, PlayerLevel

_REQUIREMENTS = {
    PlayerLevel.INTERMEDIATE: LevelRequirements.INTERMEDIATE,
    PlayerLevel.ADVANCED: LevelRequirements.ADVANCED,
    PlayerLevel.PROFESSIONAL: LevelRequirements.PROFESSIONAL,
}

_NEXT_LEVEL = {
    PlayerLevel.BEGINNER: PlayerLevel.INTERMEDIATE,
    PlayerLevel.INTERMEDIATE: PlayerLevel.ADVANCED,
    PlayerLevel.ADVANCED: PlayerLevel.PROFESSIONAL,
    PlayerLevel.PROFESSIONAL: None,
}


@dataclass(frozen=True)
class LevelProgress:
    current_level: PlayerLevel
    qualified_level: PlayerLevel
    next_level: Optional[PlayerLevel]
    points_needed: int = 0
    games_needed: int = 0
    win_rate_needed: float = 0.0

    @property
    def can_promote(self) -> bool:
        return self.qualified_level.order > self.current_level.order

    @property
    def description(self) -> str:
        if self.next_level is None:
            return "Top level reached."
        points, games, win_rate = _REQUIREMENTS[self.next_level]
        return f"For {self.next_level.label}: {points}+ points, {games}+ games, {win_rate:.0f}%+ wins"


def qualified_level(points: int, games: int, win_rate: float) -> PlayerLevel:
    """Highest level whose thresholds are all met"""
    for level in (PlayerLevel.PROFESSIONAL, PlayerLevel.ADVANCED, PlayerLevel.INTERMEDIATE):
        min_points, min_games, min_win_rate = _REQUIREMENTS[level]
        if points >= min_points and games >= min_games and win_rate >= min_win_rate:
            return level
    return PlayerLevel.BEGINNER


def level_progress(player: Player) -> LevelProgress:
    games = player.matches_played
    win_rate = player.win_rate
    qualified = qualified_level(player.points, games, win_rate)
    next_level = _NEXT_LEVEL[player.level]

    if next_level is None:
        return LevelProgress(player.level, qualified, None)

    min_points, min_games, min_win_rate = _REQUIREMENTS[next_level]
    return LevelProgress(
        current_level=player.level,
        qualified_level=qualified,
        next_level=next_level,
        points_needed=max(0, min_points - player.points),
        games_needed=max(0, min_games - games),
        win_rate_needed=max(0.0, round(min_win_rate - win_rate, 1)),
    )
